"""Chunk processing API schemas."""

from pydantic import BaseModel, Field

from statsloader.models.record import Chunk, Record


class ChunkItem(BaseModel):
    """One record as handed over by the partitioner."""

    index: int = Field(..., ge=0, description="Zero-based data row index")
    raw_fields: dict[str, str] = Field(..., description="Column name to raw cell value")


class ChunkRequest(BaseModel):
    """Chunk submitted for processing."""

    chunk_id: str = Field(..., min_length=1, description="Chunk unique identifier")
    batch_index: int = Field(default=0, ge=0, description="Chunk position in the file")
    execution_id: str = Field(..., min_length=1, description="Owning execution")
    items: list[ChunkItem] = Field(default_factory=list, description="Records to process")
    enqueue: bool = Field(default=False, description="Queue for the worker instead of processing inline")

    def to_chunk(self) -> Chunk:
        return Chunk(
            chunk_id=self.chunk_id,
            batch_index=self.batch_index,
            execution_id=self.execution_id,
            items=[Record(raw_fields=item.raw_fields, index=item.index) for item in self.items],
        )


class ChunkAccepted(BaseModel):
    """Acknowledgement of a queued chunk."""

    chunk_id: str
    execution_id: str
    queued: bool = True
