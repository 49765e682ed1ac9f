"""Input record and chunk domain models."""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Record(BaseModel):
    """One parsed row of a delimited file."""

    model_config = ConfigDict(frozen=True)

    raw_fields: dict[str, str] = Field(..., description="Column name to raw cell value")
    index: int = Field(..., ge=0, description="Zero-based data row index within the file")

    def get(self, column: str, default: str = "") -> str:
        """Return a raw cell value."""
        return self.raw_fields.get(column, default)

    @property
    def line_number(self) -> int:
        """Line in the source file (line 1 is the header)."""
        return self.index + 2


class Chunk(BaseModel):
    """A bounded slice of records processed as one unit."""

    chunk_id: str = Field(..., min_length=1, description="Chunk unique identifier")
    batch_index: int = Field(default=0, ge=0, description="Position of the chunk in the file")
    execution_id: str = Field(..., min_length=1, description="Owning execution identifier")
    items: list[Record] = Field(default_factory=list, description="Records in this chunk")

    @model_validator(mode="after")
    def _unique_item_indexes(self) -> "Chunk":
        indexes = [item.index for item in self.items]
        if len(indexes) != len(set(indexes)):
            raise ValueError("Chunk item indexes must be unique")
        return self
