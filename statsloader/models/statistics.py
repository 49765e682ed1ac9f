"""Entity statistics domain models."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class UpdateInstruction(BaseModel):
    """Increments to apply to one entity, derived from a single record."""

    entity_id: str = Field(..., description="Target entity")
    increments: dict[str, int] = Field(..., description="Counter name to increment")
    source_index: int | None = Field(default=None, description="Record index it came from")

    @field_validator("increments")
    @classmethod
    def _non_negative(cls, value: dict[str, int]) -> dict[str, int]:
        for name, increment in value.items():
            if increment < 0:
                raise ValueError(f"Increment for {name} must be non-negative")
        return value

    @property
    def is_empty(self) -> bool:
        """True when every increment is zero."""
        return all(v == 0 for v in self.increments.values())


class EntityStatistics(BaseModel):
    """Persisted counters of one entity."""

    entity_id: str = Field(..., description="Entity identifier")
    counters: dict[str, int] = Field(default_factory=dict, description="Counter values")
    last_updated: datetime | None = Field(default=None, description="Time of the last update")
    last_execution_id: str | None = Field(default=None, description="Execution that last wrote")
    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")

    @field_validator("counters")
    @classmethod
    def _counters_non_negative(cls, value: dict[str, int]) -> dict[str, int]:
        for name, count in value.items():
            if count < 0:
                raise ValueError(f"Counter {name} must be non-negative")
        return value

    def counter(self, name: str) -> int:
        """Current value of a counter (missing counters read as zero)."""
        return self.counters.get(name, 0)

    def to_store_mapping(self) -> dict[str, Any]:
        """Serialize for a Redis hash."""
        return {
            "entity_id": self.entity_id,
            "counters": json.dumps(self.counters),
            "last_updated": self.last_updated.isoformat() if self.last_updated else "",
            "last_execution_id": self.last_execution_id or "",
            "version": str(self.version),
        }

    @classmethod
    def from_store_mapping(cls, data: dict[str, str]) -> "EntityStatistics":
        """Restore from a Redis hash."""
        return cls(
            entity_id=data["entity_id"],
            counters=json.loads(data["counters"]) if data.get("counters") else {},
            last_updated=datetime.fromisoformat(data["last_updated"]) if data.get("last_updated") else None,
            last_execution_id=data.get("last_execution_id") or None,
            version=int(data.get("version") or 0),
        )
