from datetime import datetime, timezone
import hashlib
from typing import Literal, List

from pydantic import BaseModel, Field

ConflictType = Literal["faculty", "room", "workload", "break", "coverage"]
ConflictSeverity = Literal["low", "medium", "high", "critical"]

SEVERITY_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def conflict_id(prefix: str, *parts: str) -> str:
    digest = hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()[:10]
    return f"{prefix}-{digest}"


class Conflict(BaseModel):
    id: str
    conflict_type: ConflictType
    severity: ConflictSeverity
    description: str
    suggested_resolution: str
    affected_subjects: List[str] = Field(default_factory=list)
    affected_faculty: List[str] = Field(default_factory=list)
    affected_cells: List[str] = Field(default_factory=list)  # "MON-3" style cell keys
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self.severity]
