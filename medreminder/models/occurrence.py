"""Occurrence model for SQLModel."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

# Fixed namespace so occurrence ids are stable across processes and releases
OCCURRENCE_NAMESPACE = uuid.UUID("6f1c2b52-9f0e-4a8e-8d1e-3c7a5b2e4d10")


class OccurrenceStatus(str, Enum):
    """Lifecycle state of a single reminder"""
    SCHEDULED = "scheduled"
    TAKEN = "taken"
    MISSED = "missed"
    SNOOZED = "snoozed"
    PAUSED = "paused"


PENDING_STATUSES = (OccurrenceStatus.SCHEDULED.value, OccurrenceStatus.SNOOZED.value)


def occurrence_id(medicine_id: str, scheduled_at: datetime) -> str:
    """Deterministic id for a (medicine, slot) pair."""
    key = f"{medicine_id}|{scheduled_at.replace(microsecond=0).isoformat()}"
    return str(uuid.uuid5(OCCURRENCE_NAMESPACE, key))


class Occurrence(SQLModel, table=True):
    """
    One concrete scheduled instance of taking a medicine.

    The id is derived from the original slot, so snoozing (which moves
    scheduled_at) keeps the id while regeneration of the same slot reproduces it.
    Dose fields are copied from the rule at generation time.
    """
    __tablename__ = "occurrences"

    id: str = Field(primary_key=True, max_length=36)
    medicine_id: str = Field(foreign_key="medicines.id", index=True, max_length=64)
    scheduled_at: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False, index=True))
    status: str = Field(default=OccurrenceStatus.SCHEDULED.value, sa_column=Column(String(20), nullable=False))
    snooze_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    updated_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    taken_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=False), nullable=True))
    missed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=False), nullable=True))
    dose_amount: float = Field(default=1)
    dose_unit: str = Field(default="", max_length=16)
    meal_tag: str = Field(default="none", max_length=20)
    alert_handle: Optional[str] = Field(default=None, max_length=128)

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES
