"""Intake log model for SQLModel."""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class IntakeAction(str, Enum):
    TAKEN = "taken"
    SNOOZED = "snoozed"
    MISSED = "missed"


class IntakeSource(str, Enum):
    """Where an intake action came from"""
    APP = "app"
    NOTIFICATION = "notification"
    SYSTEM = "system"


class IntakeLogEntry(SQLModel, table=True):
    """
    Append-only audit record of intake actions.

    No foreign key to medicines: entries outlive the medicine they describe.
    """
    __tablename__ = "intake_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    medicine_id: str = Field(index=True, max_length=64)
    reminder_id: str = Field(max_length=36)
    action: str = Field(max_length=20)
    at: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False, index=True))
    scheduled_at: datetime = Field(sa_column=Column(DateTime(timezone=False), nullable=False))
    source: str = Field(default=IntakeSource.APP.value, max_length=20)
    snooze_minutes: Optional[int] = Field(default=None)
