"""Request/response schemas for the reminder API."""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from medreminder.schemas.dosing_rule import DosingRule


class MedicineCreate(BaseModel):
    """Schema for registering a medicine."""
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=100)
    dosing_rule: Optional[DosingRule] = None


class MedicineResponse(BaseModel):
    id: str
    name: str
    dosing_rule: Optional[DosingRule] = None
    frequency_label: Optional[str] = None
    dose_label: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class OccurrenceResponse(BaseModel):
    """Schema for occurrence API responses."""
    id: str
    medicine_id: str
    scheduled_at: datetime
    status: str
    snooze_count: int = 0
    created_at: datetime
    updated_at: datetime
    taken_at: Optional[datetime] = None
    missed_at: Optional[datetime] = None
    dose_amount: float
    dose_unit: str
    meal_tag: str

    class Config:
        from_attributes = True


class SnoozeRequest(BaseModel):
    minutes: int = Field(10, ge=1, le=1440)
    source: str = Field("app", pattern=r"^(app|notification)$")


class MarkTakenRequest(BaseModel):
    source: str = Field("app", pattern=r"^(app|notification)$")


class LifecycleResponse(BaseModel):
    """Result of mark-taken or snooze; success=False with code no_op is not an error."""
    success: bool
    code: str
    message: str
    occurrence: Optional[OccurrenceResponse] = None


class ScheduleSummary(BaseModel):
    medicine_id: str
    scheduled: int = 0
    revived: int = 0
    canceled: int = 0
    paused: int = 0


class DailyAdherence(BaseModel):
    date: date
    scheduled: int = 0
    taken: int = 0
    missed: int = 0


class AdherenceStats(BaseModel):
    """Adherence over a window of local calendar days."""
    medicine_id: str
    days: int
    start_date: date
    end_date: date
    scheduled: int = 0
    taken: int = 0
    missed: int = 0
    snoozed: int = 0
    adherence_rate: float = Field(0.0, ge=0.0, le=1.0)
    daily: List[DailyAdherence] = Field(default_factory=list)


class IntakeLogResponse(BaseModel):
    id: int
    medicine_id: str
    reminder_id: str
    action: str
    at: datetime
    scheduled_at: datetime
    source: str
    snooze_minutes: Optional[int] = None

    class Config:
        from_attributes = True


class MissedDoseGuidance(BaseModel):
    """Generic make-up dose advice for an overdue or missed reminder."""
    medicine_id: str
    occurrence_id: str
    scheduled_at: datetime
    minutes_since_scheduled: int
    next_scheduled_at: Optional[datetime] = None
    steps: List[str]
    meal_hint: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
