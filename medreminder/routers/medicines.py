"""Medicine reminder router."""
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from medreminder.core.config import settings
from medreminder.db.config import get_session
from medreminder.models.intake_log import IntakeSource
from medreminder.models.medicine import Medicine
from medreminder.schemas.dosing_rule import DosingRule
from medreminder.schemas.reminders import (
    AdherenceStats,
    IntakeLogResponse,
    LifecycleResponse,
    MarkTakenRequest,
    MedicineCreate,
    MedicineResponse,
    MissedDoseGuidance,
    OccurrenceResponse,
    ScheduleSummary,
    SnoozeRequest,
)
from medreminder.services.notifier import Notifier, build_notifier
from medreminder.services.occurrence_lifecycle import LifecycleResult
from medreminder.services.reminder_scheduler import ScheduleResult
from medreminder.services.reminder_service import MedicationReminderService

router = APIRouter(tags=["Reminders"])  # No prefix since main.py adds /api prefix


@lru_cache()
def get_notifier() -> Notifier:
    return build_notifier(settings)


def get_reminder_service(
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
) -> MedicationReminderService:
    """Dependency for getting MedicationReminderService instance."""
    return MedicationReminderService(session, notifier=notifier)


def _medicine_response(medicine: Medicine) -> MedicineResponse:
    rule = medicine.get_rule()
    return MedicineResponse(
        id=medicine.id,
        name=medicine.name,
        dosing_rule=rule,
        frequency_label=rule.describe_frequency() if rule else None,
        dose_label=rule.describe_dose() if rule else None,
        created_at=medicine.created_at,
        updated_at=medicine.updated_at,
    )


def _schedule_summary(medicine_id: str, result: ScheduleResult) -> ScheduleSummary:
    return ScheduleSummary(
        medicine_id=medicine_id,
        scheduled=result.scheduled,
        revived=result.revived,
        canceled=result.canceled,
        paused=result.paused,
    )


def _lifecycle_response(result: LifecycleResult) -> LifecycleResponse:
    if result.code == "not_found":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
    return LifecycleResponse(
        success=result.success,
        code=result.code,
        message=result.message,
        occurrence=OccurrenceResponse.model_validate(result.occurrence) if result.occurrence else None,
    )


@router.post("/medicines", response_model=MedicineResponse, status_code=status.HTTP_201_CREATED)
async def create_medicine(
    medicine_data: MedicineCreate,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    """Register a medicine, scheduling reminders when a dosing rule is supplied."""
    medicine = service.register_medicine(medicine_data.id, medicine_data.name, medicine_data.dosing_rule)
    return _medicine_response(medicine)


@router.get("/medicines/{medicine_id}", response_model=MedicineResponse)
async def get_medicine(
    medicine_id: str,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    return _medicine_response(service.get_medicine(medicine_id))


@router.put("/medicines/{medicine_id}/dosing-rule", response_model=ScheduleSummary)
async def apply_dosing_rule(
    medicine_id: str,
    rule: DosingRule,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    """Replace the dosing rule and regenerate future reminders."""
    return _schedule_summary(medicine_id, service.apply_dosing_rule(medicine_id, rule))


@router.post("/medicines/{medicine_id}/pause", response_model=ScheduleSummary)
async def pause_reminders(
    medicine_id: str,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    return _schedule_summary(medicine_id, service.pause_or_resume(medicine_id, True))


@router.post("/medicines/{medicine_id}/resume", response_model=ScheduleSummary)
async def resume_reminders(
    medicine_id: str,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    return _schedule_summary(medicine_id, service.pause_or_resume(medicine_id, False))


@router.delete("/medicines/{medicine_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_medicine(
    medicine_id: str,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    """Delete a medicine and its reminders. The intake log is kept."""
    service.delete_medicine_reminders(medicine_id)


@router.get("/medicines/{medicine_id}/occurrences/today", response_model=List[OccurrenceResponse])
async def get_today_occurrences(
    medicine_id: str,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    return service.get_today_occurrences(medicine_id)


@router.get("/medicines/{medicine_id}/occurrences", response_model=List[OccurrenceResponse])
async def get_occurrences(
    medicine_id: str,
    days: int = Query(30, ge=1, le=365, description="Number of past days to include"),
    service: MedicationReminderService = Depends(get_reminder_service),
):
    return service.get_occurrences(medicine_id, days)


@router.post("/medicines/{medicine_id}/occurrences/{occurrence_id}/taken", response_model=LifecycleResponse)
async def mark_taken(
    medicine_id: str,
    occurrence_id: str,
    request: Optional[MarkTakenRequest] = None,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    """Mark a reminder as taken. A repeated call returns success=false with code no_op."""
    source = IntakeSource(request.source if request else "app")
    return _lifecycle_response(service.mark_taken(medicine_id, occurrence_id, source))


@router.post("/medicines/{medicine_id}/occurrences/{occurrence_id}/snooze", response_model=LifecycleResponse)
async def snooze(
    medicine_id: str,
    occurrence_id: str,
    request: SnoozeRequest,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    source = IntakeSource(request.source)
    return _lifecycle_response(service.snooze(medicine_id, occurrence_id, request.minutes, source))


@router.get("/medicines/{medicine_id}/occurrences/{occurrence_id}/guidance", response_model=MissedDoseGuidance)
async def get_missed_dose_guidance(
    medicine_id: str,
    occurrence_id: str,
    service: MedicationReminderService = Depends(get_reminder_service),
):
    return service.get_missed_dose_guidance(medicine_id, occurrence_id)


@router.get("/medicines/{medicine_id}/adherence", response_model=AdherenceStats)
async def get_adherence_stats(
    medicine_id: str,
    days: int = Query(7, ge=1, le=365, description="Window size in local calendar days"),
    service: MedicationReminderService = Depends(get_reminder_service),
):
    return service.get_adherence_stats(medicine_id, days)


@router.get("/intake-log", response_model=List[IntakeLogResponse])
async def get_intake_log(
    medicine_id: Optional[str] = Query(None, description="Restrict to one medicine"),
    limit: Optional[int] = Query(None, ge=1, le=2000, description="Most recent N entries"),
    service: MedicationReminderService = Depends(get_reminder_service),
):
    return service.get_intake_log(medicine_id, limit)
