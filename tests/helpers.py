from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlmodel import Session

from medreminder.core.clock import FixedClock
from medreminder.core.config import ReminderSettings
from medreminder.db.config import build_engine
from medreminder.db.init import init_db
from medreminder.errors import NotifierError
from medreminder.schemas.dosing_rule import DosingMode, DosingRule
from medreminder.services.notifier import Notifier
from medreminder.services.reminder_service import MedicationReminderService

DAY_ONE = date(2026, 3, 10)


def at(hour: int, minute: int = 0, day: date = DAY_ONE) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


class RecordingNotifier(Notifier):
    """Notifier fake that remembers every call; can be told to fail."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.requested: List[Tuple[str, datetime, str, str]] = []
        self.canceled: List[str] = []

    def request_alert(self, occurrence_id, scheduled_at, title, body):
        if self.fail:
            raise NotifierError("push service unreachable")
        self.requested.append((occurrence_id, scheduled_at, title, body))
        return f"handle-{len(self.requested)}"

    def cancel_alert(self, handle):
        if self.fail:
            raise NotifierError("push service unreachable")
        self.canceled.append(handle)


def twice_daily(**overrides) -> DosingRule:
    fields = dict(mode=DosingMode.FIXED_TIMES, times=["08:00", "20:00"], start_date=DAY_ONE,
                  dose_amount=1, dose_unit="tablet")
    fields.update(overrides)
    return DosingRule(**fields)


def make_service(
    now: datetime,
    notifier: Optional[Notifier] = None,
    **settings_overrides
) -> Tuple[MedicationReminderService, Session, FixedClock, RecordingNotifier]:
    """Service over a fresh in-memory database."""
    engine = build_engine("sqlite://")
    init_db(engine)
    session = Session(engine)
    clock = FixedClock(now)
    notifier = notifier or RecordingNotifier()
    config = ReminderSettings(database_url="sqlite://", **settings_overrides)
    service = MedicationReminderService(session, notifier=notifier, clock=clock, config=config)
    return service, session, clock, notifier
