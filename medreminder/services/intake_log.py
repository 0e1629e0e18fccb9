"""Intake log store: append-only, capped audit trail."""
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from medreminder.models.intake_log import IntakeLogEntry

DEFAULT_INTAKE_LOG_CAP = 2000


class IntakeLogStore:
    """Append-only log of taken/snoozed/missed actions, oldest rows dropped past the cap."""

    def __init__(self, session: Session, cap: int = DEFAULT_INTAKE_LOG_CAP):
        self.session = session
        self.cap = cap

    def append(self, entry: IntakeLogEntry) -> IntakeLogEntry:
        self.session.add(entry)
        self.session.flush()
        self._trim()
        return entry

    def discard(self, entry: IntakeLogEntry) -> None:
        """Undo an append that is not committed yet."""
        if entry not in self.session:
            return
        if entry.id is None:
            self.session.expunge(entry)
        else:
            self.session.delete(entry)
        self.session.flush()

    def _trim(self) -> int:
        total = self.session.exec(select(func.count()).select_from(IntakeLogEntry)).one()
        overflow = total - self.cap
        if overflow <= 0:
            return 0

        oldest = self.session.exec(
            select(IntakeLogEntry).order_by(IntakeLogEntry.id.asc()).limit(overflow)
        ).all()
        for entry in oldest:
            self.session.delete(entry)
        self.session.flush()
        return len(oldest)

    def list_entries(self, medicine_id: Optional[str] = None, limit: Optional[int] = None) -> List[IntakeLogEntry]:
        """
        List entries oldest first.

        Args:
            medicine_id: Restrict to one medicine; None returns the whole log
            limit: Return only the most recent N entries
        """
        statement = select(IntakeLogEntry)
        if medicine_id is not None:
            statement = statement.where(IntakeLogEntry.medicine_id == medicine_id)

        if limit is not None:
            statement = statement.order_by(IntakeLogEntry.id.desc()).limit(limit)
            return list(reversed(self.session.exec(statement).all()))

        statement = statement.order_by(IntakeLogEntry.id.asc())
        return list(self.session.exec(statement).all())
