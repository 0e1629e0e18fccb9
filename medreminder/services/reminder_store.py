"""Reminder store: persisted occurrences per medicine."""
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, select

from medreminder.models.medicine import Medicine
from medreminder.models.occurrence import PENDING_STATUSES, Occurrence


class ReminderStore:
    """
    Occurrence persistence on a SQLModel session.

    The store never commits; the caller owns the transaction so that a whole
    read-modify-write (cancel then regenerate, reconcile) lands atomically.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_medicine(self, medicine_id: str) -> Optional[Medicine]:
        return self.session.get(Medicine, medicine_id)

    def get(self, medicine_id: str, occurrence_id: str) -> Optional[Occurrence]:
        """Get an occurrence by id, scoped to its medicine."""
        statement = (
            select(Occurrence)
            .where(Occurrence.id == occurrence_id)
            .where(Occurrence.medicine_id == medicine_id)
        )
        return self.session.exec(statement).first()

    def get_many(self, occurrence_ids: Iterable[str]) -> Dict[str, Occurrence]:
        ids = list(occurrence_ids)
        if not ids:
            return {}
        statement = select(Occurrence).where(Occurrence.id.in_(ids))
        return {occ.id: occ for occ in self.session.exec(statement).all()}

    def list_for_medicine(
        self,
        medicine_id: str,
        statuses: Optional[Iterable[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Occurrence]:
        """
        List occurrences for a medicine ordered by scheduled_at.

        Args:
            medicine_id: Owning medicine
            statuses: Optional status filter
            start: Inclusive lower bound on scheduled_at
            end: Exclusive upper bound on scheduled_at
        """
        statement = select(Occurrence).where(Occurrence.medicine_id == medicine_id)
        if statuses is not None:
            statement = statement.where(Occurrence.status.in_(list(statuses)))
        if start is not None:
            statement = statement.where(Occurrence.scheduled_at >= start)
        if end is not None:
            statement = statement.where(Occurrence.scheduled_at < end)
        statement = statement.order_by(Occurrence.scheduled_at.asc(), Occurrence.id.asc())
        return list(self.session.exec(statement).all())

    def list_future_pending(self, medicine_id: str, now: datetime) -> List[Occurrence]:
        """Scheduled/snoozed occurrences that are not yet due."""
        statement = (
            select(Occurrence)
            .where(Occurrence.medicine_id == medicine_id)
            .where(Occurrence.status.in_(PENDING_STATUSES))
            .where(Occurrence.scheduled_at > now)
            .order_by(Occurrence.scheduled_at.asc())
        )
        return list(self.session.exec(statement).all())

    def list_pending_before(self, medicine_id: str, cutoff: datetime) -> List[Occurrence]:
        """Scheduled/snoozed occurrences scheduled strictly before cutoff."""
        statement = (
            select(Occurrence)
            .where(Occurrence.medicine_id == medicine_id)
            .where(Occurrence.status.in_(PENDING_STATUSES))
            .where(Occurrence.scheduled_at < cutoff)
            .order_by(Occurrence.scheduled_at.asc(), Occurrence.id.asc())
        )
        return list(self.session.exec(statement).all())

    def add_new(self, occurrences: Iterable[Occurrence]) -> List[Occurrence]:
        """
        Insert occurrences whose id is not stored yet.

        Returns:
            The occurrences actually inserted (duplicates in the batch or
            already present in the store are skipped)
        """
        batch: Dict[str, Occurrence] = {}
        for occ in occurrences:
            batch.setdefault(occ.id, occ)

        existing = self.get_many(batch.keys())
        inserted = []
        for oid, occ in batch.items():
            if oid in existing:
                continue
            self.session.add(occ)
            inserted.append(occ)
        self.session.flush()
        return inserted

    def save(self, occurrence: Occurrence) -> Occurrence:
        self.session.add(occurrence)
        self.session.flush()
        return occurrence

    def delete(self, occurrences: Iterable[Occurrence]) -> int:
        count = 0
        for occ in occurrences:
            self.session.delete(occ)
            count += 1
        self.session.flush()
        return count
