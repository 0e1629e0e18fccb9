"""Medicine model for SQLModel."""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from medreminder.schemas.dosing_rule import DosingRule


class Medicine(SQLModel, table=True):
    """Medication whose reminders the engine manages."""
    __tablename__ = "medicines"

    id: str = Field(primary_key=True, max_length=64)
    name: str = Field(max_length=100, min_length=1)
    dosing_rule: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    updated_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))

    def get_rule(self) -> Optional[DosingRule]:
        """Deserialise the stored dosing rule."""
        if not self.dosing_rule:
            return None
        return DosingRule.model_validate(self.dosing_rule)

    def set_rule(self, rule: Optional[DosingRule]) -> None:
        # Reassign a fresh dict so the JSON column is flagged dirty
        self.dosing_rule = rule.model_dump(mode="json") if rule else None
