"""Input schemas for phase and task mutations.

These pydantic models validate the shape of incoming data before the
scheduling rules run. Date fields accept dates, datetimes or ISO strings and
are normalized with parse_date.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from buildplan.database.models.phase import PhaseStatus
from buildplan.scheduling.calendar import parse_date

_DATE_FIELDS = ("planned_start_date", "actual_start_date", "actual_end_date")

# Columns that may be omitted from an update but never set to null
_NOT_NULLABLE = frozenset({
    "name",
    "sequence_order",
    "planned_start_date",
    "planned_duration_days",
    "buffer_days",
    "status",
    "color",
    "metadata",
})


# Typed scheduling columns; the open metadata bag must not shadow them
RESERVED_METADATA_KEYS = frozenset({
    "duration_mode",
    "calculated_duration_days",
    "last_calculated_at",
})


def _normalize_date(value: Any) -> Any:
    if value is None:
        return None
    return parse_date(value)


def _check_metadata(value: dict[str, Any] | None) -> dict[str, Any] | None:
    if value is None:
        return None
    clashes = sorted(RESERVED_METADATA_KEYS & value.keys())
    if clashes:
        raise ValueError(f"metadata cannot contain reserved keys: {', '.join(clashes)}")
    return value


class PhaseCreate(BaseModel):
    """Fields accepted when creating a top-level phase."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=255)
    description: str | None = None
    sequence_order: int = Field(default=1, ge=1)
    planned_start_date: date
    planned_duration_days: int = Field(default=0, ge=0)
    buffer_days: int = Field(default=0, ge=0)
    status: PhaseStatus = PhaseStatus.not_started
    actual_start_date: date | None = None
    actual_end_date: date | None = None
    predecessor_phase_id: UUID | None = None
    color: str = "gray"
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator(*_DATE_FIELDS, mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return _normalize_date(v)

    @field_validator("metadata")
    @classmethod
    def metadata_keys(cls, v: dict[str, Any]) -> dict[str, Any]:
        return _check_metadata(v)


class TaskCreate(PhaseCreate):
    """Fields accepted when creating a task under a phase.

    planned_duration_days may be omitted; the service fills in the configured
    default task duration.
    """

    planned_duration_days: int | None = Field(default=None, ge=0)


class PhaseUpdate(BaseModel):
    """Partial update of a phase or task. Only fields that are sent are applied."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2, max_length=255)
    description: str | None = None
    sequence_order: int | None = Field(default=None, ge=1)
    planned_start_date: date | None = None
    planned_duration_days: int | None = Field(default=None, ge=0)
    buffer_days: int | None = Field(default=None, ge=0)
    status: PhaseStatus | None = None
    actual_start_date: date | None = None
    actual_end_date: date | None = None
    predecessor_phase_id: UUID | None = None
    color: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator(*_DATE_FIELDS, mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return _normalize_date(v)

    @field_validator("metadata")
    @classmethod
    def metadata_keys(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        return _check_metadata(v)

    @model_validator(mode="after")
    def reject_nulls(self) -> PhaseUpdate:
        nulled = sorted(
            name for name in self.model_fields_set & _NOT_NULLABLE
            if getattr(self, name) is None
        )
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self

    def changes(self) -> dict[str, Any]:
        """The fields that were explicitly sent."""
        return self.model_dump(exclude_unset=True)


class StatusUpdate(BaseModel):
    """Status change with optional explicit actual dates."""

    model_config = ConfigDict(extra="forbid")

    status: PhaseStatus
    actual_start_date: date | None = None
    actual_end_date: date | None = None

    @field_validator("actual_start_date", "actual_end_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return _normalize_date(v)
