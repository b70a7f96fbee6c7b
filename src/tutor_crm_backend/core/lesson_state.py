'''
Lesson state derivation.

Lessons are stored with three independent flags (completed / paid / cancelled).
Everything above the storage layer works with the tagged `LessonState` instead;
the helpers here are the only place where the two representations meet.
'''
from datetime import datetime, timedelta
from typing import NamedTuple, Optional, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..database.db_enums import LessonState
from ..common.clock import as_utc
from ..common.config import settings


class LessonFlags(NamedTuple):
    completed: bool
    paid: bool
    cancelled: bool


def derive_state(completed: bool, paid: bool, cancelled: bool) -> LessonState:
    """
    Maps the three stored flags to a single lifecycle state.
    `cancelled` wins over everything else.
    """
    if cancelled:
        return LessonState.CANCELLED
    if completed and paid:
        return LessonState.COMPLETED
    if completed:
        return LessonState.DEBT
    if paid:
        return LessonState.PREPAID
    return LessonState.SCHEDULED


def state_from_flags(flags: LessonFlags) -> LessonState:
    return derive_state(flags.completed, flags.paid, flags.cancelled)


# completed / paid pairs for every non-cancelled state
_STATE_FLAGS: dict[LessonState, tuple[bool, bool]] = {
    LessonState.SCHEDULED: (False, False),
    LessonState.PREPAID: (False, True),
    LessonState.COMPLETED: (True, True),
    LessonState.DEBT: (True, False),
}


def flags_for_state(state: LessonState) -> tuple[bool, bool]:
    """
    Returns the (completed, paid) flags that represent `state` in storage.
    A cancelled lesson keeps whatever completed/paid flags it had, so it has no
    canonical pair and is rejected here.
    """
    if state == LessonState.CANCELLED:
        raise ValueError("Cancelled lessons have no canonical completed/paid flags.")
    return _STATE_FLAGS[state]


class LessonSnapshot(BaseModel):
    """
    Immutable, storage-independent view of a lesson used by the core.
    """
    id: Optional[UUID] = None
    student_id: Optional[UUID] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    cost: int = 0
    state: LessonState = LessonState.SCHEDULED

    model_config = ConfigDict(frozen=True)

    @property
    def effective_end(self) -> datetime:
        """The end time, or the default lesson length when none was given."""
        if self.end_time is not None:
            return self.end_time
        return self.start_time + timedelta(minutes=settings.DEFAULT_LESSON_DURATION_MINUTES)

    @classmethod
    def from_record(cls, record: Any) -> 'LessonSnapshot':
        """
        Builds a snapshot from anything carrying the stored lesson columns
        (normally a `db_models.Lessons` row).
        """
        return cls(
            id=record.id,
            student_id=record.student_id,
            start_time=as_utc(record.start_time),
            end_time=as_utc(record.end_time) if record.end_time is not None else None,
            cost=record.cost,
            state=derive_state(record.is_completed, record.is_paid, record.is_cancelled),
        )
