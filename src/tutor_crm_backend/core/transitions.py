'''
Validation of lesson flag changes.

Rejections are returned as values; the service layer decides how to surface them.
'''
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..database.db_enums import LessonState, RejectionKind
from .lesson_state import derive_state, flags_for_state


class LessonChange(BaseModel):
    """A proposed change to a lesson's flags. `None` means "leave as is"."""
    completed: Optional[bool] = None
    paid: Optional[bool] = None
    cancelled: Optional[bool] = None

    model_config = ConfigDict(frozen=True)

    def is_empty(self) -> bool:
        return self.completed is None and self.paid is None and self.cancelled is None


class TransitionResult(BaseModel):
    accepted: bool
    previous_state: LessonState
    resulting_state: LessonState
    reason: Optional[str] = None
    kind: Optional[RejectionKind] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def accept(cls, previous: LessonState, resulting: LessonState) -> 'TransitionResult':
        return cls(accepted=True, previous_state=previous, resulting_state=resulting)

    @classmethod
    def reject(cls, previous: LessonState, reason: str) -> 'TransitionResult':
        return cls(
            accepted=False,
            previous_state=previous,
            resulting_state=previous,
            reason=reason,
            kind=RejectionKind.INVALID_TRANSITION,
        )


def validate_transition(current: LessonState, change: LessonChange) -> TransitionResult:
    """
    Accepts or rejects `change` for a lesson currently in `current` and computes
    the resulting state.

    Allowed:
      scheduled -> prepaid | debt (completed) | completed (completed + paid) | cancelled
      prepaid   -> completed | cancelled | scheduled (payment removed before the lesson)
      debt      -> completed (the debt is paid)
    Rejected:
      any change on a cancelled lesson, un-completing, removing payment from a
      completed lesson, cancelling a lesson that already took place.
    """
    if current == LessonState.CANCELLED:
        if change.is_empty():
            return TransitionResult.accept(current, current)
        return TransitionResult.reject(current, "The lesson is cancelled; its status can no longer change.")

    completed, paid = flags_for_state(current)

    if change.cancelled:
        if change.completed is not None or change.paid is not None:
            return TransitionResult.reject(current, "Cancellation cannot be combined with other status changes.")
        if completed:
            return TransitionResult.reject(current, "A lesson that has already taken place cannot be cancelled.")
        return TransitionResult.accept(current, LessonState.CANCELLED)

    new_completed = completed if change.completed is None else change.completed
    new_paid = paid if change.paid is None else change.paid

    if completed and not new_completed:
        return TransitionResult.reject(current, "A completed lesson cannot be marked as not completed.")

    if paid and not new_paid and new_completed:
        return TransitionResult.reject(current, "Payment cannot be removed from a completed lesson.")

    return TransitionResult.accept(current, derive_state(new_completed, new_paid, False))


def completion_state(current: LessonState) -> LessonState:
    """
    The state a lesson reaches when it is completed: paid lessons become
    `completed`, unpaid ones become `debt`. Other states are returned unchanged.
    """
    if current == LessonState.PREPAID:
        return LessonState.COMPLETED
    if current == LessonState.SCHEDULED:
        return LessonState.DEBT
    return current
