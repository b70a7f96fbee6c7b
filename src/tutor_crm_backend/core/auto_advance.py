'''
Auto-advance sweep: completes lessons whose start time has passed.
'''
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..database.db_enums import LessonState
from .lesson_state import LessonSnapshot
from .transitions import completion_state


class StatusChange(BaseModel):
    lesson_id: Optional[UUID]
    student_id: Optional[UUID] = None
    previous_state: LessonState
    new_state: LessonState

    model_config = ConfigDict(frozen=True)


def is_due(lesson: LessonSnapshot, now: datetime) -> bool:
    """A lesson is due when it started before `now` and is neither completed nor cancelled."""
    return lesson.start_time < now and lesson.state in (LessonState.SCHEDULED, LessonState.PREPAID)


def sweep(now: datetime, lessons: Iterable[LessonSnapshot]) -> list[StatusChange]:
    """
    Returns the state change for every due lesson. Paid lessons become
    `completed`, unpaid ones become `debt`. Running it again on the updated
    lessons yields nothing, since completed lessons are never due.
    """
    changes = []
    for lesson in lessons:
        if not is_due(lesson, now):
            continue
        changes.append(StatusChange(
            lesson_id=lesson.id,
            student_id=lesson.student_id,
            previous_state=lesson.state,
            new_state=completion_state(lesson.state),
        ))
    return changes
