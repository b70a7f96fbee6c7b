'''
Static enums shared by the ORM models, the core and the API models.
'''
import enum

# --- Base Enum Class ---
class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member names."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


# --- Persisted Enums ---

class LessonTypeEnum(ListableEnum):
    INDIVIDUAL = 'individual'
    GROUP = 'group'

class PaymentTypeEnum(ListableEnum):
    REGULAR = 'regular'
    PREPAYMENT = 'prepayment'

class CancellationOutcomeEnum(ListableEnum):
    REFUND = 'refund'   # cost goes back to the student's credit
    INCOME = 'income'   # cost is kept as realized revenue


# --- Derived (never stored) ---

class LessonState(ListableEnum):
    """
    The five-way lifecycle state of a lesson.
    Computed from the stored flags, never persisted itself.
    """
    SCHEDULED = 'scheduled'
    PREPAID = 'prepaid'
    COMPLETED = 'completed'
    DEBT = 'debt'
    CANCELLED = 'cancelled'

class RejectionKind(ListableEnum):
    INVALID_TRANSITION = 'invalid_transition'
    SCHEDULE_CONFLICT = 'schedule_conflict'
    INCONSISTENT_PAYMENT = 'inconsistent_payment'
