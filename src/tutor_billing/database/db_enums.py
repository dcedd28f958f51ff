'''
Static enumerations shared by the ORM models, the pydantic models and the engine.
'''
import enum


class ListableEnum(str, enum.Enum):
    """A custom Enum base class that can list all member values."""
    @classmethod
    def get_all_names(cls) -> list[str]:
        return [member.value for member in cls]


class LessonStatus(ListableEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(ListableEnum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentType(ListableEnum):
    INVOICE = "invoice"
    PREPAID = "prepaid"


class LessonPaymentStatus(ListableEnum):
    """Where a single lesson stands relative to payments."""
    NONE = "none"
    INVOICED = "invoiced"
    PAID = "paid"
    PREPAID = "prepaid"


class BillingMode(ListableEnum):
    """
    How a family's completed lessons are drawn against prepaid accounts.
    LEGACY: no per-subject list; a subject-null account covers every subject.
    PER_SUBJECT: only subjects with their own account are prepaid, the rest are invoiced.
    """
    LEGACY = "legacy"
    PER_SUBJECT = "per_subject"


class DurationTier(enum.IntEnum):
    """Lesson lengths (minutes) that may carry an explicit tier price."""
    MIN_15 = 15
    MIN_30 = 30
    MIN_45 = 45
    MIN_60 = 60
    MIN_90 = 90
    MIN_120 = 120
