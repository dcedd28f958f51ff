"""
This file contains custom, application-specific exceptions.
"""

class BillingError(Exception):
    """Base class for every error raised by the billing engine."""
    pass

class InvalidRateInput(BillingError, ValueError):
    """Raised when a lesson or rate config cannot be priced (non-positive duration, negative rate)."""
    pass

class LessonTransitionError(BillingError, ValueError):
    """Raised when a lesson is moved through an illegal status transition."""
    pass

class PrepaidLedgerError(BillingError):
    """
    Raised when the prepaid usage counter could not be written.
    The caller must roll back the lesson status change that triggered it.
    """
    pass

class ReportExportError(BillingError):
    """Raised when a monthly report cannot be rendered. No partial output is produced."""
    pass
