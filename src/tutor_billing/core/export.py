'''
Renders a MonthlyLessonSummary as the monthly payment report (CSV text).

Layout:
    Monthly Payment Report - <Month YYYY>
    SUMMARY           (metric / value pairs)
    FAMILY BREAKDOWN  (one row per family, aggregator order)
    LESSON DETAILS    (one row per lesson, family order)
'''
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
from uuid import UUID

from ..common.config import settings
from ..common.exceptions import ReportExportError
from ..common.logger import log
from ..database.db_enums import LessonPaymentStatus
from ..models.lessons import Payment, month_start
from ..models.summaries import FamilyLessonSummary, MonthlyLessonSummary
from .invoicing import payment_status_for

CENT = Decimal("0.01")

PAYMENT_STATUS_LABELS = {
    LessonPaymentStatus.PAID: "Paid",
    LessonPaymentStatus.INVOICED: "Invoiced",
    LessonPaymentStatus.PREPAID: "Prepaid",
    LessonPaymentStatus.NONE: "UNPAID",
}


def format_currency(amount: Decimal) -> str:
    """Formats an amount with the currency symbol and exactly two decimals."""
    rounded = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    return f"{settings.CURRENCY_SYMBOL}{rounded}"


def csv_field(value: object) -> str:
    """Wraps a value in double quotes when it contains a comma."""
    text = "" if value is None else str(value)
    if "," in text:
        return f'"{text}"'
    return text


def csv_row(*values: object) -> str:
    return ",".join(csv_field(value) for value in values)


def format_month(month: date) -> str:
    return month.strftime("%B %Y")  # e.g., "October 2026"


def format_lesson_date(when: datetime) -> str:
    return f"{when:%b} {when.day}, {when.year}"  # e.g., "Oct 6, 2026"


def report_filename(month: date) -> str:
    """The conventional download name, e.g. Payment_Report_Oct_2026.csv."""
    return f"Payment_Report_{month:%b}_{month:%Y}.csv"


class ReportExporter:
    """Builds the CSV report. The whole document is built before it is returned."""

    def to_csv(
        self,
        summary: MonthlyLessonSummary,
        payments: Iterable[Payment],
        month: Optional[date] = None
    ) -> str:
        month = month_start(month or summary.month)
        log.info(f"Exporting payment report for {month:%Y-%m} ({len(summary.families)} families).")
        try:
            lines: list[str] = []
            lines.append(f"Monthly Payment Report - {format_month(month)}")
            lines.append("")
            lines.extend(self._summary_section(summary))
            lines.append("")
            lines.extend(self._family_section(summary, list(payments), month))
            lines.append("")
            lines.extend(self._lesson_section(summary))
            return "\n".join(lines)
        except ReportExportError:
            raise
        except Exception as e:
            log.error(f"Failed to export payment report for {month:%Y-%m}: {e}", exc_info=True)
            raise ReportExportError(
                f"Could not build the payment report for {format_month(month)}."
            ) from e

    @staticmethod
    def _summary_section(summary: MonthlyLessonSummary) -> list[str]:
        totals = summary.totals
        return [
            "SUMMARY",
            "Metric,Value",
            csv_row("Total Lessons", totals.total_lessons),
            csv_row("Completed", totals.total_completed),
            csv_row("Cancelled", totals.cancelled_count),
            csv_row("Expected Revenue", format_currency(totals.expected_amount)),
            csv_row("Ready to Bill", format_currency(totals.billable_amount)),
            csv_row("Invoiced (Unpaid)", format_currency(totals.invoiced_amount)),
            csv_row("Collected", format_currency(totals.collected_amount)),
        ]

    @staticmethod
    def _family_section(
        summary: MonthlyLessonSummary,
        payments: list[Payment],
        month: date
    ) -> list[str]:
        by_parent: dict[UUID, list[Payment]] = {}
        for payment in payments:
            if month_start(payment.month) == month:
                by_parent.setdefault(payment.parent_id, []).append(payment)

        lines = [
            "FAMILY BREAKDOWN",
            "Family,Lessons Completed,Lessons Cancelled,Amount Due,Amount Paid,Status",
        ]
        for family in summary.families:
            amount_due, amount_paid, status = _family_payment_columns(
                family, by_parent.get(family.parent_id, [])
            )
            lines.append(csv_row(
                family.parent_name,
                family.total_completed,
                family.cancelled_count,
                format_currency(amount_due),
                format_currency(amount_paid),
                status,
            ))
        return lines

    @staticmethod
    def _lesson_section(summary: MonthlyLessonSummary) -> list[str]:
        lines = [
            "LESSON DETAILS",
            "Family,Student,Subject,Date,Duration (min),Amount,Status,Payment Status",
        ]
        for family in summary.families:
            for lesson in family.lessons:
                lines.append(csv_row(
                    family.parent_name,
                    lesson.student_name or "Unknown",
                    lesson.subject,
                    format_lesson_date(lesson.scheduled_at),
                    lesson.duration_min,
                    format_currency(lesson.amount),
                    lesson.status.value,
                    PAYMENT_STATUS_LABELS[lesson.payment_status],
                ))
        return lines


def _family_payment_columns(
    family: FamilyLessonSummary,
    payments: list[Payment]
) -> tuple[Decimal, Decimal, str]:
    """Amount due, amount paid and status for one family row."""
    if not payments:
        status = "not invoiced" if family.total_completed > 0 else "no lessons"
        return family.expected_amount, Decimal("0"), status
    if len(payments) == 1:
        payment = payments[0]
        return payment.amount_due, payment.amount_paid, payment.status.value
    amount_due = sum((p.amount_due for p in payments), Decimal("0"))
    amount_paid = sum((p.amount_paid for p in payments), Decimal("0"))
    return amount_due, amount_paid, payment_status_for(amount_due, amount_paid).value


def to_csv(summary: MonthlyLessonSummary, payments: Iterable[Payment], month: Optional[date] = None) -> str:
    return ReportExporter().to_csv(summary, payments, month)
