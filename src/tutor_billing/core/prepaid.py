'''
This file handles prepaid session accounting.

A family may prepay a number of sessions per month, either for one subject or
(legacy) for all subjects. Completing a lesson draws one session from the
matching account; undoing the completion gives it back. The counter itself
lives behind a PrepaidAccountStore so the write can be a single atomic update.
'''
import abc
import asyncio
import uuid
from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from ..common.exceptions import BillingError, PrepaidLedgerError
from ..common.logger import log
from ..database.db_enums import BillingMode, LessonStatus, PaymentType
from ..models.lessons import Lesson, Parent, Payment, month_start
from ..models.prepaid import (
    PrepaidAccount,
    PrepaidAccountRef,
    PrepaidUsageCommand,
    UsageAdjustment,
)

# Whether a lesson with no subject-specific account may draw from the
# legacy (subject = None) account.
LEGACY_FALLBACK_ALLOWED: dict[BillingMode, bool] = {
    BillingMode.LEGACY: True,
    BillingMode.PER_SUBJECT: False,
}


def billing_mode_for(prepaid_subjects: Iterable[str]) -> BillingMode:
    """An empty per-subject list means the family is still on legacy billing."""
    return BillingMode.PER_SUBJECT if list(prepaid_subjects) else BillingMode.LEGACY


# --- 1. Storage Port ---

class PrepaidAccountStore(abc.ABC):
    """
    Persists prepaid usage counters.

    `apply` must be atomic per account: read, compute and write happen as one
    step, so two completions racing on the same account both count. When the
    command names a lesson, the store also remembers which lessons have been
    counted, making completion and reversal exactly-once per lesson.
    """

    @abc.abstractmethod
    async def apply(self, command: PrepaidUsageCommand) -> UsageAdjustment:
        ...


class InMemoryPrepaidAccountStore(PrepaidAccountStore):
    """
    A process-local store. Every mutation runs under one asyncio.Lock.
    """
    def __init__(self, accounts: Iterable[PrepaidAccount] = ()):
        self._usage: dict[UUID, int] = {}
        self._consumed_by: dict[UUID, UUID] = {}  # lesson_id -> account_id
        self._lock = asyncio.Lock()
        for account in accounts:
            self.register(account)

    def register(self, account: PrepaidAccount) -> None:
        """Starts tracking an account at its snapshot usage. Known accounts keep their count."""
        self._usage.setdefault(account.id, account.sessions_used)

    def sessions_used(self, account_id: UUID) -> int:
        return self._usage.get(account_id, 0)

    def consumed_account(self, lesson_id: UUID) -> Optional[UUID]:
        return self._consumed_by.get(lesson_id)

    async def apply(self, command: PrepaidUsageCommand) -> UsageAdjustment:
        account_id = command.account.account_id
        async with self._lock:
            if account_id not in self._usage:
                raise PrepaidLedgerError(f"Prepaid account {account_id} does not exist.")
            before = self._usage[account_id]
            lesson_id = command.lesson_id

            if lesson_id is not None:
                counted_on = self._consumed_by.get(lesson_id)
                if command.delta == 1 and counted_on is not None:
                    return self._unchanged(command, before)
                if command.delta == -1 and counted_on != account_id:
                    return self._unchanged(command, before)

            after = max(before + command.delta, 0)
            self._usage[account_id] = after
            if lesson_id is not None:
                if command.delta == 1:
                    self._consumed_by[lesson_id] = account_id
                else:
                    self._consumed_by.pop(lesson_id, None)

            return UsageAdjustment(
                account_id=account_id,
                lesson_id=lesson_id,
                delta=command.delta,
                sessions_used_before=before,
                sessions_used_after=after,
                applied=True,
                underflow=command.delta == -1 and before == 0,
            )

    @staticmethod
    def _unchanged(command: PrepaidUsageCommand, current: int) -> UsageAdjustment:
        return UsageAdjustment(
            account_id=command.account.account_id,
            lesson_id=command.lesson_id,
            delta=command.delta,
            sessions_used_before=current,
            sessions_used_after=current,
            applied=False,
        )


# --- 2. The Ledger ---

class PrepaidLedger:
    """
    Decides which prepaid account (if any) a lesson draws from, and applies
    usage changes through the injected store.

    Selection:
    1. the subject-specific account for (parent, month, subject)
    2. otherwise the legacy account for (parent, month), but only when the
       family has no per-subject prepaid list
    3. otherwise none: the lesson is invoiced
    """
    def __init__(
        self,
        parents: Iterable[Parent] = (),
        accounts: Iterable[PrepaidAccount] = (),
        store: Optional[PrepaidAccountStore] = None
    ):
        self.store = store
        self._prepaid_subjects: dict[UUID, list[str]] = {}
        self._accounts: dict[tuple[UUID, date, Optional[str]], PrepaidAccount] = {}
        for parent in parents:
            self._prepaid_subjects[parent.id] = list(parent.prepaid_subjects)
        for account in accounts:
            key = (account.parent_id, account.month, account.subject)
            if key in self._accounts:
                log.warning(
                    f"Duplicate prepaid account for parent {account.parent_id}, "
                    f"{account.month:%Y-%m}, subject {account.subject!r}. Keeping {account.id}."
                )
            self._accounts[key] = account

    @classmethod
    def from_payments(
        cls,
        parents: Iterable[Parent],
        payments: Iterable[Payment],
        store: Optional[PrepaidAccountStore] = None
    ) -> "PrepaidLedger":
        """Builds a ledger from the prepaid payments in a payment snapshot."""
        accounts = [
            PrepaidAccount.from_payment(payment)
            for payment in payments
            if payment.payment_type == PaymentType.PREPAID
        ]
        return cls(parents=parents, accounts=accounts, store=store)

    # --- Selection (pure) ---

    def billing_mode(self, parent_id: UUID) -> BillingMode:
        return billing_mode_for(self._prepaid_subjects.get(parent_id, []))

    def account(self, ref: PrepaidAccountRef) -> Optional[PrepaidAccount]:
        return self._accounts.get((ref.parent_id, ref.month, ref.subject))

    def should_consume_prepaid(
        self,
        parent_id: UUID,
        month: date,
        subject: str,
        prepaid_subjects: Optional[Iterable[str]] = None
    ) -> Optional[PrepaidAccountRef]:
        """
        `prepaid_subjects` is the family's per-subject list, used when the
        ledger was not built with that parent.
        """
        month = month_start(month)
        subject = subject.strip().lower()

        subject_account = self._accounts.get((parent_id, month, subject))
        if subject_account is not None:
            return subject_account.ref

        if parent_id in self._prepaid_subjects or prepaid_subjects is None:
            mode = self.billing_mode(parent_id)
        else:
            mode = billing_mode_for(prepaid_subjects)
        if not LEGACY_FALLBACK_ALLOWED[mode]:
            if (parent_id, month, None) in self._accounts:
                log.info(
                    f"Parent {parent_id} bills per subject; '{subject}' is not prepaid "
                    f"for {month:%Y-%m}, so the legacy account is left untouched."
                )
            return None

        legacy_account = self._accounts.get((parent_id, month, None))
        if legacy_account is not None:
            return legacy_account.ref
        return None

    def plan_usage(self, lesson: Lesson, delta: int) -> Optional[PrepaidUsageCommand]:
        """
        Returns the usage command a lesson's completion (+1) or reversal (-1)
        produces, or None when the lesson is not prepaid.
        """
        parent = lesson.parent
        if parent is None:
            log.warning(f"Lesson {lesson.id} has no student/parent; nothing to draw from.")
            return None
        ref = self.should_consume_prepaid(parent.id, lesson.month, lesson.subject, parent.prepaid_subjects)
        if ref is None:
            return None
        return PrepaidUsageCommand(account=ref, lesson_id=lesson.id, delta=delta)

    # --- Mutation (through the store) ---

    async def adjust_usage(
        self,
        ref: PrepaidAccountRef,
        delta: int,
        lesson_id: Optional[UUID] = None
    ) -> UsageAdjustment:
        """
        Moves `sessions_used` by +1 or -1, clamped at zero.
        Store failures are raised as PrepaidLedgerError so the caller can
        roll back the lesson change that triggered them.
        """
        if delta not in (1, -1):
            raise ValueError(f"Prepaid usage moves by exactly one session, got {delta}.")
        if self.store is None:
            raise PrepaidLedgerError("PrepaidLedger has no store to write usage to.")

        command = PrepaidUsageCommand(account=ref, lesson_id=lesson_id, delta=delta)
        try:
            adjustment = await self.store.apply(command)
        except BillingError:
            raise
        except Exception as e:
            log.error(f"Failed to adjust prepaid usage on account {ref.account_id}: {e}", exc_info=True)
            raise PrepaidLedgerError(
                f"Could not update prepaid sessions for account {ref.account_id}."
            ) from e

        if adjustment.underflow:
            log.warning(
                f"PrepaidUnderflow: account {ref.account_id} was already at 0 sessions used; "
                f"decrement for lesson {lesson_id} clamped."
            )
        if not adjustment.applied:
            log.info(
                f"Prepaid usage unchanged on account {ref.account_id} for lesson {lesson_id} "
                f"(delta {delta:+d} already reflected)."
            )

        account = self.account(ref)
        if account is not None:
            key = (account.parent_id, account.month, account.subject)
            self._accounts[key] = account.model_copy(
                update={"sessions_used": adjustment.sessions_used_after}
            )
        return adjustment

    async def record_completion(self, lesson: Lesson) -> Optional[UsageAdjustment]:
        """Draws one session for a lesson that was just completed."""
        if lesson.status == LessonStatus.CANCELLED:
            return None
        command = self.plan_usage(lesson, 1)
        if command is None:
            return None
        return await self.adjust_usage(command.account, 1, lesson_id=lesson.id)

    async def reverse_completion(self, lesson: Lesson) -> Optional[UsageAdjustment]:
        """Returns the session a lesson drew, using the same account selection."""
        command = self.plan_usage(lesson, -1)
        if command is None:
            return None
        return await self.adjust_usage(command.account, -1, lesson_id=lesson.id)


# --- 3. Monthly Rollover ---

def previous_month(month: date) -> date:
    month = month_start(month)
    if month.month == 1:
        return month.replace(year=month.year - 1, month=12)
    return month.replace(month=month.month - 1)


def rollover_sessions(previous: Optional[PrepaidAccount]) -> int:
    """Unused sessions from last month's account carry into the new one."""
    if previous is None:
        return 0
    return max(previous.sessions_prepaid - previous.sessions_used, 0)


def find_previous_account(
    accounts: Iterable[PrepaidAccount],
    parent_id: UUID,
    month: date,
    subject: Optional[str] = None
) -> Optional[PrepaidAccount]:
    """The same family's account for the same subject (or legacy) one month earlier."""
    target_month = previous_month(month)
    subject = subject.strip().lower() if subject else None
    for account in accounts:
        if (
            account.parent_id == parent_id
            and account.month == target_month
            and account.subject == subject
        ):
            return account
    return None


def open_prepaid_account(
    parent_id: UUID,
    month: date,
    sessions_purchased: int,
    subject: Optional[str] = None,
    previous: Optional[PrepaidAccount] = None,
    account_id: Optional[UUID] = None
) -> PrepaidAccount:
    """
    Creates the prepaid account for a new month. Sessions left over from
    `previous` are added on top of the purchased sessions.
    """
    if sessions_purchased < 0:
        raise ValueError(f"Cannot prepay a negative number of sessions ({sessions_purchased}).")
    carried = rollover_sessions(previous)
    if carried:
        log.info(f"Rolling {carried} unused session(s) into {month:%Y-%m} for parent {parent_id}.")
    return PrepaidAccount(
        id=account_id or uuid.uuid4(),
        parent_id=parent_id,
        month=month,
        subject=subject,
        sessions_prepaid=sessions_purchased + carried,
        sessions_used=0,
        sessions_rolled_over=carried,
    )
