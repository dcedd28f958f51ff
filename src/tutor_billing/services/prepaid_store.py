'''
PostgreSQL-backed prepaid usage store.
'''
from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.exceptions import PrepaidLedgerError
from ..common.logger import log
from ..core.prepaid import PrepaidAccountStore
from ..database.db_enums import PaymentType
from ..database.engine import get_db_session
from ..database import models as db_models
from ..models.prepaid import PrepaidUsageCommand, UsageAdjustment


class SqlPrepaidAccountStore(PrepaidAccountStore):
    """
    Applies usage commands to the `payments` table.

    The counter moves in one UPDATE that locks the row, so concurrent
    completions on the same account serialize in the database. The
    per-lesson bookkeeping lives in `prepaid_consumptions` and is written in
    the same transaction; a lesson already counted (or never counted) leaves
    the counter untouched.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def apply(self, command: PrepaidUsageCommand) -> UsageAdjustment:
        account_id = command.account.account_id
        lesson_id = command.lesson_id

        if lesson_id is not None:
            if command.delta == 1:
                changed = await self._record_consumption(lesson_id, account_id)
            else:
                changed = await self._release_consumption(lesson_id, account_id)
            if not changed:
                current = await self._current_usage(account_id)
                return UsageAdjustment(
                    account_id=account_id,
                    lesson_id=lesson_id,
                    delta=command.delta,
                    sessions_used_before=current,
                    sessions_used_after=current,
                    applied=False,
                )

        before, after = await self._move_counter(account_id, command.delta)
        log.info(f"Prepaid account {account_id}: sessions_used {before} -> {after} (lesson {lesson_id}).")
        return UsageAdjustment(
            account_id=account_id,
            lesson_id=lesson_id,
            delta=command.delta,
            sessions_used_before=before,
            sessions_used_after=after,
            applied=True,
            underflow=command.delta == -1 and before == 0,
        )

    # --- Statements ---

    async def _move_counter(self, account_id: UUID, delta: int) -> tuple[int, int]:
        """
        UPDATE payments SET sessions_used = GREATEST(sessions_used + delta, 0)
        returning the locked pre-update value alongside the new one.
        """
        previous = (
            select(db_models.Payments.id, db_models.Payments.sessions_used.label('sessions_used_before'))
            .where(
                db_models.Payments.id == account_id,
                db_models.Payments.payment_type == PaymentType.PREPAID.value
            )
            .with_for_update()
            .subquery('previous')
        )
        stmt = (
            update(db_models.Payments)
            .where(db_models.Payments.id == previous.c.id)
            .values(sessions_used=func.greatest(db_models.Payments.sessions_used + delta, 0))
            .returning(previous.c.sessions_used_before, db_models.Payments.sessions_used)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        row = result.first()
        if row is None:
            log.error(f"Prepaid account {account_id} not found while applying delta {delta:+d}.")
            raise PrepaidLedgerError(f"Prepaid account {account_id} does not exist.")
        return row[0], row[1]

    async def _record_consumption(self, lesson_id: UUID, account_id: UUID) -> bool:
        stmt = (
            pg_insert(db_models.PrepaidConsumptions)
            .values(lesson_id=lesson_id, payment_id=account_id)
            .on_conflict_do_nothing(index_elements=['lesson_id'])
            .returning(db_models.PrepaidConsumptions.lesson_id)
        )
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def _release_consumption(self, lesson_id: UUID, account_id: UUID) -> bool:
        stmt = (
            delete(db_models.PrepaidConsumptions)
            .where(
                db_models.PrepaidConsumptions.lesson_id == lesson_id,
                db_models.PrepaidConsumptions.payment_id == account_id
            )
            .returning(db_models.PrepaidConsumptions.lesson_id)
        )
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def _current_usage(self, account_id: UUID) -> int:
        stmt = select(db_models.Payments.sessions_used).where(db_models.Payments.id == account_id)
        result = await self.db.execute(stmt)
        current: Optional[int] = result.scalar_one_or_none()
        if current is None:
            raise PrepaidLedgerError(f"Prepaid account {account_id} does not exist.")
        return current
