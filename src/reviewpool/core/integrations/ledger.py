"""SQL-backed XP ledger."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import DuplicateTransactionError
from ..models import TransactionType, XpTransaction
from ..storage.repositories import UserRepository
from .base import LedgerService

logger = logging.getLogger(__name__)


class SqlLedgerService(LedgerService):
    """Ledger stored in the xp_transactions table.

    Recording a transaction also moves the user's total and weekly XP by
    the same amount inside the caller's transaction.
    """

    async def record_xp_transaction(
        self,
        session: AsyncSession,
        user_id: int,
        amount: int,
        transaction_type: TransactionType,
        description: str,
        source_id: Optional[str] = None,
    ) -> XpTransaction:
        transaction = XpTransaction(
            user_id=user_id,
            amount=amount,
            type=transaction_type,
            description=description,
            source_id=source_id,
        )

        try:
            # Savepoint so a duplicate leaves the outer transaction usable
            async with session.begin_nested():
                session.add(transaction)
                await session.flush()
        except IntegrityError as e:
            if source_id is None:
                raise
            raise DuplicateTransactionError(user_id, transaction_type.value, source_id) from e

        await UserRepository(session).apply_xp_delta(user_id, amount)

        logger.debug(
            f"Recorded {transaction_type.value} of {amount} XP for user {user_id}"
            + (f" (source {source_id})" if source_id else "")
        )
        return transaction

    async def has_transaction(
        self,
        session: AsyncSession,
        user_id: int,
        transaction_type: TransactionType,
        source_id: str,
    ) -> bool:
        result = await session.execute(
            select(XpTransaction.id)
            .where(XpTransaction.user_id == user_id)
            .where(XpTransaction.type == transaction_type)
            .where(XpTransaction.source_id == source_id)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None
