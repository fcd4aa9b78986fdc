"""
Transaction synchronization.

Each linked account remembers the inclusive range of days it has already
pulled from Plaid (cached_start..cached_end). A request for a date range
only goes to Plaid for accounts whose cached range does not cover it;
everything is then served from the local transactions table.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy import update, case, or_
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from ..models import LinkedAccount, Transaction
from ..errors import NotFoundError, UpstreamError, ValidationError
from ..utils.crypto import TokenCipher
from ..utils.dates import resolve_range
from .plaid import PlaidGateway, ProviderTransaction

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
FETCH_MODES = ("window", "gap")
UPSERT_CHUNK = 500

Window = Tuple[date, date]


@dataclass
class SyncResult:
    transactions: List[dict]
    start: date
    end: date
    refreshed: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def count(self):
        return len(self.transactions)


def needs_fetch(cached_start: Optional[date], cached_end: Optional[date], start: date, end: date) -> bool:
    if cached_start is None or cached_end is None:
        return True
    return start < cached_start or end > cached_end


def plan_fetch(cached_start: Optional[date], cached_end: Optional[date], start: date, end: date, mode: str = "window") -> List[Window]:
    """
    Windows to request from Plaid so that, once fetched, the cached range
    can be widened without claiming any day that was never pulled.

    "window" re-fetches the whole request (stretched to touch the cached
    range when the two are disjoint); "gap" fetches only the uncovered days
    on either side of the cached range.
    """
    if mode not in FETCH_MODES:
        raise ValueError(f"Unknown fetch mode '{mode}'")

    if not needs_fetch(cached_start, cached_end, start, end):
        return []
    if cached_start is None or cached_end is None:
        return [(start, end)]

    if mode == "gap":
        windows = []
        if start < cached_start:
            windows.append((start, cached_start - ONE_DAY))
        if end > cached_end:
            windows.append((cached_end + ONE_DAY, end))
        return windows

    fetch_start, fetch_end = start, end
    if fetch_start > cached_end + ONE_DAY:
        fetch_start = cached_end + ONE_DAY
    if fetch_end < cached_start - ONE_DAY:
        fetch_end = cached_start - ONE_DAY
    return [(fetch_start, fetch_end)]


async def upsert_transactions(db: AsyncSession, linked_account_id: int, provider_txs: Iterable[ProviderTransaction]) -> int:
    """
    Insert or update rows keyed by Plaid transaction id. Latest data wins.
    Does not commit.
    """
    incoming: Dict[str, ProviderTransaction] = {}
    for tx in provider_txs:
        incoming[tx.transaction_id] = tx

    ids = list(incoming)
    existing: Dict[str, Transaction] = {}
    for i in range(0, len(ids), UPSERT_CHUNK):
        chunk = ids[i:i + UPSERT_CHUNK]
        result = await db.execute(select(Transaction).where(Transaction.transaction_id.in_(chunk)))
        for row in result.scalars():
            existing[row.transaction_id] = row

    for transaction_id, tx in incoming.items():
        row = existing.get(transaction_id)
        if row is None:
            db.add(Transaction(
                transaction_id=transaction_id,
                linked_account_id=linked_account_id,
                amount=tx.amount,
                date=tx.date,
                name=tx.name,
                merchant_name=tx.merchant_name,
                pending=tx.pending,
                categories=list(tx.category),
                is_processed=False,
            ))
        else:
            row.amount = tx.amount
            row.date = tx.date
            row.name = tx.name
            row.merchant_name = tx.merchant_name
            row.pending = tx.pending
            row.categories = list(tx.category)

    await db.flush()
    return len(incoming)


async def widen_cached_range(db: AsyncSession, linked_account_id: int, start: date, end: date) -> Tuple[date, date]:
    """
    Grow the stored range to include [start, end] in a single UPDATE.

    The comparison happens inside the statement, so two requests widening
    the same account concurrently can never shrink what the other wrote.
    Does not commit.
    """
    stmt = (
        update(LinkedAccount)
        .where(LinkedAccount.id == linked_account_id)
        .values(
            cached_start=case(
                (or_(LinkedAccount.cached_start.is_(None), LinkedAccount.cached_start > start), start),
                else_=LinkedAccount.cached_start,
            ),
            cached_end=case(
                (or_(LinkedAccount.cached_end.is_(None), LinkedAccount.cached_end < end), end),
                else_=LinkedAccount.cached_end,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)

    result = await db.execute(
        select(LinkedAccount)
        .where(LinkedAccount.id == linked_account_id)
        .execution_options(populate_existing=True)
    )
    account = result.scalar_one()
    return account.cached_start, account.cached_end


async def cached_transactions(db: AsyncSession, linked_account_id: int, start: date, end: date) -> List[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(
            Transaction.linked_account_id == linked_account_id,
            Transaction.date >= start,
            Transaction.date <= end,
        )
        .order_by(Transaction.id)
    )
    return list(result.scalars().all())


async def _refresh_account(db, gateway, cipher, account_id, access_token, windows):
    token = cipher.decrypt(access_token)
    fetched = 0
    for window_start, window_end in windows:
        provider_txs = await gateway.get_transactions(token, window_start, window_end)
        fetched += await upsert_transactions(db, account_id, provider_txs)

    new_start = min(w[0] for w in windows)
    new_end = max(w[1] for w in windows)
    bounds = await widen_cached_range(db, account_id, new_start, new_end)
    await db.commit()
    return fetched, bounds


async def fetch_transactions(
    db: AsyncSession,
    gateway: PlaidGateway,
    cipher: TokenCipher,
    user_id: int,
    start=None,
    end=None,
    today: date = None,
    lookback_days: int = 30,
    fetch_mode: str = "window",
) -> SyncResult:
    """
    Transactions for every account the user has linked, within [start, end].

    Accounts are processed one after another. A failure in one account is
    logged and rolled back; whatever that account already had cached is
    still returned.

    Raises:
        NotFoundError: the user has no linked accounts.
        UpstreamError: every account failed and none had anything cached.
    """
    if fetch_mode not in FETCH_MODES:
        raise ValidationError(f"Unknown fetch mode '{fetch_mode}'")
    start, end = resolve_range(start, end, today=today, lookback_days=lookback_days)

    accounts = await db.execute(
        select(
            LinkedAccount.id,
            LinkedAccount.access_token,
            LinkedAccount.cached_start,
            LinkedAccount.cached_end,
        )
        .where(LinkedAccount.user_id == user_id)
        .order_by(LinkedAccount.id)
    )
    # plain tuples: survive a rollback without touching expired ORM state
    accounts = accounts.all()
    if not accounts:
        raise NotFoundError("No linked account found for user")

    result = SyncResult(transactions=[], start=start, end=end)
    had_cache = False

    for account_id, access_token, cached_start, cached_end in accounts:
        if cached_start is not None and cached_end is not None:
            had_cache = True

        windows = plan_fetch(cached_start, cached_end, start, end, fetch_mode)
        if windows:
            logger.info(
                "Fetching from Plaid for account %s, windows %s",
                account_id, ", ".join(f"{a}..{b}" for a, b in windows),
            )
            try:
                fetched, bounds = await _refresh_account(db, gateway, cipher, account_id, access_token, windows)
                result.refreshed.append(account_id)
                logger.info("Account %s: upserted %d transactions, cached range now %s..%s",
                            account_id, fetched, bounds[0], bounds[1])
            except Exception:
                logger.exception("Error refreshing account %s, serving cache only", account_id)
                await db.rollback()
                result.failed.append(account_id)

        logger.info("Reading cache for account %s, %s..%s", account_id, start, end)
        try:
            rows = await cached_transactions(db, account_id, start, end)
        except Exception:
            logger.exception("Error reading cached transactions for account %s", account_id)
            await db.rollback()
            if account_id not in result.failed:
                result.failed.append(account_id)
            continue
        result.transactions.extend(row.to_dict() for row in rows)

    if len(result.failed) == len(accounts) and not had_cache:
        raise UpstreamError("Could not fetch transactions from Plaid for any linked account")

    return result
