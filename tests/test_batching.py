import pytest
from sqlalchemy.future import select

from dashboard_app.models import BatchStatus, Transaction
from dashboard_app.services.batching import create_processing_batch
from dashboard_app.services.sync import upsert_transactions

from conftest import ptx


@pytest.mark.asyncio
async def test_batch_takes_at_most_limit_unbatched_transactions(session, user, make_account):
    account = await make_account(user.id, "a")
    await upsert_transactions(session, account.id, [ptx(f"tx-{i}", "2024-01-05") for i in range(5)])
    await session.commit()

    batch = await create_processing_batch(session, limit=3)
    assert batch.status == BatchStatus.PENDING

    second = await create_processing_batch(session, limit=3)
    assert second.id != batch.id

    result = await session.execute(
        select(Transaction.processing_batch_id).order_by(Transaction.id)
    )
    assert list(result.scalars()) == [batch.id] * 3 + [second.id] * 2

    assert await create_processing_batch(session, limit=3) is None
