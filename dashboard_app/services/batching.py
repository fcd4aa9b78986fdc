import logging
from sqlalchemy import update
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from ..models import Transaction, ProcessingBatch, BatchStatus

logger = logging.getLogger(__name__)

BATCH_SIZE = 50
DEFAULT_PROMPT = "Classify these transactions"


async def create_processing_batch(db: AsyncSession, limit: int = BATCH_SIZE, prompt: str = DEFAULT_PROMPT):
    """
    Group up to `limit` unprocessed, unbatched transactions into a new
    PENDING batch for later classification.

    Returns the batch, or None when there is nothing to batch. Nothing
    schedules this yet; scripts/create_processing_batch.py runs it by hand.
    """
    result = await db.execute(
        select(Transaction.id)
        .where(Transaction.is_processed.is_(False), Transaction.processing_batch_id.is_(None))
        .order_by(Transaction.id)
        .limit(limit)
    )
    ids = list(result.scalars().all())
    if not ids:
        return None

    batch = ProcessingBatch(prompt=prompt, response="", status=BatchStatus.PENDING)
    db.add(batch)
    await db.flush()

    await db.execute(
        update(Transaction)
        .where(Transaction.id.in_(ids))
        .values(processing_batch_id=batch.id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("Created batch %s with %d transactions", batch.id, len(ids))
    return batch
