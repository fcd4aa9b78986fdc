import logging
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from ..models import LinkedAccount, User
from ..errors import ConflictError, NotFoundError, ValidationError
from ..utils.crypto import TokenCipher
from .plaid import PlaidGateway

logger = logging.getLogger(__name__)


async def list_accounts(db: AsyncSession, user_id: int):
    result = await db.execute(
        select(LinkedAccount).where(LinkedAccount.user_id == user_id).order_by(LinkedAccount.id)
    )
    return list(result.scalars().all())


async def link_account(db: AsyncSession, gateway: PlaidGateway, cipher: TokenCipher, user_id: int, public_token: str):
    """
    Exchange a Link public token and save the resulting item.

    Re-linking an item that already exists refreshes its access token
    and institution details in place; the row is keyed by Plaid item id.
    """
    if not public_token:
        raise ValidationError("public_token is required")

    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    exchange = await gateway.exchange_public_token(public_token)
    item = await gateway.get_item(exchange.access_token)
    institution_id = item.get("institution_id")

    institution_name = None
    if institution_id:
        institution = await gateway.get_institution(institution_id)
        institution_name = institution.get("name")

    result = await db.execute(select(LinkedAccount).where(LinkedAccount.item_id == exchange.item_id))
    account = result.scalar_one_or_none()

    if account:
        if account.user_id != user_id:
            raise ConflictError("Item is linked to another user")
        logger.info("Refreshing linked item %s for user %s", exchange.item_id, user_id)
        account.access_token = cipher.encrypt(exchange.access_token)
        account.institution_id = institution_id
        account.institution_name = institution_name
        account.account_name = institution_name or account.account_name
    else:
        logger.info("Linking new item %s for user %s", exchange.item_id, user_id)
        account = LinkedAccount(
            user_id=user_id,
            item_id=exchange.item_id,
            access_token=cipher.encrypt(exchange.access_token),
            institution_id=institution_id,
            institution_name=institution_name,
            account_name=institution_name,
        )
        db.add(account)

    await db.commit()
    return account
