from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from dashboard_app.config import Settings
from dashboard_app.database import Database
from dashboard_app.errors import UpstreamError
from dashboard_app.main import create_app
from dashboard_app.models import LinkedAccount, User
from dashboard_app.services.plaid import ExchangeResult, ProviderTransaction
from dashboard_app.utils.crypto import TokenCipher


def ptx(transaction_id, day, amount="10.00", name="Coffee", category=None, pending=False, merchant=None):
    """Shorthand for a provider transaction."""
    return ProviderTransaction(
        transaction_id=transaction_id,
        amount=Decimal(amount),
        date=date.fromisoformat(day),
        name=name,
        merchant_name=merchant,
        pending=pending,
        category=list(category or ["Food and Drink", "Coffee Shop"]),
    )


class FakeGateway:
    """
    In-memory stand-in for PlaidGateway.

    `transactions` maps access token -> provider transactions; get_transactions
    returns the ones inside the requested window. Every call is recorded.
    Exchanging the same public token again yields a rotated access token
    (access-a, then access-a-2, ...) for the same item.
    """

    def __init__(self):
        self.transactions = {}
        self.fail_tokens = set()
        self.calls = []
        self.exchanges = {}
        self.institution_name = "First Platypus Bank"

    async def create_link_token(self, user_id):
        return f"link-sandbox-{user_id}"

    async def exchange_public_token(self, public_token):
        suffix = public_token.split("-", 1)[-1]
        count = self.exchanges[suffix] = self.exchanges.get(suffix, 0) + 1
        access_token = f"access-{suffix}" if count == 1 else f"access-{suffix}-{count}"
        return ExchangeResult(access_token=access_token, item_id=f"item-{suffix}")

    async def get_item(self, access_token):
        return {"item_id": access_token.replace("access", "item"), "institution_id": "ins_109508"}

    async def get_institution(self, institution_id):
        return {"institution_id": institution_id, "name": self.institution_name}

    async def get_transactions(self, access_token, start, end):
        self.calls.append((access_token, start, end))
        if access_token in self.fail_tokens:
            raise UpstreamError("Plaid error ITEM_LOGIN_REQUIRED: login required")
        return [tx for tx in self.transactions.get(access_token, []) if start <= tx.date <= end]


@pytest.fixture
def cipher():
    return TokenCipher(Fernet.generate_key().decode())


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        fernet_key=Fernet.generate_key().decode(),
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def session(settings):
    db = Database(settings.database_url)
    await db.init()
    async with db.session() as s:
        yield s
    await db.dispose()


@pytest_asyncio.fixture
async def user(session):
    u = User(email="jane@example.com", password_hash="not-a-real-hash")
    session.add(u)
    await session.commit()
    return u


@pytest.fixture
def make_account(session, cipher):
    async def _make(user_id, suffix, cached_start=None, cached_end=None):
        account = LinkedAccount(
            user_id=user_id,
            item_id=f"item-{suffix}",
            access_token=cipher.encrypt(f"access-{suffix}"),
            institution_id="ins_109508",
            account_name="First Platypus Bank",
            cached_start=cached_start,
            cached_end=cached_end,
        )
        session.add(account)
        await session.commit()
        return account
    return _make


@pytest.fixture
def client(settings, gateway):
    app = create_app(settings, gateway=gateway)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers(client):
    def _headers(email="jane@example.com", password="hunter22"):
        resp = client.post("/register", json={"email": email, "password": password})
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}
    return _headers
