import json
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

import plaid
import urllib3
from plaid.api import plaid_api
from plaid.model.country_code import CountryCode
from plaid.model.institutions_get_by_id_request import InstitutionsGetByIdRequest
from plaid.model.item_get_request import ItemGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions

from ..errors import UpstreamError
from ..utils.dates import to_day

logger = logging.getLogger(__name__)

PLAID_ENVIRONMENTS = {
    "sandbox": plaid.Environment.Sandbox,
    "production": plaid.Environment.Production,
}

# /transactions/get caps a single page at 500 rows
PAGE_SIZE = 500


@dataclass
class ProviderTransaction:
    transaction_id: str
    amount: Decimal
    date: date
    name: str
    merchant_name: Optional[str] = None
    pending: bool = False
    category: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, tx: dict) -> "ProviderTransaction":
        return cls(
            transaction_id=tx["transaction_id"],
            amount=Decimal(str(tx["amount"])),
            date=to_day(tx["date"]),
            name=tx.get("name") or "",
            merchant_name=tx.get("merchant_name") or None,
            pending=bool(tx.get("pending", False)),
            category=list(tx.get("category") or []),
        )


@dataclass
class ExchangeResult:
    access_token: str
    item_id: str


def _describe_api_exception(e: plaid.ApiException) -> str:
    try:
        body = json.loads(e.body or "{}")
    except ValueError:
        body = {}
    code = body.get("error_code", e.status)
    message = body.get("error_message") or e.reason
    return f"Plaid error {code}: {message}"


class PlaidGateway:
    """
    Async facade over the Plaid SDK for the endpoints the dashboard uses.

    The SDK is blocking, so every call runs in a worker thread. Any failure
    (Plaid error response or transport error) surfaces as UpstreamError.
    There is no retry.
    """

    def __init__(
        self,
        client_id: str,
        secret: str,
        env: str = "sandbox",
        client_name: str = "Spending Dashboard",
        country_codes: List[str] = None,
        api: plaid_api.PlaidApi = None,
    ):
        if env not in PLAID_ENVIRONMENTS:
            raise ValueError(f"Unknown PLAID_ENV '{env}'. Expected one of {sorted(PLAID_ENVIRONMENTS)}")
        self.client_name = client_name
        self.country_codes = country_codes or ["US"]

        if api is None:
            configuration = plaid.Configuration(
                host=PLAID_ENVIRONMENTS[env],
                api_key={
                    "clientId": client_id,
                    "secret": secret,
                },
            )
            api = plaid_api.PlaidApi(plaid.ApiClient(configuration))
            logger.info("Plaid client initialized for %s", env)
        self._api = api

    async def aclose(self):
        client = getattr(self._api, "api_client", None)
        if client is not None:
            client.close()

    async def _call(self, method: str, request) -> dict:
        try:
            response = await asyncio.to_thread(getattr(self._api, method), request)
        except plaid.ApiException as e:
            message = _describe_api_exception(e)
            logger.error("Plaid %s failed: %s", method, message)
            raise UpstreamError(message) from e
        except urllib3.exceptions.HTTPError as e:
            logger.error("Plaid %s transport error: %s", method, e)
            raise UpstreamError(f"Plaid request {method} failed: {e}") from e
        return response.to_dict()

    def _country_codes(self):
        return [CountryCode(code) for code in self.country_codes]

    async def create_link_token(self, user_id) -> str:
        request = LinkTokenCreateRequest(
            user=LinkTokenCreateRequestUser(client_user_id=str(user_id)),
            client_name=self.client_name,
            products=[Products("transactions")],
            country_codes=self._country_codes(),
            language="en",
        )
        data = await self._call("link_token_create", request)
        return data["link_token"]

    async def exchange_public_token(self, public_token: str) -> ExchangeResult:
        data = await self._call(
            "item_public_token_exchange", ItemPublicTokenExchangeRequest(public_token=public_token)
        )
        return ExchangeResult(access_token=data["access_token"], item_id=data["item_id"])

    async def get_item(self, access_token: str) -> dict:
        data = await self._call("item_get", ItemGetRequest(access_token=access_token))
        return data["item"]

    async def get_institution(self, institution_id: str) -> dict:
        request = InstitutionsGetByIdRequest(
            institution_id=institution_id,
            country_codes=self._country_codes(),
        )
        data = await self._call("institutions_get_by_id", request)
        return data["institution"]

    async def get_transactions(self, access_token: str, start: date, end: date) -> List[ProviderTransaction]:
        """
        All transactions in [start, end], following Plaid's offset paging.
        """
        transactions = []
        offset = 0
        while True:
            request = TransactionsGetRequest(
                access_token=access_token,
                start_date=start,
                end_date=end,
                options=TransactionsGetRequestOptions(count=PAGE_SIZE, offset=offset),
            )
            data = await self._call("transactions_get", request)
            page = data.get("transactions", [])
            transactions.extend(ProviderTransaction.from_api(tx) for tx in page)
            offset += len(page)
            total = data.get("total_transactions", offset)
            if not page or offset >= total:
                break
        return transactions
