"""Mock Finicity client for demos and CLI testing.

Returns synthetic data without making real API calls.
"""

import logging
import threading
import time
import uuid
from typing import Dict, List, Optional, Union
from urllib.parse import urlencode

from .client import (
    FinicityClient,
    MAX_PAGE_LIMIT,
    MAX_TRANSACTION_LIMIT,
    TOKEN_LIFETIME,
    DateParam,
    _check_paging,
    _require,
)
from .config import FinicityConfig
from .errors import ApiError
from .models import (
    Account,
    AccountList,
    ConnectLink,
    Customer,
    Institution,
    InstitutionList,
    TokenResponse,
    Transaction,
    TransactionList,
)

logger = logging.getLogger(__name__)

__all__ = ["MockFinicityClient"]

MOCK_CONNECT_URL = "https://connect2.finicity.com"

_INSTITUTIONS = [
    Institution(id=101732, name="FinBank", url="https://www.finbank.com", oauth_enabled=False),
    Institution(id=102105, name="FinBank Profiles - A", url="https://www.finbank.com"),
    Institution(id=102168, name="FinBank Billable", url="https://www.finbank.com"),
    Institution(id=102176, name="FinBank OAuth", oauth_enabled=True),
    Institution(id=5, name="Chase Bank", url="https://www.chase.com", oauth_enabled=True),
    Institution(id=6, name="Chase Business Online", url="https://www.chase.com", oauth_enabled=True),
    Institution(id=7, name="Bank of America", url="https://www.bankofamerica.com", oauth_enabled=True),
    Institution(id=8, name="Wells Fargo", url="https://www.wellsfargo.com", oauth_enabled=True),
]


class MockFinicityClient(FinicityClient):
    """Mock client that returns synthetic demo data instead of making API calls."""

    def __init__(self, config: Optional[FinicityConfig] = None, cache_options=None):
        logger.info("Initializing MockFinicityClient")
        self.config = config or FinicityConfig(
            app_key="mock-app-key", partner_id="mock-partner", partner_secret="mock-secret"
        )
        self.api_url = self.config.api_url
        self._token: Optional[str] = None
        self._token_expires_at: Optional[float] = None
        self._token_lock = threading.RLock()
        self._customers: Dict[str, Customer] = {}

    def close(self) -> None:
        pass

    def refresh_token(self) -> TokenResponse:
        logger.debug("MockClient: Issuing token")
        self._token = "mock-token"
        self._token_expires_at = time.monotonic() + TOKEN_LIFETIME
        return TokenResponse(token=self._token)

    generate_token = refresh_token

    def request(self, endpoint, method="GET", body=None, extra_headers=None, params=None):
        raise ApiError("Mock client does not issue raw requests", 501)

    def create_customer(
        self,
        username: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Customer:
        _require(username, "username")
        if any(c.username == username for c in self._customers.values()):
            raise ApiError("A customer with that username already exists", 409, "11000")
        customer = Customer(
            id=str(1000000000 + len(self._customers) + 1),
            username=username,
            first_name=first_name,
            last_name=last_name,
            type="testing",
            created_date=int(time.time()),
        )
        self._customers[customer.id] = customer
        logger.debug("MockClient: Created customer %s", customer.id)
        return customer

    def get_customer(self, customer_id: str) -> Customer:
        _require(customer_id, "customer_id")
        try:
            return self._customers[customer_id]
        except KeyError:
            raise ApiError(f"Customer not found: {customer_id}", 404, "14001") from None

    def get_institutions(
        self, search: Optional[str] = None, start: int = 1, limit: int = 25
    ) -> InstitutionList:
        _check_paging(start, limit, MAX_PAGE_LIMIT)
        logger.debug("MockClient: Searching institutions for %r", search)
        matches = [
            inst
            for inst in _INSTITUTIONS
            if not search or search.lower() in (inst.name or "").lower()
        ]
        offset = (start - 1) * limit
        page = matches[offset : offset + limit]
        return InstitutionList(
            institutions=page,
            more=offset + limit < len(matches),
            found=len(matches),
            displaying=len(page),
        )

    def get_institution(self, institution_id: Union[int, str]) -> Institution:
        for inst in _INSTITUTIONS:
            if str(inst.id) == str(institution_id):
                return inst
        raise ApiError(f"Institution not found: {institution_id}", 404)

    def get_accounts(self, customer_id: str) -> AccountList:
        self.get_customer(customer_id)
        return AccountList(accounts=self._accounts_for(customer_id))

    def _accounts_for(self, customer_id: str) -> List[Account]:
        return [
            Account(
                id=f"{customer_id}01",
                number="8000008888",
                account_number_display="8888",
                name="Checking",
                type="checking",
                status="active",
                balance=1501.24,
                currency="USD",
                institution_id="101732",
            ),
            Account(
                id=f"{customer_id}02",
                number="8000009999",
                account_number_display="9999",
                name="Savings",
                type="savings",
                status="active",
                balance=22327.3,
                currency="USD",
                institution_id="101732",
            ),
        ]

    def get_transactions(
        self,
        customer_id: str,
        from_date: DateParam,
        to_date: DateParam,
        account_id: Optional[str] = None,
        start: int = 1,
        limit: int = 25,
    ) -> TransactionList:
        _check_paging(start, limit, MAX_TRANSACTION_LIMIT)
        accounts = self.get_accounts(customer_id).accounts
        if account_id:
            accounts = [a for a in accounts if a.id == account_id]
        transactions = [
            Transaction(
                id=f"{account.id}{n:03d}",
                amount=amount,
                account_id=account.id,
                customer_id=customer_id,
                status="active",
                description=description,
                type="atm" if amount < 0 else "deposit",
            )
            for account in accounts
            for n, (amount, description) in enumerate(
                [(-42.17, "GROCERY STORE"), (-9.99, "STREAMING SERVICE"), (2500.0, "PAYROLL")]
            )
        ]
        offset = (start - 1) * limit
        return TransactionList(
            transactions=transactions[offset : offset + limit],
            more=offset + limit < len(transactions),
        )

    def generate_connect_url(
        self,
        customer_id: str,
        redirect_uri: str,
        institution_id: Optional[Union[int, str]] = None,
        webhook: Optional[str] = None,
        webhook_content_type: str = "application/json",
    ) -> ConnectLink:
        _require(customer_id, "customer_id")
        _require(redirect_uri, "redirect_uri")
        query = {
            "customerId": customer_id,
            "origin": "url",
            "partnerId": self.config.partner_id,
            "signature": uuid.uuid4().hex,
            "redirectUri": redirect_uri,
        }
        if institution_id:
            query["institutionId"] = str(institution_id)
        return ConnectLink(link=f"{MOCK_CONNECT_URL}/?{urlencode(query)}")
