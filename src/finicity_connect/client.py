"""Finicity (Mastercard Open Banking US) API client.

Hides the partner token lifecycle behind typed single-call operations, returns
Pydantic models, and normalizes every failure into :class:`ApiError`.
"""

import json
import logging
import threading
import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, Optional, Type, TypedDict, TypeVar, Union
from urllib.parse import quote

import requests
import requests_cache
from pydantic import ValidationError

from .config import FinicityConfig
from .errors import ApiError, AuthError
from .models import (
    AccountList,
    ConnectionStatus,
    ConnectLink,
    Customer,
    FinicityModel,
    Institution,
    InstitutionList,
    TokenResponse,
    TransactionList,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# API endpoint constants
# ---------------------------------------------------------------------------
ENDPOINT_AUTHENTICATION = "/aggregation/v2/partners/authentication"
ENDPOINT_TESTING_CUSTOMERS = "/aggregation/v2/customers/testing"
ENDPOINT_CUSTOMER = "/aggregation/v2/customers/{customer_id}"
ENDPOINT_CUSTOMER_ACCOUNTS = "/aggregation/v2/customers/{customer_id}/accounts"
ENDPOINT_CUSTOMER_TRANSACTIONS = "/aggregation/v3/customers/{customer_id}/transactions"
ENDPOINT_INSTITUTIONS = "/institution/v2/institutions"
ENDPOINT_INSTITUTION = "/institution/v2/institutions/{institution_id}"
ENDPOINT_CONNECT_LITE = "/connect/v2/generate/lite"

# ---------------------------------------------------------------------------
# Token and paging limits
# ---------------------------------------------------------------------------
#: Seconds a fetched token is reused. Finicity tokens live 120 minutes.
TOKEN_LIFETIME = 110 * 60
MAX_PAGE_LIMIT = 100
MAX_TRANSACTION_LIMIT = 1000
MAX_PAGINATION_PAGES = 100

__all__ = [
    "FinicityClient",
    "CacheOptions",
    "ENDPOINT_AUTHENTICATION",
    "TOKEN_LIFETIME",
    "MAX_PAGE_LIMIT",
    "MAX_PAGINATION_PAGES",
]

DateParam = Union[str, int, date]
M = TypeVar("M", bound=FinicityModel)


class CacheOptions(TypedDict, total=False):
    cache_name: str
    backend: str
    expire_after: int
    urls_expire_after: Dict[str, int]
    allowable_methods: tuple
    old_data_on_error: bool
    match_headers: bool
    cache_control: bool


def _path(template: str, **ids: Any) -> str:
    return template.format(**{k: quote(str(v), safe="") for k, v in ids.items()})


def _date_param(value: DateParam) -> Union[str, int]:
    """Pass strings and epoch seconds through; turn dates into epoch seconds."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    if isinstance(value, date):
        return int(datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp())
    return value


def _require(value: Any, name: str) -> None:
    if not value or not str(value).strip():
        raise ValueError(f"{name} is required")


def _check_paging(start: int, limit: int, max_limit: int) -> None:
    if start < 1:
        raise ValueError("start must be a positive integer")
    if not 1 <= limit <= max_limit:
        raise ValueError(f"limit must be between 1 and {max_limit}")


def _parse(model: Type[M], data: Any) -> M:
    """Build ``model`` from a response body, or raise ``ApiError`` if it does not fit."""
    if not isinstance(data, dict):
        logger.warning("Unexpected %s response body: %r", model.__name__, data)
        raise ApiError(
            f"Unexpected response: expected a JSON object, got {type(data).__name__}",
            500,
        )
    try:
        return model(**data)
    except ValidationError as e:
        logger.warning("Unexpected %s response body: %s", model.__name__, e)
        raise ApiError(f"Unexpected response: {e}", 500) from e


class FinicityClient:
    """Finicity aggregation API client.

    A partner token is fetched on first use and reused for ``TOKEN_LIFETIME``
    seconds. Refreshes are single-flight: threads that find the token stale
    while another thread is refreshing wait for that refresh instead of
    starting their own.

    Args:
        config: Credentials and settings. Read from ``FINICITY_*`` environment
            variables when ``None``.
        cache_options: Optional keyword arguments forwarded to
            ``requests_cache.CachedSession``, merged over the defaults
            (in-memory backend, caching disabled except for institution
            lookups when ``config.cache_expire_after`` is positive).
    """

    def __init__(
        self,
        config: Optional[FinicityConfig] = None,
        cache_options: Optional[CacheOptions] = None,
    ):
        logger.info("Initializing FinicityClient")
        self.config = config if config is not None else FinicityConfig.from_env()
        self.api_url = self.config.api_url.rstrip("/")
        self._token: Optional[str] = None
        self._token_expires_at: Optional[float] = None
        self._token_lock = threading.RLock()

        missing = self.config.missing_credentials()
        if missing:
            logger.warning(
                "Finicity API credentials not configured: %s", ", ".join(missing)
            )

        default_cache_options: CacheOptions = {
            "cache_name": "finicity",
            "backend": "memory",
            "expire_after": requests_cache.DO_NOT_CACHE,
            "allowable_methods": ("GET",),
            "old_data_on_error": False,
            "match_headers": False,
            "cache_control": False,
        }
        if self.config.cache_expire_after > 0:
            default_cache_options["urls_expire_after"] = {
                f"*{ENDPOINT_INSTITUTIONS}*": self.config.cache_expire_after,
            }

        cache_config: CacheOptions = {**default_cache_options, **(cache_options or {})}
        logger.debug("Cache config: %s", cache_config)
        self.session = requests_cache.CachedSession(**cache_config)

    def __enter__(self) -> "FinicityClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    @property
    def partner_id(self) -> str:
        return self.config.partner_id

    @property
    def token_expires_at(self) -> Optional[float]:
        """``time.monotonic()`` instant after which the cached token is refreshed."""
        return self._token_expires_at

    # Token lifecycle
    def _live_token(self) -> Optional[str]:
        if (
            self._token
            and self._token_expires_at is not None
            and time.monotonic() < self._token_expires_at
        ):
            return self._token
        return None

    @property
    def token(self) -> str:
        """Return a valid token, refreshing if expired or missing."""
        return self.ensure_valid_token()

    def ensure_valid_token(self) -> str:
        """Return the cached token, fetching a new one if missing or expired."""
        token = self._live_token()
        if token:
            return token
        with self._token_lock:
            # Another thread may have refreshed while we waited for the lock.
            token = self._live_token()
            if token is None:
                token = self.refresh_token().token
        return token

    def invalidate_token(self) -> None:
        """Forget the cached token so the next call re-authenticates."""
        with self._token_lock:
            self._token = None
            self._token_expires_at = None

    def refresh_token(self) -> TokenResponse:
        """Fetch a new partner token and cache it for ``TOKEN_LIFETIME`` seconds.

        The expiry is fixed relative to now and ignores the ``expires`` value
        returned by the API.

        Raises:
            AuthError: With the HTTP status on a non-2xx response, or status
                500 on a transport failure or unreadable body.
        """
        logger.debug("Fetching new Finicity access token")
        with self._token_lock:
            try:
                response = requests.post(
                    f"{self.api_url}{ENDPOINT_AUTHENTICATION}",
                    json={
                        "partnerId": self.config.partner_id,
                        "partnerSecret": self.config.partner_secret,
                    },
                    headers={
                        "Content-Type": "application/json",
                        "Finicity-App-Key": self.config.app_key,
                        "Accept": "application/json",
                    },
                )
            except requests.RequestException as e:
                logger.warning("Authentication request failed: %s", e)
                raise AuthError(
                    f"Authentication failed: {e}", 500, transport_failure=True
                ) from e

            if not response.ok:
                logger.warning(
                    "Authentication failed with status %d", response.status_code
                )
                raise AuthError(
                    f"Authentication failed: {response.reason}", response.status_code
                )

            try:
                payload = response.json()
                if not isinstance(payload, dict):
                    raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
                data = TokenResponse(**payload)
            except ValueError as e:
                logger.warning("Unreadable authentication response: %s", e)
                raise AuthError(
                    f"Authentication failed: {e}", 500, transport_failure=True
                ) from e

            self._token = data.token
            self._token_expires_at = time.monotonic() + TOKEN_LIFETIME
        logger.debug("Access token obtained, reused for %ds", TOKEN_LIFETIME)
        return data

    generate_token = refresh_token

    # Request primitive
    def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send an authenticated request and return the decoded JSON body.

        Raises:
            AuthError: If a token could not be obtained.
            ApiError: On a non-2xx response (message and code taken from the
                body when it is JSON), or with status 500 on transport failure.
        """
        token = self.ensure_valid_token()
        headers = {
            "Content-Type": "application/json",
            "Finicity-App-Key": self.config.app_key,
            "Accept": "application/json",
            "Finicity-App-Token": token,
            **(extra_headers or {}),
        }
        url = f"{self.api_url}{endpoint}"

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                params=params,
                data=json.dumps(body) if body is not None else None,
            )
            logger.debug("%s %s -> %d", method, endpoint, response.status_code)
            if not response.ok:
                raise self._error_from_response(response)
            if not response.content:
                return None
            return response.json()
        except ApiError as e:
            logger.warning("%s %s failed: %s (status %d)", method, endpoint, e, e.status)
            raise
        except (requests.RequestException, ValueError) as e:
            logger.warning("%s %s failed: %s", method, endpoint, e)
            raise ApiError(
                f"Request failed: {e}", 500, transport_failure=True
            ) from e

    @staticmethod
    def _error_from_response(response: requests.Response) -> ApiError:
        text = response.text
        try:
            info = json.loads(text)
        except ValueError:
            info = None
        if not isinstance(info, dict):
            info = {"message": text}

        message = info.get("message") or f"API error: {response.status_code}"
        code = info.get("code")
        return ApiError(
            str(message), response.status_code, str(code) if code is not None else None
        )

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Send a GET request and return the JSON response body."""
        return self.request(endpoint, params=params)

    def post(self, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Any:
        """Send a POST request and return the JSON response body."""
        return self.request(endpoint, "POST", body)

    # Customers
    def create_customer(
        self,
        username: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> Customer:
        """Create a testing customer."""
        _require(username, "username")
        body = {"username": username}
        if first_name:
            body["firstName"] = first_name
        if last_name:
            body["lastName"] = last_name
        logger.debug("Creating customer %s", username)
        return _parse(Customer, self.post(ENDPOINT_TESTING_CUSTOMERS, body))

    def get_customer(self, customer_id: str) -> Customer:
        """Retrieve a customer by ID."""
        _require(customer_id, "customer_id")
        return _parse(Customer, self.get(_path(ENDPOINT_CUSTOMER, customer_id=customer_id)))

    # Institutions
    def get_institutions(
        self, search: Optional[str] = None, start: int = 1, limit: int = 25
    ) -> InstitutionList:
        """Search the institution directory.

        Args:
            search: Name filter; omitted from the query when empty.
            start: 1-based page index.
            limit: Page size, at most ``MAX_PAGE_LIMIT``.
        """
        _check_paging(start, limit, MAX_PAGE_LIMIT)
        params: Dict[str, Any] = {"start": start, "limit": limit}
        if search:
            params["search"] = search
        data = self.get(ENDPOINT_INSTITUTIONS, params=params)
        result = _parse(InstitutionList, data)
        logger.debug(
            "Fetched %d institutions (more=%s)", len(result.institutions), result.more
        )
        return result

    def iter_institutions(
        self,
        search: Optional[str] = None,
        limit: int = 25,
        max_pages: int = MAX_PAGINATION_PAGES,
    ) -> Iterator[Institution]:
        """Yield institutions page by page while the API reports ``more``."""
        start = 1
        while True:
            page = self.get_institutions(search, start=start, limit=limit)
            yield from page.institutions
            if not page.more:
                return
            if start >= max_pages:
                logger.warning(
                    "Pagination limit reached (%d pages) for search %r",
                    max_pages,
                    search,
                )
                return
            start += 1

    def get_institution(self, institution_id: Union[int, str]) -> Institution:
        """Retrieve a single institution by its ID.

        The API wraps the record in an ``institution`` key; both shapes are
        accepted.
        """
        _require(institution_id, "institution_id")
        data = self.get(_path(ENDPOINT_INSTITUTION, institution_id=institution_id))
        if isinstance(data, dict) and isinstance(data.get("institution"), dict):
            data = data["institution"]
        return _parse(Institution, data)

    # Accounts and transactions
    def get_accounts(self, customer_id: str) -> AccountList:
        """List the accounts of a customer."""
        _require(customer_id, "customer_id")
        data = self.get(_path(ENDPOINT_CUSTOMER_ACCOUNTS, customer_id=customer_id))
        return _parse(AccountList, data)

    def get_transactions(
        self,
        customer_id: str,
        from_date: DateParam,
        to_date: DateParam,
        account_id: Optional[str] = None,
        start: int = 1,
        limit: int = 25,
    ) -> TransactionList:
        """List a customer's transactions between two dates.

        Dates may be strings or epoch seconds (sent as-is) or ``date`` objects
        (sent as epoch seconds at UTC midnight). ``account_id`` is only added
        to the query when given.
        """
        _require(customer_id, "customer_id")
        _check_paging(start, limit, MAX_TRANSACTION_LIMIT)
        params: Dict[str, Any] = {
            "fromDate": _date_param(from_date),
            "toDate": _date_param(to_date),
            "start": start,
            "limit": limit,
        }
        if account_id:
            params["accountId"] = account_id
        logger.debug(
            "Fetching transactions for customer %s from %s to %s",
            customer_id,
            params["fromDate"],
            params["toDate"],
        )
        data = self.get(
            _path(ENDPOINT_CUSTOMER_TRANSACTIONS, customer_id=customer_id),
            params=params,
        )
        return _parse(TransactionList, data)

    # Connect
    def generate_connect_url(
        self,
        customer_id: str,
        redirect_uri: str,
        institution_id: Optional[Union[int, str]] = None,
        webhook: Optional[str] = None,
        webhook_content_type: str = "application/json",
    ) -> ConnectLink:
        """Generate a single-use Connect Lite link for a customer.

        Unset ``institution_id`` and ``webhook`` are left out of the payload.
        """
        _require(customer_id, "customer_id")
        _require(redirect_uri, "redirect_uri")
        body: Dict[str, Any] = {
            "partnerId": self.config.partner_id,
            "customerId": customer_id,
            "redirectUri": redirect_uri,
        }
        if institution_id:
            body["institutionId"] = institution_id
        if webhook:
            body["webhook"] = webhook
        body["webhookContentType"] = webhook_content_type
        return _parse(ConnectLink, self.post(ENDPOINT_CONNECT_LITE, body))

    # Convenience
    def check_connection(self) -> ConnectionStatus:
        """Authenticate once and report which credentials are configured.

        Raises:
            AuthError: If authentication fails.
        """
        self.refresh_token()
        return ConnectionStatus(
            api_url=self.api_url,
            app_key_configured=bool(self.config.app_key),
            partner_id_configured=bool(self.config.partner_id),
            partner_secret_configured=bool(self.config.partner_secret),
        )
