"""Pydantic models for Finicity API payloads.

The client treats these records as pass-through: only identifiers are
required, unknown keys are kept, and ``model_dump(by_alias=True)`` gives back
the payload as the API sent it.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = [
    "FinicityModel",
    "TokenResponse",
    "Customer",
    "Institution",
    "InstitutionList",
    "Account",
    "AccountList",
    "Categorization",
    "Transaction",
    "TransactionList",
    "ConnectLink",
    "ConnectionStatus",
]

# Finicity sends dates either as epoch seconds or as ISO strings.
Timestamp = Union[int, str]


class FinicityModel(BaseModel):
    """Base model accepting camelCase API keys and snake_case field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class TokenResponse(FinicityModel):
    token: str
    expires: Optional[Timestamp] = None


class Customer(FinicityModel):
    id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    type: Optional[str] = None
    created_date: Optional[Timestamp] = None


class Institution(FinicityModel):
    id: int
    name: Optional[str] = None
    logo: Optional[str] = None
    url: Optional[str] = None
    oauth_enabled: bool = False


class InstitutionList(FinicityModel):
    institutions: List[Institution] = Field(default_factory=list)
    more: bool = False
    found: Optional[int] = None
    displaying: Optional[int] = None


class Account(FinicityModel):
    id: str
    number: Optional[str] = None
    account_number_display: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    balance: Optional[float] = None
    balance_date: Optional[Timestamp] = None
    currency: Optional[str] = None
    institution_id: Optional[str] = None
    created_date: Optional[Timestamp] = None


class AccountList(FinicityModel):
    accounts: List[Account] = Field(default_factory=list)


class Categorization(FinicityModel):
    category: Optional[str] = None
    normalized_category: Optional[str] = None


class Transaction(FinicityModel):
    id: Union[int, str]
    amount: Optional[float] = None
    account_id: Optional[Union[int, str]] = None
    customer_id: Optional[Union[int, str]] = None
    status: Optional[str] = None
    description: Optional[str] = None
    memo: Optional[str] = None
    type: Optional[str] = None
    transaction_date: Optional[Timestamp] = None
    posted_date: Optional[Timestamp] = None
    created_date: Optional[Timestamp] = None
    categorization: Optional[Categorization] = None


class TransactionList(FinicityModel):
    transactions: List[Transaction] = Field(default_factory=list)
    more: bool = False


class ConnectLink(FinicityModel):
    link: str


class ConnectionStatus(FinicityModel):
    """Result of a connectivity check against the authentication endpoint."""

    api_url: str
    app_key_configured: bool
    partner_id_configured: bool
    partner_secret_configured: bool
    ok: bool = True
    message: str = "Finicity API connection successful"
