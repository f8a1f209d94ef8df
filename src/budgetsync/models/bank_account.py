"""Bank account record."""

from __future__ import annotations

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from budgetsync.models._base import PlaidBaseModel, PlaidEnum


class AccountType(PlaidEnum):
    INVESTMENT = "investment"
    CREDIT = "credit"
    DEPOSITORY = "depository"
    LOAN = "loan"
    OTHER = "other"


class BankAccount(PlaidBaseModel):
    """A linked bank account, keyed by the aggregator's account id.

    Column names of the ``bank_accounts`` table are camelCase, apart from
    ``accountId`` (the record id) and ``account_name``.
    """

    model_config = ConfigDict(alias_generator=to_camel)

    user: str
    id: str = Field(alias="accountId", min_length=1)
    available_balance: float | None = None
    current_balance: float | None = None
    iso_currency_code: str | None = None
    unofficial_currency_code: str | None = None
    mask: str | None = None
    account_name: str | None = Field(default=None, alias="account_name")
    official_name: str | None = None
    type: AccountType = AccountType.OTHER
    subtype: str | None = None

    @property
    def currency(self) -> str | None:
        return self.iso_currency_code or self.unofficial_currency_code

    @property
    def display_name(self) -> str:
        name = self.account_name or self.official_name or self.id
        return f"{name} ••{self.mask}" if self.mask else name
