"""
Core Ledger Models for Kakeibo

These models define the strict schemas for the double-entry ledger:
accounts, journals, journal entries and category rules.

DESIGN DECISION: Amounts are non-negative integers in yen. There are no
fractional subunits, so there is nothing to round once a value is inside
the ledger. Coercion of untrusted input happens at the boundary
(see kakeibo.validation.extraction), never here.
"""

import datetime as dt
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """The five account classes of double-entry bookkeeping."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalSide(str, Enum):
    """Side on which an account type naturally accumulates value."""
    DEBIT = "debit"
    CREDIT = "credit"


class SourceType(str, Enum):
    """Where a journal came from."""
    MANUAL = "manual"
    RECEIPT_OCR = "receipt_ocr"
    CARD_SCREENSHOT = "card_screenshot"


ACCOUNT_TYPE_LABELS: dict[AccountType, str] = {
    AccountType.ASSET: "資産",
    AccountType.LIABILITY: "負債",
    AccountType.EQUITY: "純資産",
    AccountType.REVENUE: "収益",
    AccountType.EXPENSE: "費用",
}


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    A ledger account (勘定科目).

    `code` is unique per owner. Only display metadata (name, sort_order)
    may change once an entry references the account.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    code: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Account code, unique per owner (e.g. 5001)"
    )
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    sort_order: int = Field(default=0)
    created_at: dt.datetime = Field(default_factory=utcnow)

    @property
    def label(self) -> str:
        return f"{self.code} {self.name}"

    @property
    def type_label(self) -> str:
        return ACCOUNT_TYPE_LABELS[self.type]


class AccountTemplate(BaseModel):
    """Account definition without ownership, used for onboarding seeds."""

    code: str
    name: str
    type: AccountType
    sort_order: int


DEFAULT_ACCOUNTS: list[AccountTemplate] = [
    # Assets
    AccountTemplate(code="1001", name="現金", type=AccountType.ASSET, sort_order=1),
    AccountTemplate(code="1002", name="普通預金", type=AccountType.ASSET, sort_order=2),
    AccountTemplate(code="1003", name="有価証券", type=AccountType.ASSET, sort_order=3),
    AccountTemplate(code="1004", name="電子マネー", type=AccountType.ASSET, sort_order=4),
    # Liabilities
    AccountTemplate(code="2001", name="クレジットカード", type=AccountType.LIABILITY, sort_order=10),
    AccountTemplate(code="2002", name="ローン", type=AccountType.LIABILITY, sort_order=11),
    # Equity
    AccountTemplate(code="3001", name="元入金", type=AccountType.EQUITY, sort_order=20),
    # Revenue
    AccountTemplate(code="4001", name="給与収入", type=AccountType.REVENUE, sort_order=30),
    AccountTemplate(code="4002", name="副業収入", type=AccountType.REVENUE, sort_order=31),
    AccountTemplate(code="4003", name="利息・配当", type=AccountType.REVENUE, sort_order=32),
    AccountTemplate(code="4009", name="その他収入", type=AccountType.REVENUE, sort_order=39),
    # Expenses
    AccountTemplate(code="5001", name="食費", type=AccountType.EXPENSE, sort_order=50),
    AccountTemplate(code="5002", name="日用品費", type=AccountType.EXPENSE, sort_order=51),
    AccountTemplate(code="5003", name="交通費", type=AccountType.EXPENSE, sort_order=52),
    AccountTemplate(code="5004", name="通信費", type=AccountType.EXPENSE, sort_order=53),
    AccountTemplate(code="5005", name="水道光熱費", type=AccountType.EXPENSE, sort_order=54),
    AccountTemplate(code="5006", name="娯楽費", type=AccountType.EXPENSE, sort_order=55),
    AccountTemplate(code="5007", name="医療費", type=AccountType.EXPENSE, sort_order=56),
    AccountTemplate(code="5008", name="被服費", type=AccountType.EXPENSE, sort_order=57),
    AccountTemplate(code="5009", name="交際費", type=AccountType.EXPENSE, sort_order=58),
    AccountTemplate(code="5010", name="教育費", type=AccountType.EXPENSE, sort_order=59),
    AccountTemplate(code="5011", name="保険料", type=AccountType.EXPENSE, sort_order=60),
    AccountTemplate(code="5012", name="住居費", type=AccountType.EXPENSE, sort_order=61),
    AccountTemplate(code="5013", name="税金", type=AccountType.EXPENSE, sort_order=62),
    AccountTemplate(code="5099", name="その他費用", type=AccountType.EXPENSE, sort_order=99),
]


# =============================================================================
# JOURNALS
# =============================================================================

class JournalEntryDraft(BaseModel):
    """One account-amount line of a journal that has not been persisted yet."""

    account_id: UUID
    debit_amount: int = Field(default=0, ge=0)
    credit_amount: int = Field(default=0, ge=0)


class JournalEntry(BaseModel):
    """
    A persisted journal line.

    Owned exclusively by its journal and deleted with it.
    """

    id: UUID = Field(default_factory=uuid4)
    journal_id: UUID
    account_id: UUID
    debit_amount: int = Field(default=0, ge=0)
    credit_amount: int = Field(default=0, ge=0)


class Journal(BaseModel):
    """
    Journal header: one balanced economic event.

    CRITICAL: A journal is only ever persisted together with its entries,
    and only after the Balance Law check has passed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    date: dt.date
    description: str = Field(..., min_length=1, max_length=500)
    source_type: SourceType = Field(default=SourceType.MANUAL)
    source_image_ref: Optional[str] = Field(
        default=None,
        description="URL or storage key of the scanned image, if any"
    )
    created_at: dt.datetime = Field(default_factory=utcnow)


class JournalWithEntries(Journal):
    """Journal header together with its entries (the read shape)."""

    entries: list[JournalEntry] = Field(default_factory=list)

    @computed_field
    @property
    def total_amount(self) -> int:
        return sum(entry.debit_amount for entry in self.entries)


# =============================================================================
# CATEGORY RULES
# =============================================================================

class CategoryRule(BaseModel):
    """
    Learned keyword → account mapping.

    Unique per (owner_id, keyword); the most recent write wins.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    keyword: str = Field(..., min_length=1, max_length=200)
    account_id: UUID
    updated_at: dt.datetime = Field(default_factory=utcnow)
