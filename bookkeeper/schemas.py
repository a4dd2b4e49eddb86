"""
Pydantic schemas for request/response validation.
All API endpoints should use these schemas instead of raw dicts.
"""
import datetime as dt
from decimal import Decimal
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


# =============================================================================
# Account Schemas
# =============================================================================

class AccountCreate(BaseModel):
    """Schema for creating a bank account"""
    name: str = Field(..., min_length=1, max_length=100, description="Account display name")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Account name is required")
        return v


class AccountUpdate(AccountCreate):
    """Schema for renaming a bank account"""


class AccountResponse(BaseModel):
    """Schema for account response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_at: Optional[dt.datetime] = None
    balance: Decimal = Decimal("0")


class BalanceResponse(BaseModel):
    """Derived balance of one account"""
    account_id: int
    balance: Decimal


# =============================================================================
# Category Schemas
# =============================================================================

class CategoryCreate(BaseModel):
    """Schema for creating a category"""
    name: str = Field(..., max_length=100, description="Category name")
    parent_id: Optional[int] = Field(None, ge=1, description="Parent category ID")


class CategoryUpdate(BaseModel):
    """Schema for updating a category"""
    name: str = Field(..., max_length=100)
    parent_id: Optional[int] = Field(None, ge=1)


class CategoryResponse(BaseModel):
    """Schema for category response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    parent_id: Optional[int] = None
    is_transfer_category: bool = False
    linked_account_id: Optional[int] = None


class CategoryTreeNode(CategoryResponse):
    """Category with nested children"""
    children: List["CategoryTreeNode"] = Field(default_factory=list)


# =============================================================================
# Transaction Schemas
# =============================================================================

class TransactionCreate(BaseModel):
    """Schema for manual transaction entry"""
    bank_account_id: int = Field(..., ge=1)
    date: dt.date
    amount: Decimal
    description: str = Field(..., max_length=500)
    category_id: int = Field(..., ge=1)
    transfer_to_account_id: Optional[int] = Field(None, ge=1)


class TransactionUpdate(BaseModel):
    """Schema for a partial transaction update"""
    bank_account_id: Optional[int] = Field(None, ge=1)
    date: Optional[dt.date] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = Field(None, ge=1)
    transfer_to_account_id: Optional[int] = Field(None, ge=1)


class TransactionResponse(BaseModel):
    """Schema for transaction response"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    bank_account_id: int
    date: dt.date
    amount: Decimal
    description: str
    category_id: int
    transfer_to_account_id: Optional[int] = None
    transfer_pair_id: Optional[str] = None


class TransactionRow(TransactionResponse):
    """Listed transaction with display names and running balance"""
    bank_account_name: Optional[str] = None
    category_name: Optional[str] = None
    parent_category_name: Optional[str] = None
    transfer_to_account_name: Optional[str] = None
    running_balance: Decimal = Decimal("0")


class TransactionPage(BaseModel):
    """One page of listed transactions"""
    items: List[TransactionRow]
    total: int
    page: int
    page_size: int


class TransactionFilters(BaseModel):
    """Filters shared by listing, totals and reports"""
    bank_account_ids: List[int] = Field(default_factory=list)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    category_ids: List[int] = Field(default_factory=list)
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = Field(None, max_length=255)


SortField = Literal["date", "amount", "category", "account"]
SortDirection = Literal["asc", "desc"]


class TotalsResponse(BaseModel):
    """Sums over filtered transactions"""
    total: Decimal
    income: Decimal
    expenses: Decimal
    count: int


class BulkDeleteRequest(BaseModel):
    """Schema for deleting many transactions at once"""
    ids: List[int] = Field(..., min_length=1)


class BulkDeleteResponse(BaseModel):
    message: str
    deleted_ids: List[int]


class BulkUpdateRequest(BaseModel):
    """Schema for recategorising many transactions at once"""
    ids: List[int] = Field(..., min_length=1)
    category_id: int = Field(..., ge=1)
    transfer_to_account_id: Optional[int] = Field(None, ge=1)


class BulkUpdateResponse(BaseModel):
    message: str
    updated: List[TransactionResponse]


# =============================================================================
# Transfer Schemas
# =============================================================================

class TransferCreate(BaseModel):
    """Schema for creating a transfer between two owned accounts"""
    source_account_id: int = Field(..., ge=1)
    destination_account_id: int = Field(..., ge=1)
    date: dt.date
    amount: Decimal = Field(..., description="Magnitude; the sign is ignored")
    description: str = Field(..., max_length=500)
    category_id: int = Field(..., ge=1)


class TransferUpdate(BaseModel):
    """Schema for editing both halves of a transfer"""
    source_account_id: Optional[int] = Field(None, ge=1)
    destination_account_id: Optional[int] = Field(None, ge=1)
    date: Optional[dt.date] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = Field(None, ge=1)


class TransferResponse(BaseModel):
    """Both halves of a transfer pair"""
    transfer_pair_id: str
    outgoing: TransactionResponse
    incoming: TransactionResponse


# =============================================================================
# Import Schemas
# =============================================================================

class ParsedTransaction(BaseModel):
    """Staged, uncommitted transaction candidate"""
    index: int
    row: int
    date: dt.date
    description: str
    amount: Decimal
    running_balance: Optional[Decimal] = None
    needs_review: bool = False
    review_reason: Optional[str] = None
    raw_row: List[str] = Field(default_factory=list)


class ParseErrorItem(BaseModel):
    """A statement row that could not be interpreted"""
    row: int
    message: str
    data: List[str] = Field(default_factory=list)


class ParseResult(BaseModel):
    candidates: List[ParsedTransaction] = Field(default_factory=list)
    errors: List[ParseErrorItem] = Field(default_factory=list)


class StagedImportResponse(ParseResult):
    """Parse result held in staging under ``token``"""
    token: str
    expires_at: dt.datetime


class CandidateAssignment(BaseModel):
    """Category choice for one staged candidate"""
    index: int = Field(..., ge=0)
    category_id: int = Field(..., ge=1)
    transfer_to_account_id: Optional[int] = Field(None, ge=1)
    description: Optional[str] = Field(None, max_length=500)


class ImportCommitRequest(BaseModel):
    bank_account_id: int = Field(..., ge=1)
    assignments: List[CandidateAssignment] = Field(..., min_length=1)

    @model_validator(mode="after")
    def unique_indexes(self) -> "ImportCommitRequest":
        indexes = [a.index for a in self.assignments]
        if len(indexes) != len(set(indexes)):
            raise ValueError("Each candidate can only be assigned once")
        return self


class CommitErrorItem(BaseModel):
    index: int
    message: str


class ImportCommitResponse(BaseModel):
    imported: int
    skipped: int
    errors: List[CommitErrorItem] = Field(default_factory=list)


# =============================================================================
# Report Schemas
# =============================================================================

class CategorySummary(BaseModel):
    category_id: int
    category_name: str
    parent_category_name: Optional[str] = None
    total: Decimal
    count: int


class ReportResponse(BaseModel):
    summaries: List[CategorySummary]
    total_income: Decimal
    total_expenses: Decimal
    net_balance: Decimal


class MonthlyBucket(BaseModel):
    month: str
    label: str
    income: Decimal
    expenses: Decimal


# =============================================================================
# Common Response Schemas
# =============================================================================

class MessageResponse(BaseModel):
    """Generic message response"""
    message: str


class VersionResponse(BaseModel):
    version: int
