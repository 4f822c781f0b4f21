import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

VoucherKind = Literal["receipt", "payment", "journal"]


class Voucher(BaseModel):
    """Represents an accounting voucher stored in its fiscal year's database."""

    voucher_id: int
    voucher_no: str
    kind: VoucherKind
    party: str
    amount: int  # in cents
    voucher_date: datetime.date
    description: Optional[str] = None
    fiscal_year: str
    created_at: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc))

    @field_validator("amount")
    def amount_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Amount must be positive")
        return v

    @field_validator("voucher_no", "party")
    def must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Value must not be blank")
        return v.strip()


class KindTotal(BaseModel):
    """Sum of voucher amounts of one kind within a fiscal year."""

    kind: VoucherKind
    count: int
    total: int  # in cents
