"""
Loan Engine data models.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any
from uuid import uuid4

from pydantic import BaseModel, Field

# Money is kept to the cent and well inside the default 28-digit decimal context
AMOUNT_MAX_DIGITS = 20
AMOUNT_DECIMAL_PLACES = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoanStatus(str, Enum):
    """Lifecycle states of a loan, in the only order they may be entered."""
    PROPOSED = "proposed"
    APPROVED = "approved"
    INVESTED = "invested"
    DISBURSED = "disbursed"

    @property
    def order(self) -> int:
        return _STATUS_ORDER.index(self)

    def next(self) -> Optional["LoanStatus"]:
        """Return the state that follows this one, or None for the last."""
        if self.order + 1 < len(_STATUS_ORDER):
            return _STATUS_ORDER[self.order + 1]
        return None


_STATUS_ORDER = [
    LoanStatus.PROPOSED,
    LoanStatus.APPROVED,
    LoanStatus.INVESTED,
    LoanStatus.DISBURSED,
]


class ApprovalInfo(BaseModel):
    """Details captured when a field validator approves a loan."""
    picture_proof_url: str = Field(description="Picture proof of the borrower visit")
    field_validator_id: int = Field(description="Employee id of the field validator")
    approval_date: datetime = Field(default_factory=utcnow)


class Investment(BaseModel):
    """A single investor contribution towards the principal."""
    investor_id: int
    invested_amount: Decimal


class DisbursementInfo(BaseModel):
    """Details captured when a field officer disburses a loan."""
    signed_agreement_letter_url: str = Field(description="Agreement letter signed by the borrower")
    field_officer_id: int = Field(description="Employee id of the field officer")
    disbursement_date: datetime = Field(default_factory=utcnow)


class OutboxMessage(BaseModel):
    """Notification persisted with a state change and not yet delivered."""
    message_id: str = Field(default_factory=lambda: uuid4().hex)
    channel: str
    payload: Dict[str, Any]
    created_at: datetime = Field(default_factory=utcnow)


class Loan(BaseModel):
    """Full loan record as kept in the store."""
    loan_id: int = Field(description="Unique identifier")
    borrower_id: int = Field(description="Identifier of the borrower")
    principal_amount: Decimal = Field(description="Amount of the loan requested")
    rate: Decimal = Field(description="Interest rate charged to the borrower")
    roi: Decimal = Field(description="Return on investment for investors")
    state: LoanStatus = LoanStatus.PROPOSED
    approval_info: Optional[ApprovalInfo] = None
    investments: List[Investment] = Field(default_factory=list)
    disbursement_info: Optional[DisbursementInfo] = None
    agreement_letter_url: str = ""

    # Bookkeeping
    created_at: datetime = Field(default_factory=utcnow)
    version: int = Field(0, description="Optimistic concurrency sequence number, 0 if never saved")
    outbox: List[OutboxMessage] = Field(default_factory=list)

    @property
    def total_invested(self) -> Decimal:
        """Sum of all recorded investments."""
        return sum((inv.invested_amount for inv in self.investments), Decimal("0"))

    def to_information(self) -> "LoanInformation":
        """Public projection without approval, investment or disbursement details."""
        return LoanInformation(
            loan_id=self.loan_id,
            borrower_id=self.borrower_id,
            principal_amount=self.principal_amount,
            rate=self.rate,
            roi=self.roi,
            agreement_letter_url=self.agreement_letter_url,
        )


class LoanInformation(BaseModel):
    """Public loan summary."""
    loan_id: int
    borrower_id: int
    principal_amount: Decimal
    rate: Decimal
    roi: Decimal
    agreement_letter_url: str = ""


# Request bodies

class CreateLoanRequest(BaseModel):
    """Request to propose a new loan."""
    borrower_id: int
    principal_amount: Decimal = Field(max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES)
    rate: Decimal = Field(max_digits=10, decimal_places=6)
    roi: Decimal = Field(max_digits=10, decimal_places=6)


class ApproveLoanRequest(BaseModel):
    """Request to approve a proposed loan."""
    picture_proof_url: str = ""
    field_validator_id: int = 0


class InvestRequest(BaseModel):
    """Request to invest in an approved loan."""
    investor_id: int = 0
    invested_amount: Decimal = Field(
        Decimal("0"), max_digits=AMOUNT_MAX_DIGITS, decimal_places=AMOUNT_DECIMAL_PLACES
    )


class DisburseLoanRequest(BaseModel):
    """Request to disburse an invested loan."""
    signed_agreement_letter_url: str = ""
    field_officer_id: int = 0


class CreateLoanResponse(BaseModel):
    """Response to a successful loan proposal."""
    loan_id: int
    message: str = "Loan created successfully"
