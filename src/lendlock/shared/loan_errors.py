"""
Loan-related error handling and exception classes.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional


class LoanError(Exception):
    """Base exception for loan-related errors."""

    def __init__(self, message: str, loan_id: Optional[int] = None):
        self.loan_id = loan_id
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)


class LoanValidationError(LoanError):
    """Raised when caller input is missing or malformed."""

    pass


class LoanNotFoundError(LoanError):
    """Raised when no loan exists for the requested identifier."""

    def __init__(self, loan_id: int):
        super().__init__(f"Loan not found (Loan: {loan_id})", loan_id)


class InvalidStateTransitionError(LoanError):
    """Raised when an operation is not legal in the loan's current state."""

    def __init__(self, loan_id: int, operation: str, current_state: str, required_state: str):
        self.operation = operation
        self.current_state = current_state
        self.required_state = required_state
        super().__init__(
            f"Cannot {operation} loan in state {current_state} "
            f"(Loan: {loan_id}, Required: {required_state})",
            loan_id,
        )


class InvestmentLimitExceededError(LoanError):
    """Raised when an investment would push the total above the principal."""

    def __init__(self, loan_id: int, principal_amount: Decimal, running_total: Decimal):
        self.principal_amount = principal_amount
        self.running_total = running_total
        super().__init__(
            f"Total invested amount exceeds principal amount "
            f"(Loan: {loan_id}, Total: {running_total}, Principal: {principal_amount})",
            loan_id,
        )


class StoreError(LoanError):
    """Raised when the loan store fails."""

    pass


class StoreReadError(StoreError):
    """Raised when loan records cannot be read."""

    pass


class StoreWriteError(StoreError):
    """Raised when a loan record cannot be written."""

    pass


class ConcurrentUpdateError(StoreWriteError):
    """Raised when a loan was modified by another writer since it was read."""

    def __init__(self, loan_id: int, expected_version: int):
        self.expected_version = expected_version
        super().__init__(
            f"Loan was modified concurrently "
            f"(Loan: {loan_id}, Expected version: {expected_version})",
            loan_id,
        )


class NotificationError(LoanError):
    """Raised when a notification cannot be dispatched."""

    def __init__(self, message: str, channel: str, loan_id: Optional[int] = None):
        self.channel = channel
        super().__init__(f"{message} (Channel: {channel})", loan_id)
