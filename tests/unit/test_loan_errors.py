"""Unit tests for loan error classes."""

from decimal import Decimal

from lendlock.shared.loan_errors import (
    LoanError, LoanValidationError, LoanNotFoundError, InvalidStateTransitionError,
    InvestmentLimitExceededError, StoreError, StoreWriteError, ConcurrentUpdateError,
    NotificationError
)


def test_base_error_carries_loan_id_and_timestamp():
    error = LoanValidationError("approval info is incomplete", 12)

    assert isinstance(error, LoanError)
    assert error.loan_id == 12
    assert error.timestamp is not None
    assert str(error) == "approval info is incomplete"


def test_not_found():
    error = LoanNotFoundError(99)
    assert error.loan_id == 99
    assert "99" in str(error)


def test_invalid_state_transition():
    error = InvalidStateTransitionError(5, "invest in", "invested", "approved")

    assert error.operation == "invest in"
    assert error.current_state == "invested"
    assert error.required_state == "approved"
    assert "invested" in str(error)


def test_investment_limit_exceeded():
    error = InvestmentLimitExceededError(5, Decimal("1000"), Decimal("1001"))

    assert error.principal_amount == Decimal("1000")
    assert error.running_total == Decimal("1001")
    assert "1001" in str(error)


def test_concurrent_update_is_a_store_write_error():
    error = ConcurrentUpdateError(5, 2)

    assert isinstance(error, StoreWriteError)
    assert isinstance(error, StoreError)
    assert error.expected_version == 2


def test_notification_error():
    error = NotificationError("broker down", "email_agreement_letter", 5)

    assert error.channel == "email_agreement_letter"
    assert error.loan_id == 5
    assert "email_agreement_letter" in str(error)
