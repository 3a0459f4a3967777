"""
Core Loan Engine implementation.

Every operation is a read-modify-write against the loan store. Saves are
compare-and-swap on the record version, so an operation that lost a race
fails with ConcurrentUpdateError instead of overwriting the other writer.
"""

import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Callable, List, Optional, Set, Tuple

from lendlock.logging import get_logger, loan_context
from lendlock.shared.loan_errors import (
    LoanError, LoanValidationError, LoanNotFoundError,
    InvalidStateTransitionError, InvestmentLimitExceededError, NotificationError,
    ConcurrentUpdateError
)
from .metrics import metrics_collector
from .models import (
    Loan, LoanInformation, LoanStatus, ApprovalInfo, Investment,
    DisbursementInfo, OutboxMessage, AMOUNT_MAX_DIGITS, AMOUNT_DECIMAL_PLACES
)
from .notifications import NotificationSink
from .storage import LoanStore

logger = get_logger(__name__)

GENERATE_AGREEMENT_LETTER_CHANNEL = "generate_agreement_letter"
EMAIL_AGREEMENT_LETTER_CHANNEL = "email_agreement_letter"
DEFAULT_AGREEMENT_LETTER_URL_TEMPLATE = "https://example.com/agreement_letters/{loan_id}.pdf"
OUTBOX_CLEANUP_ATTEMPTS = 3


class LoanIdGenerator:
    """Time-derived loan ids, strictly increasing within the process."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0

    def __call__(self) -> int:
        candidate = int(self._clock() * 1000)
        self._last = max(candidate, self._last + 1)
        return self._last


class LoanEngine:
    """Applies the loan lifecycle rules: proposal, approval, investment, disbursement."""

    def __init__(
        self,
        store: LoanStore,
        sink: NotificationSink,
        agreement_letter_url_template: str = DEFAULT_AGREEMENT_LETTER_URL_TEMPLATE,
        generate_letter_channel: str = GENERATE_AGREEMENT_LETTER_CHANNEL,
        email_letter_channel: str = EMAIL_AGREEMENT_LETTER_CHANNEL,
        id_generator: Optional[Callable[[], int]] = None,
    ):
        self.store = store
        self.sink = sink
        self.agreement_letter_url_template = agreement_letter_url_template
        self.generate_letter_channel = generate_letter_channel
        self.email_letter_channel = email_letter_channel
        self.next_loan_id = id_generator or LoanIdGenerator()

    async def create_loan(
        self, borrower_id: int, principal_amount: Decimal, rate: Decimal, roi: Decimal
    ) -> int:
        """Propose a new loan and request its agreement letter.

        The loan is persisted before the letter request is sent; if sending
        fails the loan stays in PROPOSED with the request left in its outbox.
        """
        with self._track("create_loan"):
            if not borrower_id:
                raise LoanValidationError("borrower id is required")
            if principal_amount <= 0:
                raise LoanValidationError("principal amount must be positive")
            if not is_money(principal_amount):
                raise LoanValidationError("principal amount must be whole cents of at most 20 digits")
            if rate < 0 or roi < 0:
                raise LoanValidationError("rate and roi must not be negative")

            loan_id = self.next_loan_id()
            loan = Loan(
                loan_id=loan_id,
                borrower_id=borrower_id,
                principal_amount=principal_amount,
                rate=rate,
                roi=roi,
                state=LoanStatus.PROPOSED,
                outbox=[OutboxMessage(channel=self.generate_letter_channel, payload={"loan_id": loan_id})],
            )

            saved = await self.store.save_loan(loan)
            logger.info("Loan proposed", loan_id=loan_id, borrower_id=borrower_id,
                        principal_amount=str(principal_amount))

            await self._dispatch_outbox(saved)
            return loan_id

    async def get_loans(self) -> List[LoanInformation]:
        """Public summaries of every loan."""
        loans = await self.store.get_loans()
        return [loan.to_information() for loan in loans]

    async def get_loan(self, loan_id: int) -> LoanInformation:
        """Public summary of one loan."""
        loan = await self._load(loan_id)
        return loan.to_information()

    async def approve(self, loan_id: int, picture_proof_url: str, field_validator_id: int) -> Loan:
        """Record field validation and move a PROPOSED loan to APPROVED."""
        with self._track("approve", loan_id):
            if not picture_proof_url or not field_validator_id:
                raise LoanValidationError("approval info is incomplete", loan_id)

            loan = await self._load(loan_id)
            self._advance(loan, LoanStatus.APPROVED, "approve")
            loan.approval_info = ApprovalInfo(
                picture_proof_url=picture_proof_url,
                field_validator_id=field_validator_id,
            )

            saved = await self.store.save_loan(loan)
            logger.info("Loan approved", field_validator_id=field_validator_id)
            return saved

    async def invest(self, loan_id: int, investment: Investment) -> Loan:
        """Add an investment to an APPROVED loan.

        When the running total reaches the principal exactly the loan moves to
        INVESTED, gets its agreement letter URL, and every investor is sent
        the letter.
        """
        with self._track("invest", loan_id):
            if not investment.investor_id or investment.invested_amount <= 0:
                raise LoanValidationError("invalid investment details", loan_id)
            if not is_money(investment.invested_amount):
                raise LoanValidationError("invested amount must be whole cents of at most 20 digits", loan_id)

            loan = await self._load(loan_id)
            self._require_state(loan, LoanStatus.APPROVED, "invest in")

            running_total = loan.total_invested + investment.invested_amount
            if running_total > loan.principal_amount:
                raise InvestmentLimitExceededError(loan_id, loan.principal_amount, running_total)

            loan.investments.append(investment)

            fully_funded = running_total == loan.principal_amount
            if fully_funded:
                self._advance(loan, LoanStatus.INVESTED, "invest in")
                loan.agreement_letter_url = self.agreement_letter_url_template.format(loan_id=loan_id)
                loan.outbox.extend(
                    OutboxMessage(
                        channel=self.email_letter_channel,
                        payload={
                            "loan_id": loan_id,
                            "investor_id": inv.investor_id,
                            "invested_amount": str(inv.invested_amount),
                        },
                    )
                    for inv in loan.investments
                )

            saved = await self.store.save_loan(loan)
            metrics_collector.record_investment(float(investment.invested_amount))
            logger.info("Investment recorded", investor_id=investment.investor_id,
                        invested_amount=str(investment.invested_amount),
                        total_invested=str(running_total), fully_funded=fully_funded)

            if fully_funded:
                saved, _ = await self._dispatch_outbox(saved)
            return saved

    async def disburse(self, loan_id: int, signed_agreement_letter_url: str, field_officer_id: int) -> Loan:
        """Record the signed agreement and move an INVESTED loan to DISBURSED."""
        with self._track("disburse", loan_id):
            if not signed_agreement_letter_url or not field_officer_id:
                raise LoanValidationError("agreement letter URL or field officer ID is empty", loan_id)

            loan = await self._load(loan_id)
            self._advance(loan, LoanStatus.DISBURSED, "disburse")
            loan.disbursement_info = DisbursementInfo(
                signed_agreement_letter_url=signed_agreement_letter_url,
                field_officer_id=field_officer_id,
            )

            saved = await self.store.save_loan(loan)
            logger.info("Loan disbursed", field_officer_id=field_officer_id)
            return saved

    async def admin_view_loans(self) -> List[Loan]:
        """Full records of every loan, including internal details."""
        return await self.store.get_loans()

    async def redeliver_notifications(self, loan_id: int) -> int:
        """Retry the undelivered notifications of a loan. Returns how many were delivered."""
        with self._track("redeliver_notifications", loan_id):
            loan = await self._load(loan_id)
            if not loan.outbox:
                return 0

            _, delivered = await self._dispatch_outbox(loan)
            return delivered

    async def _load(self, loan_id: int) -> Loan:
        loan = await self.store.get_loan(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    def _require_state(self, loan: Loan, required: LoanStatus, operation: str):
        if loan.state != required:
            raise InvalidStateTransitionError(loan.loan_id, operation, loan.state.value, required.value)

    def _advance(self, loan: Loan, target: LoanStatus, operation: str):
        """Move the loan one step forward to ``target``."""
        current = loan.state
        if current.next() != target:
            required = _previous_state(target)
            raise InvalidStateTransitionError(loan.loan_id, operation, current.value, required.value)

        loan.state = target
        metrics_collector.record_transition(current.value, target.value)

    async def _dispatch_outbox(self, loan: Loan) -> Tuple[Loan, int]:
        """Send pending notifications in order and drop the delivered ones from the record.

        Stops at the first failure; the failed message and those after it stay
        in the outbox and the NotificationError is re-raised. Returns the latest
        saved record and how many messages went out.
        """
        delivered: Set[str] = set()
        failure: Optional[NotificationError] = None

        for message in loan.outbox:
            try:
                await self.sink.send(message.channel, message.payload)
            except NotificationError as e:
                metrics_collector.record_notification(message.channel, False)
                logger.error("Notification failed", loan_id=loan.loan_id, channel=message.channel, error=str(e))
                failure = e
                break
            metrics_collector.record_notification(message.channel, True)
            delivered.add(message.message_id)

        if delivered:
            loan = await self._remove_delivered(loan, delivered)

        if failure is not None:
            raise failure
        return loan, len(delivered)

    async def _remove_delivered(self, loan: Loan, delivered: Set[str]) -> Loan:
        """Save ``loan`` without the delivered messages.

        Another writer may save the record while notifications are in flight.
        The state change that produced them is already durable, so a conflict
        here re-reads the record and retries instead of failing the caller.
        """
        for _ in range(OUTBOX_CLEANUP_ATTEMPTS):
            remaining = [m for m in loan.outbox if m.message_id not in delivered]
            if len(remaining) == len(loan.outbox):
                return loan
            try:
                return await self.store.save_loan(loan.model_copy(update={"outbox": remaining}))
            except ConcurrentUpdateError:
                latest = await self.store.get_loan(loan.loan_id)
                if latest is None:
                    return loan
                loan = latest

        logger.warning("Outbox cleanup gave up after concurrent updates",
                       loan_id=loan.loan_id, delivered=len(delivered))
        return loan

    @contextmanager
    def _track(self, operation: str, loan_id: Optional[int] = None):
        with loan_context(loan_id, operation):
            try:
                yield
            except LoanError as e:
                metrics_collector.record_operation(operation, type(e).__name__)
                logger.warning("Loan operation failed", error=str(e))
                raise
            metrics_collector.record_operation(operation, "success")


def is_money(amount: Decimal) -> bool:
    """Whether ``amount`` is a finite amount in whole cents that fits the stored precision."""
    if not amount.is_finite():
        return False
    _, digits, exponent = amount.as_tuple()
    digits = list(digits)
    while exponent < 0 and len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    if exponent >= 0:
        return len(digits) + exponent <= AMOUNT_MAX_DIGITS
    return -exponent <= AMOUNT_DECIMAL_PLACES and max(len(digits), -exponent) <= AMOUNT_MAX_DIGITS


def _previous_state(state: LoanStatus) -> LoanStatus:
    for candidate in LoanStatus:
        if candidate.next() == state:
            return candidate
    return state
