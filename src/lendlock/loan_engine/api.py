"""
Loan Engine API endpoints.
"""

import time
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from lendlock.config import settings
from lendlock.health import HealthChecker, create_health_endpoints, store_health_check
from lendlock.logging import get_logger, trace_context
from lendlock.shared.loan_errors import (
    LoanError, LoanValidationError, LoanNotFoundError, InvalidStateTransitionError,
    InvestmentLimitExceededError, ConcurrentUpdateError, NotificationError
)
from .metrics import metrics_collector
from .models import (
    Loan, LoanInformation, Investment, CreateLoanRequest, CreateLoanResponse,
    ApproveLoanRequest, InvestRequest, DisburseLoanRequest
)
from .service import LoanEngineService

logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(title="LendLock Loan Engine")

# Global service instance
loan_service: Optional[LoanEngineService] = None


async def _store_ping() -> bool:
    if not loan_service:
        return False
    return await loan_service.is_store_reachable()


health_checker = HealthChecker(settings.service_name)
health_checker.register_check("loan_store", store_health_check(_store_ping))
create_health_endpoints(app, health_checker)


@app.middleware("http")
async def trace_and_metrics_middleware(request: Request, call_next):
    """Tag request logs with a trace id and record API metrics."""
    start_time = time.time()

    with trace_context(request.headers.get("X-Trace-Id")) as trace_id:
        response = await call_next(request)

    route = request.scope.get("route")
    metrics_collector.record_api_request(
        method=request.method,
        endpoint=route.path if route else request.url.path,
        status=response.status_code,
        duration=time.time() - start_time
    )
    response.headers["X-Trace-Id"] = trace_id
    return response


def error_status(error: LoanError) -> int:
    """HTTP status for a loan engine error."""
    if isinstance(error, LoanValidationError):
        return 400
    if isinstance(error, LoanNotFoundError):
        return 404
    if isinstance(error, (InvalidStateTransitionError, InvestmentLimitExceededError, ConcurrentUpdateError)):
        return 409
    if isinstance(error, NotificationError):
        return 502
    return 500


@app.exception_handler(LoanError)
async def loan_error_handler(request: Request, exc: LoanError):
    status_code = error_status(exc)
    if status_code >= 500:
        logger.error("Request failed", path=request.url.path, status=status_code, error=str(exc))
    return PlainTextResponse(str(exc), status_code=status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return PlainTextResponse("Invalid request", status_code=400)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code)


@app.on_event("startup")
async def startup_event():
    """Initialize service on startup."""
    global loan_service

    logger.info("Starting Loan Engine API...")

    loan_service = LoanEngineService(settings)
    await loan_service.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    global loan_service

    if loan_service:
        await loan_service.stop()


def _service() -> LoanEngineService:
    if not loan_service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return loan_service


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Loan Engine",
        "version": "1.0.0",
        "status": "active",
        "description": "Peer-to-peer loan lifecycle for LendLock"
    }


@app.post("/loans", status_code=201, response_model=CreateLoanResponse)
async def create_loan(request: CreateLoanRequest):
    """Propose a new loan."""
    loan_id = await _service().engine.create_loan(
        request.borrower_id, request.principal_amount, request.rate, request.roi
    )
    return CreateLoanResponse(loan_id=loan_id)


@app.get("/loans", response_model=List[LoanInformation])
async def get_loans():
    """Public summaries of every loan."""
    return await _service().engine.get_loans()


@app.get("/loans/{loan_id}", response_model=LoanInformation)
async def get_loan(loan_id: int):
    """Public summary of one loan."""
    return await _service().engine.get_loan(loan_id)


@app.post("/loans/{loan_id}/approve", response_class=PlainTextResponse)
async def approve_loan(loan_id: int, request: ApproveLoanRequest):
    """Approve a proposed loan."""
    await _service().engine.approve(loan_id, request.picture_proof_url, request.field_validator_id)
    return "Loan approved successfully"


@app.post("/loans/{loan_id}/invest", response_class=PlainTextResponse)
async def invest(loan_id: int, request: InvestRequest):
    """Invest in an approved loan."""
    investment = Investment(investor_id=request.investor_id, invested_amount=request.invested_amount)
    await _service().engine.invest(loan_id, investment)
    return "Investment successful"


@app.post("/loans/{loan_id}/disburse", response_class=PlainTextResponse)
async def disburse_loan(loan_id: int, request: DisburseLoanRequest):
    """Disburse an invested loan."""
    await _service().engine.disburse(
        loan_id, request.signed_agreement_letter_url, request.field_officer_id
    )
    return "Loan disbursed successfully"


# For admin only
@app.get("/admin/view/loans", response_model=List[Loan])
async def admin_view_loans():
    """Full records of every loan."""
    return await _service().engine.admin_view_loans()


@app.post("/admin/loans/{loan_id}/redeliver")
async def redeliver_notifications(loan_id: int):
    """Retry undelivered notifications of a loan."""
    delivered = await _service().engine.redeliver_notifications(loan_id)
    return {"loan_id": loan_id, "delivered": delivered}
