"""Loan Engine module for the peer-to-peer loan lifecycle."""

from .models import LoanStatus, Loan, LoanInformation, Investment
from .engine import LoanEngine
from .service import LoanEngineService

__all__ = [
    "LoanStatus",
    "Loan",
    "LoanInformation",
    "Investment",
    "LoanEngine",
    "LoanEngineService"
]
