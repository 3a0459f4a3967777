"""
Loan Engine service entry point.
"""

import uvicorn

from lendlock.config import settings
from lendlock.loan_engine.api import app


def main():
    """Run the Loan Engine service."""
    uvicorn.run(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level=settings.monitoring.log_level.lower()
    )


if __name__ == "__main__":
    main()
