"""
Loan record storage.

Every backend keeps the last written record per loan id and rejects a save
whose version does not match the stored one, so read-modify-write cycles on
the same loan cannot silently overwrite each other.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis
from pydantic import ValidationError

from lendlock.logging import get_logger
from lendlock.shared.loan_errors import (
    ConcurrentUpdateError, StoreReadError, StoreWriteError
)
from .models import Loan

logger = get_logger(__name__)


class LoanStore(ABC):
    """Abstract base class for loan storage."""

    @abstractmethod
    async def get_loan(self, loan_id: int) -> Optional[Loan]:
        """Get a loan by id, or None if it does not exist."""
        pass

    @abstractmethod
    async def get_loans(self) -> List[Loan]:
        """Get every stored loan. Order is unspecified."""
        pass

    @abstractmethod
    async def save_loan(self, loan: Loan) -> Loan:
        """Insert or replace a loan.

        The stored version must equal ``loan.version`` (0 meaning no record
        yet). Returns the saved copy with its version incremented.

        Raises:
            ConcurrentUpdateError: If the stored version differs
            StoreWriteError: If the backend fails
        """
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check backend connectivity."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass


class InMemoryLoanStore(LoanStore):
    """Process-local store keeping records as serialized JSON."""

    def __init__(self):
        self._records: Dict[int, str] = {}
        self._lock = asyncio.Lock()

    async def get_loan(self, loan_id: int) -> Optional[Loan]:
        raw = self._records.get(loan_id)
        if raw is None:
            return None
        return Loan.model_validate_json(raw)

    async def get_loans(self) -> List[Loan]:
        return [Loan.model_validate_json(raw) for raw in list(self._records.values())]

    async def save_loan(self, loan: Loan) -> Loan:
        async with self._lock:
            raw = self._records.get(loan.loan_id)
            stored_version = Loan.model_validate_json(raw).version if raw is not None else 0
            if stored_version != loan.version:
                raise ConcurrentUpdateError(loan.loan_id, loan.version)

            saved = loan.model_copy(update={"version": loan.version + 1}, deep=True)
            self._records[loan.loan_id] = saved.model_dump_json()

        logger.debug("Saved loan to memory", loan_id=loan.loan_id, version=saved.version)
        return saved

    async def ping(self) -> bool:
        return True


# KEYS[1] = hash key, ARGV = loan id, expected version, serialized record
_COMPARE_AND_SET = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
local stored_version = 0
if current then
    stored_version = tonumber(cjson.decode(current)['version'])
end
if stored_version ~= tonumber(ARGV[2]) then
    return 0
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[3])
return 1
"""


class RedisLoanStore(LoanStore):
    """Redis-based loan storage in a single hash keyed by loan id."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0", loans_key: str = "lendlock:loans"):
        self.redis_client = redis.from_url(redis_url, decode_responses=True)
        self.loans_key = loans_key
        self._compare_and_set = self.redis_client.register_script(_COMPARE_AND_SET)

    async def get_loan(self, loan_id: int) -> Optional[Loan]:
        try:
            raw = self.redis_client.hget(self.loans_key, str(loan_id))
        except redis.RedisError as e:
            logger.error("Failed to get loan from Redis", loan_id=loan_id, error=str(e))
            raise StoreReadError(f"Failed to get loan from Redis: {e}", loan_id) from e

        if raw is None:
            return None
        return self._decode(raw, loan_id)

    async def get_loans(self) -> List[Loan]:
        try:
            records = self.redis_client.hgetall(self.loans_key)
        except redis.RedisError as e:
            logger.error("Failed to get loans from Redis", error=str(e))
            raise StoreReadError(f"Failed to get loans from Redis: {e}") from e

        return [self._decode(raw, int(loan_id)) for loan_id, raw in records.items()]

    async def save_loan(self, loan: Loan) -> Loan:
        saved = loan.model_copy(update={"version": loan.version + 1}, deep=True)
        try:
            written = self._compare_and_set(
                keys=[self.loans_key],
                args=[str(loan.loan_id), loan.version, saved.model_dump_json()],
            )
        except redis.RedisError as e:
            logger.error("Failed to save loan to Redis", loan_id=loan.loan_id, error=str(e))
            raise StoreWriteError(f"Failed to save loan to Redis: {e}", loan.loan_id) from e

        if not written:
            raise ConcurrentUpdateError(loan.loan_id, loan.version)

        logger.debug("Saved loan to Redis", loan_id=loan.loan_id, version=saved.version)
        return saved

    async def ping(self) -> bool:
        try:
            return bool(self.redis_client.ping())
        except redis.RedisError as e:
            logger.warning("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        self.redis_client.close()

    def _decode(self, raw: str, loan_id: int) -> Loan:
        try:
            return Loan.model_validate_json(raw)
        except ValidationError as e:
            raise StoreReadError(f"Corrupt loan record: {e}", loan_id) from e


def create_storage(backend: str, redis_url: str = "", loans_key: str = "lendlock:loans") -> LoanStore:
    """Factory function to create appropriate storage backend."""
    if backend.lower() == "memory":
        return InMemoryLoanStore()
    elif backend.lower() == "redis":
        return RedisLoanStore(redis_url, loans_key)
    else:
        raise ValueError(f"Unsupported storage type: {backend}")
