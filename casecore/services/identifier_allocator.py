"""
Identifier allocation for clients and cases
"""

import random
from typing import Dict, Optional, Set, Union

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from casecore.core.config import settings
from casecore.core.exceptions import (
    DuplicateKeyError, InvalidArgumentError, NamespaceExhaustedError, TransientError
)
from casecore.core.identifiers import IdentifierKind, identifier_range
from casecore.core.locks import KeyedLocks
from casecore.models.client import Client
from casecore.models.case import Case

logger = structlog.get_logger()

class IdentifierReservations:
    """
    Identifiers handed out by an allocator whose owning row is not committed yet.

    Shared by every allocator in the process so concurrent callers never receive
    the same candidate while the first one is still inserting it.
    """

    def __init__(self):
        self._reserved: Dict[IdentifierKind, Set[int]] = {kind: set() for kind in IdentifierKind}
        self.locks = KeyedLocks()

    def is_reserved(self, kind: IdentifierKind, value: int) -> bool:
        return value in self._reserved[kind]

    def reserve(self, kind: IdentifierKind, value: int) -> None:
        self._reserved[kind].add(value)

    def release(self, kind: IdentifierKind, value: int) -> None:
        self._reserved[kind].discard(value)

    def clear(self) -> None:
        for reserved in self._reserved.values():
            reserved.clear()

default_reservations = IdentifierReservations()

class IdentifierAllocator:
    """Mints fixed-width numeric identifiers with bounded retry"""

    def __init__(
        self,
        db: AsyncSession,
        max_attempts: Optional[int] = None,
        rng: Optional[random.Random] = None,
        reservations: Optional[IdentifierReservations] = None
    ):
        self.db = db
        self.max_attempts = max_attempts or settings.ID_ALLOCATION_MAX_ATTEMPTS
        self.rng = rng or random.SystemRandom()
        self.reservations = reservations or default_reservations

    async def allocate_client_id(self) -> int:
        """Allocate an unused 4-digit client identifier"""
        return await self._allocate(IdentifierKind.CLIENT)

    async def allocate_case_id(self, custom_id: Optional[Union[int, str]] = None) -> int:
        """
        Allocate an unused case identifier, or validate a caller-supplied one

        Args:
            custom_id: Identifier requested by the caller; blank means auto-allocate

        Returns:
            The allocated identifier, or custom_id unchanged when it is free

        Raises:
            InvalidArgumentError: custom_id is not a number inside the case range
            DuplicateKeyError: custom_id is already in use
            NamespaceExhaustedError: no free identifier found within the retry bound
        """
        if custom_id is None or (isinstance(custom_id, str) and not custom_id.strip()):
            return await self._allocate(IdentifierKind.CASE)

        value = self.parse_identifier(IdentifierKind.CASE, custom_id)

        async with self.reservations.locks.hold(IdentifierKind.CASE):
            try:
                in_use = self.reservations.is_reserved(IdentifierKind.CASE, value) or \
                    await self._is_in_use(IdentifierKind.CASE, value)
            except OperationalError as e:
                raise TransientError(
                    f"Storage unavailable while checking case identifier {value}",
                    error_code="STORAGE_UNAVAILABLE"
                ) from e
            if in_use:
                raise DuplicateKeyError(
                    f"Case identifier {value} is already in use",
                    error_code="CASE_ID_IN_USE",
                    details={"case_id": value}
                )
            self.reservations.reserve(IdentifierKind.CASE, value)

        logger.debug("Caller-supplied case identifier accepted", case_id=value)
        return value

    def release(self, kind: IdentifierKind, value: int) -> None:
        """Drop the in-process reservation once the owning insert settled"""
        self.reservations.release(kind, value)

    @staticmethod
    def parse_identifier(kind: IdentifierKind, raw: Union[int, str]) -> int:
        """Parse a caller-supplied identifier and check it lies in the kind's range"""
        low, high = identifier_range(kind)
        if isinstance(raw, bool):
            raw = str(raw)
        text_value = str(raw).strip()
        if not (text_value.isascii() and text_value.isdigit()):
            raise InvalidArgumentError(
                f"{kind.value.capitalize()} identifier must be numeric",
                error_code="INVALID_IDENTIFIER",
                details={"value": text_value}
            )
        value = int(text_value)
        if not low <= value <= high:
            raise InvalidArgumentError(
                f"{kind.value.capitalize()} identifier {value} is outside {low}-{high}",
                error_code="IDENTIFIER_OUT_OF_RANGE",
                details={"value": value, "min": low, "max": high}
            )
        return value

    async def _allocate(self, kind: IdentifierKind) -> int:
        low, high = identifier_range(kind)
        last_error: Optional[Exception] = None

        async with self.reservations.locks.hold(kind):
            for attempt in range(1, self.max_attempts + 1):
                candidate = self.rng.randint(low, high)
                if self.reservations.is_reserved(kind, candidate):
                    continue

                try:
                    in_use = await self._is_in_use(kind, candidate)
                except OperationalError as e:
                    last_error = e
                    logger.warning(
                        "Identifier uniqueness check failed, retrying",
                        kind=kind.value,
                        attempt=attempt,
                        error=str(e)
                    )
                    await self.db.rollback()
                    continue

                # Only a failure on the final check makes the outcome transient
                last_error = None
                if in_use:
                    logger.debug("Identifier collision", kind=kind.value, candidate=candidate, attempt=attempt)
                    continue

                self.reservations.reserve(kind, candidate)
                return candidate

        if last_error is not None:
            raise TransientError(
                f"Storage unavailable while allocating a {kind.value} identifier",
                error_code="STORAGE_UNAVAILABLE",
                details={"attempts": self.max_attempts, "error": str(last_error)}
            )

        logger.error("Identifier namespace exhausted", kind=kind.value, attempts=self.max_attempts, low=low, high=high)
        raise NamespaceExhaustedError(
            f"No free {kind.value} identifier found after {self.max_attempts} attempts",
            error_code="NAMESPACE_EXHAUSTED",
            details={"kind": kind.value, "min": low, "max": high, "attempts": self.max_attempts}
        )

    async def _is_in_use(self, kind: IdentifierKind, value: int) -> bool:
        if kind == IdentifierKind.CLIENT:
            query = select(Client.client_id).where(Client.client_id == value)
        else:
            query = select(Case.case_id).where(Case.case_id == value)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none() is not None
