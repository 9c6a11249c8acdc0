"""
Short code allocation: validate a custom code or generate a free one.

Allocation is probabilistic and retry based. An availability check can go
stale before the record is written, so the store's uniqueness constraint
stays the authoritative guard; LinkService handles that late race.
"""

import logging
from typing import Any, Dict, Optional

from shortlink_app.errors import AllocationExhaustedError, ConflictError
from shortlink_app.services.short_code_strategies import ShortCodeStrategy
from shortlink_app.services.validation import validate_custom_code
from shortlink_app.storage.strategies import LinkStoreStrategy, bounded

logger = logging.getLogger(__name__)


class ShortCodeAllocator:
    """
    Produces a code that is free at the moment of the check.

    Generation draws candidates at the current length; after max_retries
    taken candidates it escalates the length by one and resets the retry
    counter, over length_tiers tiers in total. When every tier is used up
    it raises AllocationExhaustedError.
    """

    def __init__(
        self,
        store: LinkStoreStrategy,
        strategy: ShortCodeStrategy,
        default_length: int = 6,
        min_length: int = 4,
        max_length: int = 20,
        max_retries: int = 5,
        length_tiers: int = 3,
        store_timeout: float = 5.0,
    ):
        if not min_length <= default_length <= max_length:
            raise ValueError(
                f"default_length {default_length} outside [{min_length}, {max_length}]"
            )
        self.store = store
        self.strategy = strategy
        self.default_length = default_length
        self.min_length = min_length
        self.max_length = max_length
        self.max_retries = max_retries
        self.length_tiers = length_tiers
        self.store_timeout = store_timeout

    async def allocate(self, custom_code: Optional[Any] = None) -> str:
        """
        Return a code for a new link.

        Args:
            custom_code: Caller-supplied code; None or "" means generate one

        Raises:
            LinkValidationError: Custom code has bad syntax
            ConflictError: Custom code is already taken
            AllocationExhaustedError: No free code found in any length tier
        """
        if custom_code is None or custom_code == "":
            return await self.generate_unique()

        code = validate_custom_code(custom_code, self.min_length, self.max_length)
        if not await self.is_available(code):
            raise ConflictError("Custom shortcode is already taken")
        return code

    async def is_available(self, code: str) -> bool:
        exists = await bounded(
            self.store.exists_by_code(code), self.store_timeout, "exists_by_code"
        )
        return not exists

    async def generate_unique(self, length: Optional[int] = None) -> str:
        """Draw candidates, escalating length on repeated collisions"""
        current_length = length or self.default_length
        if not self.min_length <= current_length <= self.max_length:
            raise ValueError(
                f"length {current_length} outside [{self.min_length}, {self.max_length}]"
            )

        attempts = 0
        for tier in range(self.length_tiers):
            for _ in range(self.max_retries):
                candidate = self.strategy.generate(current_length)
                attempts += 1
                if await self.is_available(candidate):
                    logger.debug(
                        "Generated unique shortcode %s (length: %d, attempts: %d)",
                        candidate, current_length, attempts,
                    )
                    return candidate

            if tier + 1 < self.length_tiers and current_length < self.max_length:
                current_length += 1
                logger.warning("High collision rate, escalating to length %d", current_length)

        logger.error("Shortcode allocation exhausted after %d attempts", attempts)
        raise AllocationExhaustedError(detail=f"{attempts} candidates taken")

    def collision_stats(self) -> Dict[str, Any]:
        """Static figures about the code space, for monitoring"""
        alphabet = getattr(self.strategy, "alphabet", "")
        return {
            "default_length": self.default_length,
            "max_retries": self.max_retries,
            "length_tiers": self.length_tiers,
            "total_possible_combinations": len(alphabet) ** self.default_length,
            "alphabet": alphabet,
        }
