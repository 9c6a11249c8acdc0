"""
Factory for short code strategies and the allocator built on them.
"""

import random
from enum import Enum
from typing import Optional

from shortlink_app.services.short_code_allocator import ShortCodeAllocator
from shortlink_app.services.short_code_strategies import (
    ShortCodeStrategy,
    RandomShortCodeStrategy,
)
from shortlink_app.storage.strategies import LinkStoreStrategy
from shortlink_app.config import settings


class ShortCodeStrategyType(Enum):
    """Available random sources for code generation"""
    SECURE = "secure"  # OS entropy (random.SystemRandom)
    RANDOM = "random"  # Mersenne Twister, seedable


class ShortCodeFactory:
    """Builds strategies and allocators from settings"""

    @classmethod
    def create_strategy(
        cls,
        strategy_type: Optional[ShortCodeStrategyType] = None,
        seed: Optional[int] = None,
    ) -> ShortCodeStrategy:
        """
        Create a short code generation strategy.

        Args:
            strategy_type: Type of strategy to create.
                          If None, uses value from settings.
            seed: Seed for the RANDOM strategy (ignored for SECURE)

        Raises:
            ValueError: If strategy_type is unknown
        """
        if strategy_type is None:
            strategy_type = ShortCodeStrategyType(settings.short_code_strategy)

        if strategy_type == ShortCodeStrategyType.SECURE:
            return RandomShortCodeStrategy(rng=random.SystemRandom())
        elif strategy_type == ShortCodeStrategyType.RANDOM:
            return RandomShortCodeStrategy(rng=random.Random(seed))
        else:
            raise ValueError(f"Unknown strategy type: {strategy_type}")

    @classmethod
    def create_allocator(
        cls,
        store: LinkStoreStrategy,
        strategy: Optional[ShortCodeStrategy] = None,
    ) -> ShortCodeAllocator:
        """Create an allocator over the given store, configured from settings"""
        return ShortCodeAllocator(
            store=store,
            strategy=strategy or cls.create_strategy(),
            default_length=settings.short_code_length,
            min_length=settings.short_code_min_length,
            max_length=settings.short_code_max_length,
            max_retries=settings.short_code_max_retries,
            length_tiers=settings.short_code_length_tiers,
            store_timeout=settings.store_timeout_seconds,
        )
