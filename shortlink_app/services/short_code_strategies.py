"""
Short code generation strategies.
Uses Strategy Pattern so the source of randomness can be swapped.
"""

import random
from abc import ABC, abstractmethod
from typing import Optional

BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


class ShortCodeStrategy(ABC):
    """Abstract base class for short code generation strategies"""

    @abstractmethod
    def generate(self, length: int) -> str:
        """
        Draw one candidate short code.

        Args:
            length: Number of symbols in the candidate

        Returns:
            A candidate code; availability is checked by the allocator
        """
        pass


class RandomShortCodeStrategy(ShortCodeStrategy):
    """
    Draws independent uniform symbols from the 62-symbol alphabet.

    Pros: Unpredictable, no coordination between writers
    Cons: Collisions possible, so every draw needs a store check

    The random source is injectable: SystemRandom for production codes,
    a seeded Random for reproducible tests.
    """

    def __init__(self, rng: Optional[random.Random] = None, alphabet: str = BASE62_ALPHABET):
        self.rng = rng or random.SystemRandom()
        self.alphabet = alphabet

    def generate(self, length: int) -> str:
        """Generate a random string of the given length"""
        if length < 1:
            raise ValueError(f"length must be positive, got {length}")
        return ''.join(self.rng.choice(self.alphabet) for _ in range(length))
