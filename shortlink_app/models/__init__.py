"""
Database models for the relational link store.

Click events live in their own table but are only ever read and written
through their parent link.
"""

from .link import Link, Click

__all__ = ["Link", "Click"]
