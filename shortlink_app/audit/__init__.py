"""
Audit log sink for link creations and redirects.
Implements Strategy Pattern: a remote HTTP sink or a local-only null sink.
"""

from .strategies import AuditLogStrategy, HttpAuditLog, NullAuditLog, AuditDeliveryError
from .factory import AuditLogFactory

__all__ = [
    "AuditLogStrategy",
    "HttpAuditLog",
    "NullAuditLog",
    "AuditDeliveryError",
    "AuditLogFactory",
]
