"""
Factory for creating the audit log sink.
"""

import logging

import httpx

from .strategies import AuditLogStrategy, HttpAuditLog, NullAuditLog
from shortlink_app.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = (
    "audit_auth_url",
    "audit_logs_url",
    "audit_access_code",
    "audit_client_id",
    "audit_client_secret",
    "audit_email",
    "audit_name",
    "audit_roll_no",
)


class AuditLogFactory:
    """
    Creates the audit sink from settings.

    Falls back to NullAuditLog when auditing is disabled or any required
    setting is missing, so a bad audit config never blocks startup.
    """

    @classmethod
    def create(cls, settings: Settings = default_settings) -> AuditLogStrategy:
        if not settings.audit_enabled:
            logger.info("Audit log disabled")
            return NullAuditLog()

        missing = [name for name in REQUIRED_SETTINGS if not getattr(settings, name)]
        if missing:
            logger.warning(
                "Missing required audit config: %s. Audit logging will be disabled.",
                ", ".join(missing),
            )
            return NullAuditLog()

        credentials = {
            "email": settings.audit_email,
            "name": settings.audit_name,
            "rollNo": settings.audit_roll_no,
            "accessCode": settings.audit_access_code,
            "clientID": settings.audit_client_id,
            "clientSecret": settings.audit_client_secret,
        }
        logger.info("HTTP audit log initialized")
        return HttpAuditLog(
            client=httpx.AsyncClient(timeout=settings.audit_timeout_seconds),
            auth_url=settings.audit_auth_url,
            logs_url=settings.audit_logs_url,
            credentials=credentials,
            max_retries=settings.audit_max_retries,
            backoff_base=settings.audit_backoff_base_seconds,
            token_ttl=settings.audit_token_ttl_seconds,
            refresh_margin=settings.audit_token_refresh_margin_seconds,
            timeout=settings.audit_timeout_seconds,
        )
