# achievement_api/core/integrity.py
"""
Out-of-band channels for integrity alerts and audit events.

Nothing here raises; callers decide how to surface the failure to the client.
"""
import logging
from typing import Optional

from achievement_api.core.log import AUDIT_LOGGER, INTEGRITY_LOGGER


class IntegrityChannel:
    def __init__(
        self,
        integrity_logger: Optional[logging.Logger] = None,
        audit_logger: Optional[logging.Logger] = None,
    ):
        self.integrity = integrity_logger or logging.getLogger(INTEGRITY_LOGGER)
        self.audit = audit_logger or logging.getLogger(AUDIT_LOGGER)

    def compensation_failed(
        self,
        operation: str,
        reference_id: Optional[str],
        detail_id: Optional[str],
        original: BaseException,
        compensation_error: BaseException,
    ) -> None:
        self.integrity.error(
            "compensation failed op=%s reference=%s detail=%s original=%r compensation=%r",
            operation,
            reference_id,
            detail_id,
            original,
            compensation_error,
        )

    def detail_missing(self, reference_id: str, detail_id: str, soft_deleted: bool) -> None:
        self.integrity.error(
            "detail unavailable for live reference reference=%s detail=%s soft_deleted=%s",
            reference_id,
            detail_id,
            soft_deleted,
        )

    def orphaned_file(self, path: str, error: BaseException) -> None:
        self.integrity.error("attachment file left behind path=%s error=%r", path, error)

    def admin_override(self, actor_id: str, reference_id: str, prior_status: str, action: str) -> None:
        self.audit.warning(
            "admin override action=%s actor=%s reference=%s prior_status=%s",
            action,
            actor_id,
            reference_id,
            prior_status,
        )

    def logout(self, user_id: str, token_id: str) -> None:
        self.audit.info("logout user=%s token=%s", user_id, token_id)
