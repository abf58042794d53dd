"""
Audit Logger

DESIGN DECISION: Every backup, restore and sync outcome is logged.
This gives:
1. A history the user can check ("when was my data last saved?")
2. Enough context to debug a failed restore after the fact

The audit logger:
- Is async so it can sit on the same event loop as the flows
- Never fails the operation it describes (a broken audit store is logged)
- Supports correlation IDs to tie one backup or restore flow together
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgersafe.models.audit import AuditEvent, AuditEventBuilder
from ledgersafe.services.storage.interface import AuditStorageInterface


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events to:
    1. The structured local log
    2. An audit store, when one is configured (kept on the device)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Where events are persisted. If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledgersafe.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded (or no storage is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_backup_created(
        self,
        handle: Optional[str],
        fingerprint: Optional[str],
        counts: dict[str, int],
        caveats: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.backup_created(
            handle=handle,
            fingerprint=fingerprint,
            counts=counts,
            caveats=caveats,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_backup_failed(
        self,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.backup_failed(
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_backups_retired(
        self,
        retired_count: int,
        keep_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Only worth an event when something was actually removed."""
        if retired_count <= 0:
            return
        event = AuditEventBuilder.backups_retired(
            retired_count=retired_count,
            keep_count=keep_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_restore_rejected(
        self,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.restore_rejected(
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_restore_applied(
        self,
        summary: dict[str, int],
        fingerprint: Optional[str],
        warnings: int,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.restore_applied(
            summary=summary,
            fingerprint=fingerprint,
            warnings=warnings,
            source=source,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_restore_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.restore_failed(
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_signed_in(self, principal_id: str, provider: str) -> None:
        await self.log(AuditEventBuilder.signed_in(principal_id, provider))

    async def log_signed_out(self, principal_id: str) -> None:
        await self.log(AuditEventBuilder.signed_out(principal_id))

    async def log_sync_completed(
        self,
        principal_id: str,
        pulled: bool,
        pushed: bool,
        last_synced: Optional[int],
    ) -> None:
        event = AuditEventBuilder.sync_completed(
            principal_id=principal_id,
            pulled=pulled,
            pushed=pushed,
            last_synced=last_synced,
        )
        await self.log(event)

    async def log_sync_failed(
        self,
        principal_id: str,
        error_code: str,
        error_message: str,
    ) -> None:
        event = AuditEventBuilder.sync_failed(
            principal_id=principal_id,
            error_code=error_code,
            error_message=error_message,
        )
        await self.log(event)

    async def log_item_rate_changed(
        self,
        item_id: str,
        old_rate: Optional[float],
        new_rate: Optional[float],
    ) -> None:
        await self.log(AuditEventBuilder.item_rate_changed(item_id, old_rate, new_rate))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a backup or restore and pass it through.
    """
    return uuid4()
