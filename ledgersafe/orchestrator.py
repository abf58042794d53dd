"""
Main Orchestrator for LedgerSafe

This module ties the components together and defines the end-to-end
flows for:
1. Backup  (dataset → snapshot → [encrypt] → artifact store → retention)
2. Restore (artifact → validate → preview → user confirms → apply)
3. Sync    (sign-in → reconcile → periodic reconcile → sign-out)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is restored without passing the validator first
- Local data is only ever replaced through the RestoreApplier
- Every backup and restore outcome is audited

IMPORTANT: Backup and restore are not guarded against each other.
A restore overwrites exactly what a backup reads, so running both at
once has undefined results. Callers (the UI) must serialise them.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union
from uuid import UUID

import structlog

from ledgersafe.audit import AuditLogger, create_correlation_id
from ledgersafe.config import BackupSettings, Settings, get_settings
from ledgersafe.models.results import (
    BackupResult,
    ErrorKind,
    RestoreResult,
    RestoreValidation,
    user_message,
)
from ledgersafe.restore import ChangeNotifier, RestoreApplier, RestoreValidator
from ledgersafe.services.catalog import ItemCatalog
from ledgersafe.services.cloud import KeyValueRemoteDocumentStore, LocalIdentityProvider
from ledgersafe.services.storage import (
    ArtifactInfo,
    ArtifactNotFoundError,
    ArtifactStoreInterface,
    DownloadTrigger,
    JsonFileKeyValueStore,
    KeyValueAuditStorage,
    KeyValueDataStore,
    KeyValueStoreInterface,
    LocalStateStore,
    PlatformProbe,
    SettingsPlatformProbe,
    ShareAction,
    StorageError,
    create_artifact_store,
)
from ledgersafe.snapshot import SnapshotBuilder, encrypt_artifact
from ledgersafe.sync import AutoBackupScheduler, SyncSession


logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BackupFlow:
    """
    Orchestrates backup creation.

    Flow:
    1. Build → snapshot of the current dataset (orphans dropped, fingerprinted)
    2. Seal  → optional password protection
    3. Store → platform artifact store (private + shared copy)
    4. Retire → keep only the newest N artifacts
    5. Record → lastRunAt for the automatic backup schedule

    Backing up an empty dataset is a valid backup, reported with an
    EMPTY_DATASET advisory.
    """

    def __init__(
        self,
        builder: SnapshotBuilder,
        artifact_store: ArtifactStoreInterface,
        state_store: LocalStateStore,
        settings: Optional[BackupSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._builder = builder
        self._artifact_store = artifact_store
        self._state_store = state_store
        self._settings = settings or get_settings().backup
        self._audit_logger = audit_logger
        self._clock = clock or _utcnow

    async def preview(self) -> dict:
        """Counts, totals and date range of what a backup would contain."""
        snapshot = await self._builder.build()
        return snapshot.summary()

    async def list_backups(self) -> list[ArtifactInfo]:
        """Restorable backups, newest first."""
        return await self._artifact_store.list_available()

    def artifact_name(self, moment: datetime) -> str:
        return f"{self._settings.file_prefix}{moment.strftime('%Y-%m-%d_%H-%M-%S-%f')}.json"

    async def create_backup(
        self,
        password: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BackupResult:
        """
        Create and store a backup.

        Args:
            password: Seal the artifact under this password (optional)
            correlation_id: For audit tracking

        Returns:
            BackupResult. success is False only when no copy could be stored.
        """
        correlation_id = correlation_id or create_correlation_id()

        snapshot = await self._builder.build()
        advisories = [ErrorKind.EMPTY_DATASET] if snapshot.body.is_empty else []

        data = snapshot.serialize()
        if password:
            envelope = encrypt_artifact(
                data,
                password,
                iterations=self._settings.kdf_iterations,
                schema_version=snapshot.schema_version,
                created_at=snapshot.created_at,
            )
            data = json.dumps(envelope, indent=2).encode("utf-8")

        moment = self._clock()
        try:
            stored = await self._artifact_store.store(data, self.artifact_name(moment))
        except StorageError as e:
            logger.error("backup_store_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_backup_failed(
                    error_code=e.kind.value,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return BackupResult(
                success=False,
                fingerprint=snapshot.fingerprint,
                encrypted=bool(password),
                advisories=advisories,
                reason=e.kind,
                message=user_message(e.kind),
            )

        retired = await self._artifact_store.retire_oldest(self._settings.retention_count)

        try:
            config = await self._state_store.get_backup_config()
            config.last_run_at = moment.isoformat()
            await self._state_store.save_backup_config(config)
        except StorageError as e:
            logger.warning("backup_config_update_failed", error=str(e))

        if self._audit_logger:
            await self._audit_logger.log_backup_created(
                handle=stored.handle,
                fingerprint=snapshot.fingerprint,
                counts=snapshot.metadata.counts.to_wire(),
                caveats=stored.caveats,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_backups_retired(
                retired_count=retired,
                keep_count=self._settings.retention_count,
                correlation_id=correlation_id,
            )

        if advisories:
            message = f"Backup created. {user_message(ErrorKind.EMPTY_DATASET)}"
        else:
            message = "Backup created successfully."

        return BackupResult(
            success=True,
            handle=stored.handle,
            fingerprint=snapshot.fingerprint,
            encrypted=bool(password),
            handed_off=stored.handed_off,
            caveats=stored.caveats,
            advisories=advisories,
            summary=snapshot.summary(),
            message=message,
        )


class RestoreFlow:
    """
    Orchestrates restoring from a backup artifact.

    Flow:
    1. Preview → validate, show summary and advisory issues (PAUSE)
    2. Commit  → user explicitly confirms, snapshot replaces the dataset

    Hard validation failures never reach the applier.
    """

    def __init__(
        self,
        validator: RestoreValidator,
        applier: RestoreApplier,
        artifact_store: Optional[ArtifactStoreInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._validator = validator
        self._applier = applier
        self._artifact_store = artifact_store
        self._audit_logger = audit_logger

    async def preview(
        self,
        artifact: Union[bytes, str],
        password: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> RestoreValidation:
        """Validate an artifact without touching local data."""
        validation = self._validator.validate(artifact, password=password)
        if not validation.ok and self._audit_logger:
            await self._audit_logger.log_restore_rejected(
                error_code=validation.reason.value,
                error_message=validation.message,
                correlation_id=correlation_id,
            )
        return validation

    async def commit(
        self,
        validation: RestoreValidation,
        source: str = "file",
        correlation_id: Optional[UUID] = None,
    ) -> RestoreResult:
        """
        Apply a previewed artifact. Call only after the user confirmed.

        Advisory issues from the preview are carried on the result.
        """
        if not validation.ok or validation.snapshot is None:
            return RestoreResult(
                success=False,
                reason=validation.reason,
                message=validation.message,
                issues=validation.issues,
            )

        result = await self._applier.apply(validation.snapshot)
        result.issues = list(validation.issues)

        if self._audit_logger:
            if result.success:
                await self._audit_logger.log_restore_applied(
                    summary=result.summary,
                    fingerprint=validation.snapshot.fingerprint,
                    warnings=validation.warning_count,
                    source=source,
                    correlation_id=correlation_id,
                )
            else:
                await self._audit_logger.log_restore_failed(
                    error_message=result.message,
                    correlation_id=correlation_id,
                )
        return result

    async def restore(
        self,
        artifact: Optional[Union[bytes, str]] = None,
        handle: Optional[str] = None,
        password: Optional[str] = None,
    ) -> RestoreResult:
        """
        Validate and apply in one step (for callers that confirm up front).

        Args:
            artifact: Artifact bytes, e.g. an imported file
            handle: Or a handle from list_available()
            password: For password-protected artifacts
        """
        correlation_id = create_correlation_id()
        source = "file"

        if artifact is None:
            if handle is None or self._artifact_store is None:
                raise ValueError("Provide artifact bytes or a stored artifact handle")
            source = "backup"
            try:
                artifact = await self._artifact_store.retrieve(handle)
            except ArtifactNotFoundError:
                return RestoreResult(
                    success=False,
                    reason=ErrorKind.NOT_FOUND,
                    message=user_message(ErrorKind.NOT_FOUND),
                )

        validation = await self.preview(artifact, password=password, correlation_id=correlation_id)
        return await self.commit(validation, source=source, correlation_id=correlation_id)


@dataclass
class AppComponents:
    """Everything an app shell needs, wired together."""

    backup_flow: BackupFlow
    restore_flow: RestoreFlow
    sync_session: SyncSession
    auto_backup: AutoBackupScheduler
    catalog: ItemCatalog
    identity: LocalIdentityProvider
    notifier: ChangeNotifier
    audit_logger: AuditLogger


def create_app_components(
    kv: Optional[KeyValueStoreInterface] = None,
    probe: Optional[PlatformProbe] = None,
    download: Optional[DownloadTrigger] = None,
    share: Optional[ShareAction] = None,
    settings: Optional[Settings] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        kv: Key/value store holding the dataset. Defaults to JSON files
            under the configured data directory.
        probe: Platform capability probe. Defaults to the configured platform.
        download: Browser download trigger
        share: Device share action
        settings: Settings to use instead of the cached ones

    Returns:
        AppComponents. Nothing is started; call sync_session.resume()
        and auto_backup.start() from a running event loop.
    """
    settings = settings or get_settings()
    app_settings = settings.app
    backup_settings = settings.backup
    sync_settings = settings.sync
    prefix = app_settings.storage_key_prefix

    kv = kv or JsonFileKeyValueStore(app_settings.data_dir)
    probe = probe or SettingsPlatformProbe(app_settings.platform)

    data_store = KeyValueDataStore(kv, prefix=prefix)
    state_store = LocalStateStore(kv, prefix=prefix)
    audit_logger = AuditLogger(KeyValueAuditStorage(kv, key=f"{prefix}audit_log"))

    builder = SnapshotBuilder(data_store)
    validator = RestoreValidator()
    notifier = ChangeNotifier()
    applier = RestoreApplier(data_store, notifier=notifier)
    artifact_store = create_artifact_store(
        probe,
        kv,
        download=download,
        share=share,
        settings=backup_settings,
    )

    backup_flow = BackupFlow(
        builder=builder,
        artifact_store=artifact_store,
        state_store=state_store,
        settings=backup_settings,
        audit_logger=audit_logger,
    )
    restore_flow = RestoreFlow(
        validator=validator,
        applier=applier,
        artifact_store=artifact_store,
        audit_logger=audit_logger,
    )

    identity = LocalIdentityProvider(kv, prefix=prefix)
    sync_session = SyncSession(
        identity=identity,
        remote=KeyValueRemoteDocumentStore(kv),
        builder=builder,
        validator=validator,
        applier=applier,
        state_store=state_store,
        settings=sync_settings,
        audit_logger=audit_logger,
        monthly_backup=backup_flow.create_backup,
    )
    auto_backup = AutoBackupScheduler(
        run_backup=backup_flow.create_backup,
        state=state_store,
        settings=backup_settings,
        audit_logger=audit_logger,
    )

    return AppComponents(
        backup_flow=backup_flow,
        restore_flow=restore_flow,
        sync_session=sync_session,
        auto_backup=auto_backup,
        catalog=ItemCatalog(data_store, audit_logger=audit_logger),
        identity=identity,
        notifier=notifier,
        audit_logger=audit_logger,
    )
