"""Persistence orchestrator.

``FormPersistence`` coordinates the session tier, the durable tier and the
blob store for one form. It decides which tier is authoritative on startup,
enforces expiry, writes every mutation to both text tiers (session first) and
replaces file fields as a whole.

Typical use::

    storage = FormStorage.from_url("sqlite:///./forms.sqlite3")
    form = FormPersistence("signup", {"name": "", "email": ""},
                           PersistenceOptions(file_fields=["avatar"]), storage)
    await form.mount()
    await form.set_field("name", "Ada")
    await form.save_files("avatar", [IncomingFile.from_path("ada.png")])
    await form.handle_lifecycle_event(LifecycleEvent.CLOSE)
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from form_persistence.config import PersistenceOptions
from form_persistence.errors import (
    FormPersistenceError,
    SerializationError,
    ValidationError,
    classify_error,
)
from form_persistence.form_state import FormState
from form_persistence.lifecycle import LifecycleMonitor, StorageKeys
from form_persistence.models.enums import ErrorLevel, LifecycleEvent, StartupKind
from form_persistence.models.files import FileRecord, IncomingFile, UploadProgress
from form_persistence.models.snapshot import FormSnapshot
from form_persistence.models.transforms import FieldTransforms, TransformHooks
from form_persistence.observability.logging import get_logger
from form_persistence.observability.metrics import PersistenceMetrics
from form_persistence.storage.bundle import FormStorage
from form_persistence.storage.tiers import KeyValueTier
from form_persistence.transforms import TransformPipeline

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_empty(value: Any) -> bool:
    if value is None or value == "":
        return True
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


class FormPersistence:
    """Crash-tolerant persistence for one form."""

    def __init__(
        self,
        form_id: str,
        initial_data: Mapping[str, Any],
        options: Optional[PersistenceOptions] = None,
        storage: Optional[FormStorage] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initializes the orchestrator. Nothing is read until ``mount()``.

        Args:
            form_id: Namespace of every key and record written for this form.
            initial_data: Field values of an untouched form.
            options: Persistence options. Defaults to ``PersistenceOptions()``.
            storage: The stores to use. Defaults to in-memory stores.
            clock: Returns the current time; used for ``savedAt`` and expiry.
        """
        if not form_id:
            raise ValidationError("form_id must be non-empty", "init")
        self.form_id = form_id
        self.options = options or PersistenceOptions()
        self.storage = storage or FormStorage.in_memory()
        self.keys = StorageKeys(form_id, self.options.storage_prefix)
        self.monitor = LifecycleMonitor(
            self.keys, self.storage.session, self.storage.durable
        )
        self.pipeline = TransformPipeline(
            self.options.transform_middleware,
            self.options.field_transforms,
            on_error=self._report,
        )
        self.metrics = PersistenceMetrics()

        self.form_data = FormState(initial_data)
        self.file_data: dict[str, list[FileRecord]] = {
            field: [] for field in self.options.file_fields
        }
        self.has_unsaved_changes = False
        self.error: Optional[str] = None
        self.startup_kind: Optional[StartupKind] = None

        self._upload_progress: Optional[UploadProgress] = None
        self._clock = clock or _utcnow
        self._last_saved_at: Optional[datetime] = None
        self._pending_save: Optional[asyncio.Task] = None
        self._deferred_save = False
        self._mounted = False

    # -- state ---------------------------------------------------------------

    @property
    def upload_progress(self) -> Optional[UploadProgress]:
        return self._upload_progress

    @upload_progress.setter
    def upload_progress(self, value: Optional[UploadProgress]) -> None:
        self._upload_progress = value
        if self.options.on_progress is not None:
            self.options.on_progress(value)

    @property
    def mounted(self) -> bool:
        return self._mounted

    def clear_error(self) -> None:
        self.error = None

    def should_confirm_leave(self) -> bool:
        """Whether the host should ask before letting the user leave."""
        return self.has_unsaved_changes and not self.options.clear_on_close

    # -- lifecycle -----------------------------------------------------------

    async def mount(self) -> Optional[StartupKind]:
        """Opens the blob store, restores data and starts tracking mutations.

        Returns:
            The startup classification, or None if restoration failed.
        """
        if self._mounted:
            return self.startup_kind
        try:
            await self.storage.blobs.init()
        except Exception as e:
            self._report(e, "mount")

        kind = await self.restore_data()
        self.form_data.add_listener(self._on_form_change)
        self._mounted = True
        return kind

    async def unmount(self) -> None:
        """Stops tracking mutations and waits for pending saves."""
        self.form_data.remove_listener(self._on_form_change)
        await self.flush()
        self._mounted = False

    async def handle_lifecycle_event(self, event: LifecycleEvent) -> None:
        """Reacts to a host lifecycle signal.

        ``CLOSE`` flushes unsaved text data and records a clean close.
        ``VISIBILITY_HIDDEN`` only flushes; a hidden form is not a closed one.
        """
        event = LifecycleEvent(event)
        if event is LifecycleEvent.VISIBILITY_VISIBLE:
            return

        await self.flush()
        if self.has_unsaved_changes:
            await self.save_text_data()

        if event is LifecycleEvent.CLOSE:
            try:
                await self.monitor.mark_closing()
            except Exception as e:
                self._report(e, "close")

    # -- restore -------------------------------------------------------------

    async def restore_data(self) -> Optional[StartupKind]:
        """Classifies the startup and restores the authoritative snapshot.

        Never raises: failures are recorded in ``error``.

        Returns:
            The startup classification, or None if restoration failed.
        """
        try:
            kind = await self.monitor.classify()
            await self.monitor.acknowledge_restart()
            self.startup_kind = kind
            self.metrics.inc(f"restore.{kind.value}")

            if kind is StartupKind.NORMAL_RESTART:
                if self.options.clear_on_close:
                    await self._erase_all()
                    logger.info(
                        f"Cleared stored data of form {self.form_id} after a clean close"
                    )
            elif kind is StartupKind.REFRESH:
                snapshot, _ = await self._read_snapshot(
                    self.storage.session, self.keys.session
                )
                if snapshot is not None:
                    self._apply_snapshot(snapshot)
                await self._restore_files()
            elif kind is StartupKind.CRASH_RECOVERY:
                raw = await self.storage.durable.get_item(self.keys.data)
                snapshot, expired = await self._read_snapshot(
                    self.storage.durable, self.keys.data, raw
                )
                if snapshot is not None:
                    self._apply_snapshot(snapshot)
                    await self.storage.session.set_item(self.keys.session, raw)
                    logger.info(
                        f"Recovered form {self.form_id} from the durable tier",
                        extra={
                            "extra_fields": {
                                "event": "crash_recovered",
                                "form_id": self.form_id,
                            }
                        },
                    )
                # Files outlive an unreadable text snapshot, not an expired one.
                if raw is not None and not expired:
                    await self._restore_files()

            self.has_unsaved_changes = self._has_content()
            return kind
        except Exception as e:
            self._report(e, "restore")
            self.has_unsaved_changes = False
            return None

    async def _read_snapshot(
        self, tier: KeyValueTier, key: str, raw: Optional[str] = None
    ) -> tuple[Optional[FormSnapshot], bool]:
        """Reads and validates one stored snapshot.

        Returns:
            The snapshot (None when missing, malformed or expired) and whether
            it was discarded for being expired.
        """
        if raw is None:
            raw = await tier.get_item(key)
        if raw is None:
            return None, False

        try:
            snapshot = FormSnapshot.from_json(raw)
        except SerializationError as e:
            self._report(e, f"restore:{key}")
            await tier.remove_item(key)
            return None, False

        if snapshot.saved_at is not None and self._is_expired(snapshot.saved_at):
            await tier.remove_item(key)
            self.metrics.inc("restore.expired")
            logger.info(
                f"Discarded expired snapshot {key} saved at {snapshot.saved_at.isoformat()}"
            )
            return None, True
        return snapshot, False

    def _is_expired(self, saved_at: datetime) -> bool:
        age = self._now() - saved_at
        return age > timedelta(milliseconds=self.options.data_expiry_ms)

    def _apply_snapshot(self, snapshot: FormSnapshot) -> None:
        values = self.pipeline.after_restore(snapshot.fields)
        with self.form_data.silenced():
            self.form_data.assign(values)

    async def _restore_files(self) -> None:
        try:
            for field in self.options.file_fields:
                self.file_data[field] = await self.storage.blobs.get_files(
                    self.form_id, field
                )
        except Exception as e:
            self._report(e, "restore:files")

    def _has_content(self) -> bool:
        has_data = any(not _is_empty(v) for v in self.form_data.values())
        has_files = any(len(files) > 0 for files in self.file_data.values())
        return has_data or has_files

    # -- text saves ----------------------------------------------------------

    async def save_text_data(self) -> bool:
        """Writes the current form state to the session tier, then the durable tier.

        Failures are recorded in ``error``.

        Returns:
            True when both writes succeeded.
        """
        self.error = None
        try:
            values = self.pipeline.before_save(self.form_data.snapshot())
            payload = FormSnapshot(
                fields=values, saved_at=self._next_saved_at()
            ).to_json()
            await self.storage.session.set_item(self.keys.session, payload)
            await self.storage.durable.set_item(self.keys.data, payload)
        except Exception as e:
            self._report(e, "save")
            return False

        self.has_unsaved_changes = True
        self.metrics.inc("save.text")
        return True

    def _next_saved_at(self) -> datetime:
        now = self._now()
        now = now.replace(microsecond=now.microsecond // 1000 * 1000)
        if self._last_saved_at is not None and now < self._last_saved_at:
            now = self._last_saved_at
        self._last_saved_at = now
        return now

    def _on_form_change(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Mutated from synchronous code: saved by the next flush().
            self._deferred_save = True
            self.has_unsaved_changes = True
            return
        previous = self._pending_save
        self._pending_save = loop.create_task(self._save_after(previous))

    async def _save_after(self, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            await previous
        await self.save_text_data()

    async def flush(self) -> None:
        """Waits until every save triggered by a mutation has completed.

        Mutations made while no event loop was running are saved here, once.
        """
        if self._deferred_save:
            self._deferred_save = False
            self._on_form_change()
        while self._pending_save is not None:
            pending = self._pending_save
            await pending
            if self._pending_save is pending:
                self._pending_save = None

    async def set_field(self, name: str, value: Any) -> None:
        """Sets one field and waits for the resulting save."""
        self.form_data[name] = value
        await self.flush()

    async def update_fields(self, values: Mapping[str, Any]) -> None:
        """Sets several fields as one mutation and waits for the save."""
        self.form_data.update(values)
        await self.flush()

    # -- files ---------------------------------------------------------------

    async def save_files(self, field_name: str, files: Iterable[IncomingFile]) -> None:
        """Replaces the stored files of one field.

        Old records are deleted first, then the new files are written one after
        another. ``file_data[field_name]`` is swapped only once every new file
        is stored. On failure the old records stay deleted.

        Raises:
            ValidationError: If ``field_name`` or ``files`` is empty.
            FormPersistenceError: Any storage failure, after it has been
                recorded in ``error``.
        """
        self.error = None
        self.upload_progress = None
        try:
            if not field_name:
                raise ValidationError("field_name must be non-empty", "save_files")
            files = list(files or [])
            if not files:
                raise ValidationError(
                    f"No files supplied for field {field_name}", "save_files"
                )

            blobs = self.storage.blobs
            async with blobs.transaction() as txn:
                txn.delete_field(self.form_id, field_name)

            total = sum(f.size for f in files)
            loaded = 0
            new_records: list[FileRecord] = []
            for incoming in files:

                def on_chunk(file_loaded: int, _file_total: int, base: int = loaded) -> None:
                    self.upload_progress = UploadProgress.compute(
                        field_name, total, base + file_loaded
                    )

                record = await blobs.save_file(
                    incoming,
                    self.form_id,
                    field_name,
                    on_chunk=on_chunk,
                    chunk_size=self.options.chunk_size,
                )
                new_records.append(record)
                loaded += incoming.size

            self.file_data[field_name] = new_records
            self.has_unsaved_changes = True
            self.upload_progress = None
            self.metrics.inc("save.files")
            logger.debug(
                f"Stored {len(new_records)} file(s) for {self.form_id}.{field_name}"
            )
        except Exception as e:
            err = self._report(e, f"save_files:{field_name}")
            self.upload_progress = None
            if err is e:
                raise
            raise err from e

    # -- clearing ------------------------------------------------------------

    async def clear_storage(self) -> bool:
        """Erases every tier for this form. Failures are recorded in ``error``.

        Returns:
            True when everything was erased.
        """
        try:
            await self._erase_all()
        except Exception as e:
            self._report(e, "clear")
            return False
        self.has_unsaved_changes = False
        self.error = None
        return True

    async def _erase_all(self) -> None:
        await self.storage.session.remove_item(self.keys.session)
        await self.storage.durable.remove_item(self.keys.data)
        await self.monitor.acknowledge_restart()
        await self.storage.blobs.clear_files(self.form_id)
        for field in self.file_data:
            self.file_data[field] = []

    # -- serialization -------------------------------------------------------

    def get_form_data_json(self) -> str:
        """The in-memory field values as JSON. No tier is read."""
        return json.dumps(self.form_data.snapshot(), ensure_ascii=False, default=str)

    def get_file_data_json(self) -> str:
        """File metadata per field as JSON, without payloads."""
        simplified = {
            field: [record.public_metadata() for record in records or []]
            for field, records in self.file_data.items()
        }
        return json.dumps(simplified, ensure_ascii=False)

    # -- transforms ----------------------------------------------------------

    def register_transform_middleware(self, hooks: TransformHooks) -> None:
        self.pipeline.register_global(hooks)

    def register_field_transforms(self, mapping: FieldTransforms) -> None:
        self.pipeline.register_fields(mapping)

    # -- errors --------------------------------------------------------------

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now

    def _report(self, exc: BaseException, context: str) -> FormPersistenceError:
        err = classify_error(exc, context)
        self.error = str(err)
        self.metrics.inc(f"error.{err.code}")

        level = self.options.error_level
        if level is ErrorLevel.BASIC:
            logger.warning(f"Form {self.form_id} [{context}]: {err}")
        elif level is ErrorLevel.DETAILED:
            logger.error(
                f"Form {self.form_id} [{context}] failed: {err}",
                exc_info=(type(err), err, err.__traceback__),
                extra={
                    "extra_fields": {
                        "event": "persistence_error",
                        "form_id": self.form_id,
                        "context": context,
                        "code": err.code,
                    }
                },
            )

        if self.options.on_error is not None:
            try:
                self.options.on_error(err, context)
            except Exception as cb_error:
                logger.error(f"Error in on_error callback: {str(cb_error)}")
        return err
