"""Startup classification and close-marker bookkeeping.

The classifier looks at three facts, in order:

1. the session tier holds a snapshot for the form,
2. the durable close marker is set,
3. the durable tier holds a snapshot for the form.

A session snapshot means the same process resumed (Refresh). Durable data
without a close marker means the previous process died before the close
signal completed (CrashRecovery). A close marker means a clean close
(NormalRestart). Anything else is Fresh.

The marker is written to the session tier first and mirrored to the durable
tier second. A process that dies between the two writes leaves no durable
marker, so the next startup is classified as CrashRecovery.
"""

from form_persistence.config import DEFAULT_STORAGE_PREFIX
from form_persistence.models.enums import StartupKind
from form_persistence.observability.logging import get_logger
from form_persistence.storage.tiers import KeyValueTier

logger = get_logger(__name__)

MARKER_VALUE = "true"
SESSION_SUFFIX = "_session"
MARKER_SUFFIX = "_normal_close"


class StorageKeys:
    """Tier keys for one form."""

    def __init__(self, form_id: str, prefix: str = DEFAULT_STORAGE_PREFIX):
        self.form_id = form_id
        self.prefix = prefix
        self.data = f"{prefix}{form_id}"
        self.session = f"{prefix}{form_id}{SESSION_SUFFIX}"
        self.marker = f"{prefix}{form_id}{MARKER_SUFFIX}"


class LifecycleMonitor:
    """Classifies startups and maintains the close marker for one form."""

    def __init__(
        self,
        keys: StorageKeys,
        session_tier: KeyValueTier,
        durable_tier: KeyValueTier,
    ):
        self.keys = keys
        self.session_tier = session_tier
        self.durable_tier = durable_tier

    async def classify(self) -> StartupKind:
        """Classifies the current startup from the tier contents."""
        session_present = await self.session_tier.get_item(self.keys.session) is not None
        marker_set = await self.close_marker_set()
        durable_present = await self.durable_tier.get_item(self.keys.data) is not None

        if session_present:
            kind = StartupKind.REFRESH
        elif durable_present and not marker_set:
            kind = StartupKind.CRASH_RECOVERY
        elif marker_set:
            kind = StartupKind.NORMAL_RESTART
        else:
            kind = StartupKind.FRESH

        logger.info(
            f"Startup for form {self.keys.form_id} classified as {kind.value}",
            extra={
                "extra_fields": {
                    "event": "startup_classified",
                    "form_id": self.keys.form_id,
                    "startup_kind": kind.value,
                    "session_present": session_present,
                    "marker_set": marker_set,
                    "durable_present": durable_present,
                }
            },
        )
        return kind

    async def close_marker_set(self) -> bool:
        return await self.durable_tier.get_item(self.keys.marker) == MARKER_VALUE

    async def mark_closing(self) -> None:
        """Records a clean close: session tier first, then the durable mirror."""
        await self.session_tier.set_item(self.keys.marker, MARKER_VALUE)
        await self.durable_tier.set_item(self.keys.marker, MARKER_VALUE)
        logger.debug(f"Close marker set for form {self.keys.form_id}")

    async def acknowledge_restart(self) -> None:
        """Clears the close marker once classification is complete."""
        await self.session_tier.remove_item(self.keys.marker)
        await self.durable_tier.remove_item(self.keys.marker)
