"""Enumeration definitions for form persistence.

This module contains the Enum classes shared by the lifecycle monitor, the
orchestrator and the configuration layer.
"""

from enum import Enum


class StartupKind(str, Enum):
    """Classification of the current startup.

    Attributes:
        FRESH: No recoverable state exists for the form.
        REFRESH: The same process instance resumed; the session tier is
            authoritative.
        CRASH_RECOVERY: The previous process ended without completing the
            close signal; the durable tier is the best available evidence.
        NORMAL_RESTART: A full clean close happened before this startup.
    """

    FRESH = "fresh"
    REFRESH = "refresh"
    CRASH_RECOVERY = "crash_recovery"
    NORMAL_RESTART = "normal_restart"


class LifecycleEvent(str, Enum):
    """Lifecycle signals forwarded by the host.

    Attributes:
        CLOSE: Explicit close or unload signal. Sets the close marker.
        VISIBILITY_HIDDEN: The form became hidden (background switch). Flushes
            pending data but never sets the close marker.
        VISIBILITY_VISIBLE: The form became visible again.
    """

    CLOSE = "close"
    VISIBILITY_HIDDEN = "visibility_hidden"
    VISIBILITY_VISIBLE = "visibility_visible"


class ErrorLevel(str, Enum):
    """Diagnostic verbosity for recovered errors.

    Attributes:
        NONE: Recovered errors are not logged.
        BASIC: One warning line per error.
        DETAILED: Error line with traceback and structured context.
    """

    NONE = "none"
    BASIC = "basic"
    DETAILED = "detailed"
