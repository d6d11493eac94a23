"""Exception hierarchy for the discovery engine."""


class LanwatchError(Exception):
    """Base class for all engine errors."""


class ValidationError(LanwatchError, ValueError):
    """Rejected input: malformed range, non-private range, bad query argument."""


class ProbeError(LanwatchError):
    """A liveness probe could not be executed at all.

    Never escapes the probe runner; it is logged and reported as an
    unreachable host.
    """

    MISSING_BINARY = "missing_binary"
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    SPAWN_FAILED = "spawn_failed"

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class ResolverError(LanwatchError):
    """A single enrichment resolver step failed."""


class PersistenceError(LanwatchError):
    """A write to the device store failed during reconciliation."""


class RetentionError(LanwatchError):
    """A purge or compaction operation failed and was rolled back."""


class VendorDatabaseError(LanwatchError):
    """The vendor lookup table could not be downloaded or validated."""
