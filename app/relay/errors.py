"""
Relay error taxonomy.

Every caller-facing failure carries a human-readable ``reason`` so the HTTP
layer can echo it back verbatim.
"""


class RelayError(Exception):
    """Base class for all relay failures."""

    default_reason = "Relay error"

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class RelayOffline(RelayError):
    default_reason = "Relay is offline"


class RelayBusy(RelayError):
    default_reason = "Relay is busy, please wait"


class RelayCommandFailed(RelayError):
    default_reason = "Relay command failed"


class ConnectionLost(RelayError):
    """Transport-level failure. Drives reconnection; never shown to callers."""

    default_reason = "Relay connection lost"


class RelayConfigError(RelayError):
    default_reason = "Relay configuration is incomplete"
