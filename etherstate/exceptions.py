# ========================================================================================================================
# etherstate – exceptions
#
# Error kinds raised by the state synchronisation engine. Per-call failures and
# stale aggregate results are expected conditions and have no exception type.
# ========================================================================================================================


class EtherStateError(Exception):
    """Base exception for state synchronisation failures."""

    def __init__(self, message: str = "State synchronisation failed") -> None:
        self.message: str = message
        super().__init__(self.message)


class InvalidTargetError(EtherStateError):
    """A contract call resolved to a malformed target address."""

    def __init__(self, target: object, message: str | None = None) -> None:
        self.target = target
        super().__init__(message or f"Invalid call target: {target!r}")


class AggregateCallError(EtherStateError):
    """The batched read against the aggregator contract failed."""


class ActionDecodeError(EtherStateError):
    """Return data reported as successful did not match the expected ABI shape."""


class UnsupportedTriggerError(EtherStateError):
    """A trigger kind was used where it is not supported (e.g. manual event update)."""


class EngineStateError(EtherStateError):
    """Operation not allowed in the engine's current lifecycle state."""
