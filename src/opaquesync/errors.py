"""
Error taxonomy for the synchronization layer.

Only ``SequenceOutOfRange``, ``MalformedStep`` and ``RemoteFault`` ever reach
callers. ``ConfigMismatch`` describes why a cached state was discarded and
is used for logging only.
"""


class OpaqueSyncError(Exception):
    """Base class for all opaquesync errors."""


class ConfigMismatch(OpaqueSyncError):
    """A cached state no longer matches the attempt's identity or options."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SequenceOutOfRange(OpaqueSyncError, ValueError):
    """A step index beyond the recorded history was requested."""

    def __init__(self, seq: int, available: int):
        super().__init__(
            f"Sequence number {seq} out of range ({available} steps available)"
        )
        self.seq = seq
        self.available = available


class MalformedStep(OpaqueSyncError, ValueError):
    """The first step of an attempt lacks the identity variables."""


class RemoteFault(OpaqueSyncError):
    """
    A start/process/stop call to the remote engine failed.

    Attributes:
        code: Fault code reported by the engine, or a transport-level code
            such as ``"transport"`` or ``"protocol"``.
        message: Human-readable description.
    """

    def __init__(self, code: str, message: str):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
