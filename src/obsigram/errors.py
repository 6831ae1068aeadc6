"""
Exception types for ObsiGram.

Public operations report failures as result values; these exceptions cover
the checks the aggregation flow converts into chat replies.
"""


class ObsigramError(Exception):
    """Base class for ObsiGram errors."""


class VaultNotFoundError(ObsigramError):
    """The configured vault root does not exist."""


class VaultSecurityError(ObsigramError):
    """A path resolved outside the vault root."""


class BufferFullError(ObsigramError):
    """A requester's session buffer is at capacity."""


class AgentProtocolError(ObsigramError):
    """The agent answered a request with a JSON-RPC error or closed the stream."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code
