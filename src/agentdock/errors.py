"""Error types raised by providers."""

from enum import Enum


class ProviderErrorCode(str, Enum):
    CREDENTIAL_MISSING = "credential_missing"
    CREDENTIAL_EXPIRED = "credential_expired"
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INVALID_RESPONSE = "invalid_response"
    NOT_IMPLEMENTED = "not_implemented"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """A provider operation failed in a way the caller should see."""

    def __init__(self, code: ProviderErrorCode, message: str, retryable: bool = False):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    @classmethod
    def thread_not_found(cls, label: str, thread_id: str) -> "ProviderError":
        return cls(
            ProviderErrorCode.INVALID_RESPONSE,
            f"{label} thread not found: {thread_id}",
            retryable=False,
        )

    @classmethod
    def cli_not_found(cls, label: str, binary: str) -> "ProviderError":
        return cls(
            ProviderErrorCode.UPSTREAM_UNAVAILABLE,
            f"{label} CLI not found in PATH: {binary}",
            retryable=False,
        )

    @classmethod
    def cli_failed(cls, label: str, binary: str, error: OSError) -> "ProviderError":
        return cls(
            ProviderErrorCode.UPSTREAM_UNAVAILABLE,
            f"Failed to execute {label} CLI ({binary}): {error}",
            retryable=True,
        )

    @classmethod
    def not_implemented(cls, message: str) -> "ProviderError":
        return cls(ProviderErrorCode.NOT_IMPLEMENTED, message, retryable=False)
