"""Registry of the supported agent CLI backends."""

from ..core import ProviderId
from ..provider import ChatProvider
from .claude_code import ClaudeCodeProvider
from .codex import CodexProvider
from .opencode import OpenCodeProvider

PROVIDER_CLASSES: dict[ProviderId, type[ChatProvider]] = {
    ProviderId.CLAUDE_CODE: ClaudeCodeProvider,
    ProviderId.CODEX: CodexProvider,
    ProviderId.OPENCODE: OpenCodeProvider,
}


def get_providers() -> list[ChatProvider]:
    """Build one provider per backend from the current environment.

    Providers are cheap and hold only configuration, so a fresh set is built
    per call and environment changes are picked up immediately.
    """
    return [cls() for cls in PROVIDER_CLASSES.values()]


def get_provider(provider_id) -> ChatProvider:
    """Build the provider for ``provider_id`` (a ProviderId or its string value).

    Raises ValueError for an unknown id.
    """
    if not isinstance(provider_id, ProviderId):
        provider_id = ProviderId.parse(provider_id)
    return PROVIDER_CLASSES[provider_id]()


__all__ = [
    "ClaudeCodeProvider",
    "CodexProvider",
    "OpenCodeProvider",
    "PROVIDER_CLASSES",
    "get_provider",
    "get_providers",
]
