"""Cross-provider operations: the thread catalog and per-thread lookups."""

import logging
from typing import Iterable, Optional

from .backends import get_provider, get_providers
from .core import (
    HealthCheckResult,
    MessageRecord,
    RuntimeState,
    SwitchContextSummary,
    ThreadRecord,
)
from .provider import ChatProvider

logger = logging.getLogger(__name__)


def list_threads(project_path: Optional[str] = None,
                 providers: Optional[Iterable[ChatProvider]] = None) -> list[ThreadRecord]:
    """Every provider's threads merged and ordered most recent first.

    A provider that fails unexpectedly is logged and left out so the others
    still show up.
    """
    if providers is None:
        providers = get_providers()

    threads: list[ThreadRecord] = []
    for provider in providers:
        try:
            threads.extend(provider.list_threads(project_path))
        except Exception as e:
            logger.error("Failed to list threads for %s: %s", provider.name, e)

    # Stable, so equal keys keep provider order.
    threads.sort(key=lambda t: t.sort_key, reverse=True)
    return threads


def get_thread_messages(provider_id, thread_id: str) -> list[MessageRecord]:
    return get_provider(provider_id).get_thread_messages(thread_id)


def get_thread_runtime_state(provider_id, thread_id: str) -> RuntimeState:
    return get_provider(provider_id).get_thread_runtime_state(thread_id)


def health_check(provider_id, profile_name: str = "default",
                 project_path: Optional[str] = None) -> HealthCheckResult:
    return get_provider(provider_id).health_check(profile_name, project_path)


def list_provider_statuses(project_path: Optional[str] = None,
                           providers: Optional[Iterable[ChatProvider]] = None,
                           profile_name: str = "default") -> list[tuple[HealthCheckResult, bool]]:
    """Health of every provider paired with whether its CLI is installed."""
    if providers is None:
        providers = get_providers()

    statuses = []
    for provider in providers:
        result = provider.health_check(profile_name, project_path)
        statuses.append((result, not result.cli_missing))
    return statuses


def resume_command(provider_id, thread_id: str, project_path: Optional[str] = None) -> str:
    return get_provider(provider_id).resume_command(thread_id, project_path)


def summarize_switch_context(provider_id, thread_id: str) -> SwitchContextSummary:
    return get_provider(provider_id).summarize_switch_context(thread_id)


def thread_preview(thread: ThreadRecord) -> Optional[str]:
    return get_provider(thread.provider_id).last_message_preview(thread)


def find_thread(provider_id, thread_id: str) -> ThreadRecord:
    return get_provider(provider_id).find_thread(thread_id)
