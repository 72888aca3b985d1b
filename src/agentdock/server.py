"""FastAPI web server for agentdock."""

import logging
from typing import Callable, TypeVar

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response

from . import catalog
from .backends import PROVIDER_CLASSES
from .core import ProviderId
from .errors import ProviderError, ProviderErrorCode
from .export import (
    context_summary_to_dict,
    health_to_dict,
    message_to_dict,
    runtime_state_to_dict,
    thread_to_dict,
    thread_to_json,
    thread_to_markdown,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="agentdock", version="0.1.0")

T = TypeVar("T")

ERROR_STATUS = {
    ProviderErrorCode.INVALID_RESPONSE: 404,
    ProviderErrorCode.UPSTREAM_UNAVAILABLE: 503,
    ProviderErrorCode.NOT_IMPLEMENTED: 501,
}


def _parse_provider(raw: str) -> ProviderId:
    try:
        return ProviderId.parse(raw)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _call(action: str, fn: Callable[[], T]) -> T:
    """Run a provider operation, mapping ProviderError to an HTTP error."""
    try:
        return fn()
    except ProviderError as e:
        status = ERROR_STATUS.get(e.code, 500)
        if status >= 500:
            logger.error("Failed to %s: %s", action, e)
        raise HTTPException(status_code=status, detail=e.message)


# ── Routes ───────────────────────────────────────────────────────
# Plain ``def`` so FastAPI runs the blocking filesystem scans in its
# thread pool.


@app.get("/api/providers")
def get_providers():
    """Return the ids of every supported provider."""
    return [provider_id.value for provider_id in PROVIDER_CLASSES]


@app.get("/api/providers/status")
def get_provider_statuses(
    project: str | None = Query(None, description="Project directory to probe for"),
):
    """Return the health of every provider and whether its CLI is installed."""
    statuses = _call("check providers", lambda: catalog.list_provider_statuses(project))
    return [health_to_dict(result, installed) for result, installed in statuses]


@app.get("/api/providers/{provider_id}/health")
def get_provider_health(
    provider_id: str,
    profile: str = Query("default", description="Profile name reported in the message"),
    project: str | None = Query(None, description="Project directory to probe for"),
):
    pid = _parse_provider(provider_id)
    result = _call(f"check {pid.value}", lambda: catalog.health_check(pid, profile, project))
    return health_to_dict(result)


@app.get("/api/threads")
def get_threads(
    project: str | None = Query(None, description="Keep threads whose project path starts with this"),
    preview: bool = Query(False, description="Include the last message preview"),
):
    """Return all threads across all providers, most recent first."""
    threads = catalog.list_threads(project)
    payload = []
    for thread in threads:
        text = None
        if preview:
            try:
                text = catalog.thread_preview(thread)
            except ProviderError as e:
                logger.error("Failed to build preview for %s: %s", thread.id, e)
        payload.append(thread_to_dict(thread, text))
    return {"total": len(payload), "threads": payload}


@app.get("/api/threads/{provider_id}/{thread_id}/messages")
def get_thread_messages(provider_id: str, thread_id: str):
    """Return the normalized timeline of one thread."""
    pid = _parse_provider(provider_id)
    messages = _call("load messages", lambda: catalog.get_thread_messages(pid, thread_id))
    return {
        "providerId": pid.value,
        "threadId": thread_id,
        "messages": [message_to_dict(m) for m in messages],
    }


@app.get("/api/threads/{provider_id}/{thread_id}/runtime-state")
def get_thread_runtime_state(provider_id: str, thread_id: str):
    pid = _parse_provider(provider_id)
    state = _call("load runtime state", lambda: catalog.get_thread_runtime_state(pid, thread_id))
    return runtime_state_to_dict(state)


@app.get("/api/threads/{provider_id}/{thread_id}/resume-command")
def get_resume_command(
    provider_id: str,
    thread_id: str,
    project: str | None = Query(None, description="Directory to resume in"),
):
    pid = _parse_provider(provider_id)
    command = _call("build resume command",
                    lambda: catalog.resume_command(pid, thread_id, project))
    return {"providerId": pid.value, "threadId": thread_id, "command": command}


@app.get("/api/threads/{provider_id}/{thread_id}/context-summary")
def get_context_summary(provider_id: str, thread_id: str):
    pid = _parse_provider(provider_id)
    summary = _call("summarize thread", lambda: catalog.summarize_switch_context(pid, thread_id))
    return context_summary_to_dict(summary)


@app.get("/api/export/{provider_id}/{thread_id}")
def export_thread(
    provider_id: str,
    thread_id: str,
    format: str = Query("md", description="Export format: md or json"),
):
    """Export a thread timeline as Markdown or JSON."""
    pid = _parse_provider(provider_id)
    thread = _call("find thread", lambda: catalog.find_thread(pid, thread_id))
    messages = _call("load messages", lambda: catalog.get_thread_messages(pid, thread_id))

    safe_title = "".join(
        c if (c.isascii() and c.isalnum()) or c in "-_ " else "" for c in thread.title
    )[:50]
    safe_title = safe_title.strip() or thread.id

    if format == "json":
        content = thread_to_json(thread, messages)
        return Response(
            content=content,
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{safe_title}.json"'},
        )
    else:
        content = thread_to_markdown(thread, messages)
        return Response(
            content=content,
            media_type="text/markdown",
            headers={"Content-Disposition": f'attachment; filename="{safe_title}.md"'},
        )
