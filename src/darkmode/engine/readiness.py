"""Readiness probes awaited before the dark-page heuristic runs.

Sampling colors too early reads a half-built page: a blank SPA shell is
transparent, so it would be inverted even if the app paints a dark theme a
moment later. ``resolve()`` therefore waits for document ready, two frame
boundaries, meaningful content on SPA shells (bounded by a timeout) and a
short settle delay.
"""

from __future__ import annotations

import asyncio
import logging

from darkmode.dom.document import Document
from darkmode.services.scheduler import Scheduler

from .config import ScanLimits, TimingPolicy

__all__ = [
    "SPA_MARKERS",
    "CONTENT_SELECTOR",
    "wait_for_document_ready",
    "looks_like_spa",
    "has_meaningful_content",
    "wait_for_meaningful_content",
    "wait_for_stable_paint",
]

_logger = logging.getLogger(__name__)

SPA_MARKERS = ("#root", "#app", "[data-reactroot]", "[data-v-app]", "[ng-app]")
CONTENT_SELECTOR = 'img,video,main,article,section,[class*="content"],[class*="feed"]'


async def wait_for_document_ready(document: Document) -> None:
    if document.ready_state != "loading":
        return
    fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()

    def _ready() -> None:
        if not fut.done():
            fut.set_result(None)

    document.on_ready(_ready)
    await fut


def looks_like_spa(document: Document) -> bool:
    if document.body is None:
        return False
    return any(document.query_selector(marker) is not None for marker in SPA_MARKERS)


def has_meaningful_content(document: Document, min_chars: int = 180) -> bool:
    body = document.body
    if body is None:
        return False
    if len(body.inner_text.strip()) > min_chars:
        return True
    return body.query_selector(CONTENT_SELECTOR) is not None


async def wait_for_meaningful_content(
    document: Document,
    scheduler: Scheduler,
    *,
    timeout_ms: float = 1200.0,
    poll_ms: float = 80.0,
    min_chars: int = 180,
) -> bool:
    """Poll until content shows up or ``timeout_ms`` passes. Returns whether content appeared."""
    started = scheduler.now_ms()
    while scheduler.now_ms() - started < timeout_ms:
        if has_meaningful_content(document, min_chars):
            return True
        await scheduler.sleep(poll_ms)
    _logger.debug("no meaningful content after %.0f ms", timeout_ms)
    return False


async def wait_for_stable_paint(
    document: Document,
    scheduler: Scheduler,
    timing: TimingPolicy,
    limits: ScanLimits,
) -> None:
    await scheduler.next_frame()
    await scheduler.next_frame()
    if looks_like_spa(document):
        await wait_for_meaningful_content(
            document,
            scheduler,
            timeout_ms=timing.spa_timeout_ms,
            poll_ms=timing.spa_poll_ms,
            min_chars=limits.spa_text_min_chars,
        )
    await scheduler.sleep(timing.settle_ms)
