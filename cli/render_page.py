"""Render-page CLI.

Runs the dark-mode engine over a saved HTML page offline and writes the
transformed markup (engine style, root marker, overlays, media marks) or a
JSON summary of the outcome.

Features:
 - Virtual clock (``ManualScheduler``): the settle/SPA waits cost no wall time.
 - Optional SQLite site-state store (``--db``) scoped to the page origin, so
   repeated runs see the state written by earlier ones.
   ``--persist`` picks the default store under ``DARKMODE_DATA_DIR``.
 - Optional global settings file (``--global-settings``) applied before resolving.
 - Optional engine tuning file (``--config``).
 - ``--log-jsonl`` exports the engine's log records captured during the run.
 - Exit code 0 on success, 2 when the input file is missing.

Example:
  python -m cli.render_page page.html --url https://example.com/ --enable --json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from darkmode.config import settings
from darkmode.dom.loader import load_html_file, serialize
from darkmode.engine.config import EngineConfig, load_engine_config
from darkmode.engine.engine import DarkModeEngine, attach_engine
from darkmode.engine.global_sync import GlobalSettings, sync_global_settings
from darkmode.services.kv_store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from darkmode.services.logging_service import LoggingService
from darkmode.services.scheduler import ManualScheduler


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Apply the adaptive dark-mode engine to a saved HTML page")
    p.add_argument("input", help="HTML file to render")
    p.add_argument("--url", default="https://localhost/", help="URL the page is treated as loaded from")
    p.add_argument(
        "--db",
        default=None,
        help="SQLite site-state store (default: in-memory). Created if missing.",
    )
    p.add_argument(
        "--persist",
        action="store_true",
        help="Use the default SQLite store under DARKMODE_DATA_DIR when --db is not given",
    )
    p.add_argument("--enable", action="store_true", help="Enable dark mode for the site before resolving")
    p.add_argument("--prefers-dark", action="store_true", help="Report a dark system color scheme")
    p.add_argument("--global-settings", default=None, help="JSON file with global settings to sync first")
    p.add_argument("--config", default=None, help="Engine config JSON file (or directory holding one)")
    p.add_argument("--output", "-o", default=None, help="Write rendered HTML here instead of stdout")
    p.add_argument("--json", action="store_true", help="Emit a JSON summary instead of HTML")
    p.add_argument("--log-jsonl", default=None, help="Export captured engine log records as JSON Lines")
    return p.parse_args(argv)


def _origin_of(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return "null"
    return f"{parsed.scheme}://{parsed.netloc.lower()}"


def _open_store(db_path: Optional[str], origin: str) -> KeyValueStore:
    if not db_path:
        return MemoryKeyValueStore()
    return SqliteKeyValueStore(db_path, origin)


def _load_global_settings(path: Optional[str]) -> Optional[GlobalSettings]:
    if not path:
        return None
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return GlobalSettings.from_dict(data)


async def _run(engine: DarkModeEngine, settings: Optional[GlobalSettings], enable: bool) -> None:
    if settings is not None:
        await sync_global_settings(engine, settings)
    if enable and not engine.is_enabled():
        await engine.enable()
    else:
        await engine.resolve()


def render_page(
    input_path: str,
    *,
    url: str = "https://localhost/",
    store: Optional[KeyValueStore] = None,
    config: Optional[EngineConfig] = None,
    settings: Optional[GlobalSettings] = None,
    enable: bool = False,
    prefers_dark: bool = False,
) -> tuple[str, Dict[str, Any]]:
    """Render one page; returns (html, summary)."""
    scheduler = ManualScheduler()
    document = load_html_file(input_path, url=url, scheduler=scheduler, prefers_dark=prefers_dark)
    engine = attach_engine(document, store, config=config, scheduler=scheduler)
    asyncio.run(scheduler.drive(_run(engine, settings, enable)))
    # Let the reconciliation loop finish its first shadow scan and re-render
    scheduler.run_until_idle()
    summary = {
        "url": url,
        "state": engine.get_state().value,
        "reason": engine.last_reason.value if engine.last_reason is not None else None,
        "snapshot": engine.get_snapshot().to_dict(),
        "heuristic_runs": engine.heuristic_runs,
        "protected_media": len(engine.scanner.marked),
    }
    html = serialize(document)
    engine.reconciler.stop()
    return html, summary


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if not os.path.isfile(args.input):
        print(f"Input file not found: {args.input}", file=sys.stderr)
        return 2
    log_service = LoggingService()
    if args.log_jsonl:
        log_service.attach()
    config = load_engine_config(args.config) if args.config else None
    store: Optional[KeyValueStore] = None
    try:
        db_path = args.db or (os.path.join(settings.DATA_DIR, settings.STORE_FILENAME) if args.persist else None)
        store = _open_store(db_path, _origin_of(args.url))
        html, summary = render_page(
            args.input,
            url=args.url,
            store=store,
            config=config,
            settings=_load_global_settings(args.global_settings),
            enable=args.enable,
            prefers_dark=args.prefers_dark,
        )
    finally:
        if isinstance(store, SqliteKeyValueStore):
            store.close()
        if args.log_jsonl:
            log_service.export_jsonl(args.log_jsonl)
            log_service.detach()
    if args.json:
        print(json.dumps(summary, ensure_ascii=False, indent=2))
    elif args.output:
        Path(args.output).write_text(html, encoding="utf-8")
        print(f"Rendered {args.input} -> {args.output} ({summary['state']})")
    else:
        sys.stdout.write(html)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
