"""Headless Quill session: document store and agent watcher on one event loop."""

from __future__ import annotations

import argparse
import asyncio
import logging

from quill import config
from quill.store import DocumentOpenError, DocumentStore
from quill.watcher import AgentResponseWatcher

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a Quill session that keeps document.json exported and follows agent responses."
    )
    parser.add_argument(
        "--open",
        dest="open_path",
        default=None,
        help="Text file to open as the live document.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between checks of agent-response.json.",
    )
    parser.add_argument(
        "--auto-accept",
        action="store_true",
        help="Apply the newest agent document update as soon as it appears.",
    )
    return parser


class Session:
    def __init__(
        self,
        store: DocumentStore,
        watcher: AgentResponseWatcher,
        *,
        auto_accept: bool = False,
    ) -> None:
        self.store = store
        self.watcher = watcher
        self.auto_accept = auto_accept
        self._accepted: set[str] = set()
        store.subscribe(self._on_store_change)
        watcher.subscribe(self._on_watcher_change)

    def _on_store_change(self, change: str) -> None:
        if change == "save_error":
            log.warning("%s", self.store.last_save_error)
        elif change == "saved":
            log.debug("Saved %s", self.store.document.title)

    def _on_watcher_change(self, change: str) -> None:
        if change != "responses":
            return
        if self.watcher.has_unread_responses:
            log.info("%d agent response(s) available", self.watcher.response_count)
        if self.auto_accept:
            self._accept_latest_update()

    def _accept_latest_update(self) -> None:
        updates = self.watcher.document_updates
        if not updates:
            return
        latest = updates[-1]
        if latest.timestamp in self._accepted:
            return
        self._accepted.add(latest.timestamp)
        log.info("Applying agent update: %s", latest.summary)
        self.watcher.accept_document_update(latest, self.store)

    async def run(self, poll_interval: float | None = None) -> None:
        self.watcher.start_watching(poll_interval)
        try:
            await asyncio.Event().wait()
        finally:
            self.watcher.stop_watching()
            self.store.flush()


def prepare_store(store: DocumentStore, open_path: str | None = None) -> None:
    """Open the requested file, then write state and export exactly once."""
    if open_path:
        try:
            store.open_file(open_path)
        except DocumentOpenError as exc:
            log.error("%s", exc)
    store.schedule_save()
    store.flush()


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config.bootstrap_runtime_dirs()

    store = DocumentStore()
    session = Session(store, AgentResponseWatcher(), auto_accept=args.auto_accept)
    prepare_store(store, args.open_path)

    try:
        asyncio.run(session.run(args.poll_interval))
    except KeyboardInterrupt:
        print("\nStopped session.")


if __name__ == "__main__":
    main()
