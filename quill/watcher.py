"""Polls agent-response.json and exposes the agent's replies to the editor."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from uuid import UUID, uuid4

from quill import config
from quill.agent_models import (
    AgentAnnotationResponse,
    AgentDocumentUpdate,
    AgentResponseFile,
    AnnotationThread,
    MessageRole,
    ThreadMessage,
)
from quill.models import utcnow
from quill.observable import Observable
from quill.storage import modified_time, read_json
from quill.store import DocumentStore

log = logging.getLogger(__name__)


def _key(annotation_id: UUID | str) -> str:
    return str(annotation_id).strip().lower()


class AgentResponseWatcher(Observable):
    """
    Mirrors the agent response file in memory.

    The file is re-read only when its modification time advances. A parse
    failure keeps the previous view and records `last_error`. Read state and
    human replies live in this process only. Subscribers receive "responses",
    "threads", "read" or "error".
    """

    def __init__(
        self,
        *,
        response_path: Path | None = None,
        interval_s: float | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__()
        self.response_path = Path(response_path or config.AGENT_RESPONSE_PATH)
        self.interval_s = config.AGENT_POLL_INTERVAL_S if interval_s is None else interval_s
        self._loop = loop
        self.responses: AgentResponseFile | None = None
        self.last_error: str | None = None
        self._last_modified: int | None = None
        self._read_ids: set[str] = set()
        self._local_replies: dict[str, list[ThreadMessage]] = {}
        self._poll_task: asyncio.Task | None = None

    # Lifecycle

    @property
    def is_watching(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def start_watching(self, interval_s: float | None = None) -> None:
        """Load synchronously, then poll on the event loop. Restarts if already running."""
        self.stop_watching()
        if interval_s is not None:
            self.interval_s = interval_s
        self.load_responses()
        loop = self._loop or asyncio.get_running_loop()
        self._poll_task = loop.create_task(self._poll_loop())

    def stop_watching(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                self.check_for_changes()
            except Exception:
                log.exception("Agent response poll failed for %s", self.response_path)

    def _stat(self) -> tuple[bool, int | None]:
        try:
            return True, modified_time(self.response_path)
        except OSError as exc:
            self.last_error = f"Cannot access {self.response_path}: {exc}"
            log.warning("%s", self.last_error)
            self._notify("error")
            return False, None

    def check_for_changes(self) -> bool:
        """Re-read the file if it changed since the last load. Returns True when it was re-read."""
        ok, modified = self._stat()
        if not ok:
            return False
        if modified is None:
            if self.responses is not None or self._last_modified is not None:
                self._reset_view()
                self._notify("responses")
            return False
        if self._last_modified is not None and modified <= self._last_modified:
            return False
        self.load_responses()
        return True

    def load_responses(self) -> None:
        ok, modified = self._stat()
        if not ok:
            return
        if modified is None:
            self._reset_view()
            self._notify("responses")
            return

        try:
            decoded = AgentResponseFile.model_validate(read_json(self.response_path))
        except (OSError, ValueError) as exc:
            # Keep the last good view; a fixed file gets a newer mtime.
            self._last_modified = modified
            self.last_error = f"Failed to parse {self.response_path.name}: {exc}"
            log.warning("%s", self.last_error)
            self._notify("error")
            return

        self.responses = decoded
        self._last_modified = modified
        self.last_error = None
        self._notify("responses")

    def _reset_view(self) -> None:
        self.responses = None
        self._last_modified = None

    # Read model

    @property
    def document_updates(self) -> list[AgentDocumentUpdate]:
        if self.responses is None:
            return []
        return list(self.responses.document_updates)

    @property
    def response_count(self) -> int:
        if self.responses is None:
            return 0
        return len(self._response_ids())

    def _response_ids(self) -> set[str]:
        if self.responses is None:
            return set()
        return {_key(resp.annotation_id) for resp in self.responses.annotation_responses}

    @property
    def has_unread_responses(self) -> bool:
        return bool(self._response_ids() - self._read_ids)

    def response_for(self, annotation_id: UUID | str) -> AgentAnnotationResponse | None:
        if self.responses is None:
            return None
        key = _key(annotation_id)
        matches = [resp for resp in self.responses.annotation_responses if _key(resp.annotation_id) == key]
        # Later entries supersede earlier ones for the same annotation.
        return matches[-1] if matches else None

    def thread_for(self, annotation_id: UUID | str) -> AnnotationThread | None:
        key = _key(annotation_id)
        messages: list[ThreadMessage] = []
        found = False
        if self.responses is not None and self.responses.threads:
            for thread in self.responses.threads:
                if _key(thread.annotation_id) == key:
                    messages.extend(thread.messages)
                    found = True

        local = self._local_replies.get(key, [])
        if local:
            found = True
            seen = {msg.id for msg in messages}
            messages.extend(msg for msg in local if msg.id not in seen)

        if not found:
            return None
        return AnnotationThread(annotation_id=str(annotation_id), messages=messages)

    # Actions

    def mark_read(self, annotation_id: UUID | str) -> None:
        self._read_ids.add(_key(annotation_id))
        self._notify("read")

    def mark_all_read(self) -> None:
        self._read_ids.update(self._response_ids())
        self._notify("read")

    def add_human_reply(self, annotation_id: UUID | str, message: str) -> ThreadMessage:
        reply = ThreadMessage(
            id=str(uuid4()),
            role=MessageRole.HUMAN,
            message=message,
            timestamp=utcnow().isoformat(),
        )
        self._local_replies.setdefault(_key(annotation_id), []).append(reply)
        self._notify("threads")
        return reply

    def accept_document_update(self, update: AgentDocumentUpdate, store: DocumentStore) -> None:
        """Replace the document content wholesale and resolve the addressed annotations."""
        store.update_content(update.content)
        for annotation_id in update.addressed_annotation_ids:
            store.resolve_annotation(annotation_id)

    def clear_responses(self) -> None:
        try:
            self.response_path.unlink(missing_ok=True)
        except OSError as exc:
            log.warning("Could not remove %s: %s", self.response_path, exc)
        self._reset_view()
        self.last_error = None
        self._read_ids.clear()
        self._local_replies.clear()
        self._notify("responses")
