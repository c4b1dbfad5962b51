"""Document store: owns the live document, its annotations and their persistence."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from uuid import UUID

from quill import config
from quill.models import UNCHANGED, Annotation, Category, Document, ExportSnapshot, Severity, TextRange
from quill.observable import Observable
from quill.prompts import build_export_snapshot
from quill.scheduling import Debouncer
from quill.storage import read_json, write_json_atomic

log = logging.getLogger(__name__)


class DocumentOpenError(OSError):
    """Raised when a file cannot be read as UTF-8 text."""


def coerce_annotation_id(value: UUID | str | None) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class DocumentStore(Observable):
    """
    Single source of truth for the live document.

    Every mutation bumps `updated_at` where relevant, notifies subscribers and
    schedules a debounced save. Subscribers receive one of:
    "document", "selection", "saved", "save_error".
    """

    def __init__(
        self,
        *,
        state_path: Path | None = None,
        export_path: Path | None = None,
        debounce_s: float | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        super().__init__()
        self.state_path = Path(state_path or config.STATE_PATH)
        self.export_path = Path(export_path or config.EXPORT_PATH)
        delay = config.SAVE_DEBOUNCE_S if debounce_s is None else debounce_s
        self._saver = Debouncer(delay, self.save, loop=loop)
        self.selected_annotation_id: UUID | None = None
        self.last_save_error: str | None = None
        self.document = self._load_state()

    def _load_state(self) -> Document:
        try:
            return Document.model_validate(read_json(self.state_path))
        except FileNotFoundError:
            return Document()
        except (OSError, ValueError) as exc:
            log.warning("Ignoring unreadable state file %s: %s", self.state_path, exc)
            return Document()

    # Document actions

    def update_title(self, title: str) -> None:
        self.document.title = title
        self._document_changed()

    def update_content(self, content: str) -> None:
        self.document.content = content
        self._document_changed()

    def open_file(self, path: Path | str) -> Document:
        path = Path(path).expanduser()
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise DocumentOpenError(f"{path} is not a UTF-8 text file.") from exc
        except OSError as exc:
            raise DocumentOpenError(f"Could not read {path}: {exc}") from exc

        resolved = path.resolve()
        self.document = Document(
            title=resolved.stem,
            content=content,
            filename=resolved.name,
            filepath=str(resolved),
        )
        self.selected_annotation_id = None
        self._notify("document")
        self.schedule_save()
        return self.document

    def new_document(self) -> None:
        self.document = Document()
        self.selected_annotation_id = None
        self._notify("document")
        self.schedule_save()

    # Annotation actions

    def add_annotation(
        self,
        range: TextRange,
        selected_text: str,
        category: Category | None = None,
        comment: str = "",
        *,
        severity: Severity = Severity.SHOULD_FIX,
    ) -> Annotation:
        annotation = Annotation(
            range=range,
            selected_text=selected_text,
            category=category,
            severity=severity,
            comment=comment,
        )
        self.document.annotations.append(annotation)
        self._document_changed()
        return annotation

    def update_annotation(
        self,
        annotation_id: UUID | str,
        *,
        comment: str | None = None,
        category: Category | None = UNCHANGED,
        severity: Severity | None = None,
    ) -> None:
        annotation = self._find(annotation_id)
        if annotation is None:
            return
        annotation.update(comment=comment, category=category, severity=severity)
        self._document_changed()

    def resolve_annotation(self, annotation_id: UUID | str) -> None:
        self._set_resolved(annotation_id, True)

    def unresolve_annotation(self, annotation_id: UUID | str) -> None:
        self._set_resolved(annotation_id, False)

    def _set_resolved(self, annotation_id: UUID | str, resolved: bool) -> None:
        annotation = self._find(annotation_id)
        if annotation is None:
            return
        annotation.is_resolved = resolved
        annotation.touch()
        self._document_changed()

    def clear_resolved_annotations(self) -> None:
        self.document.annotations = self.document.unresolved_annotations
        if self._find(self.selected_annotation_id) is None:
            self.selected_annotation_id = None
        self._document_changed()

    def delete_annotation(self, annotation_id: UUID | str) -> None:
        target = coerce_annotation_id(annotation_id)
        self.document.annotations = [ann for ann in self.document.annotations if ann.id != target]
        if target is not None and self.selected_annotation_id == target:
            self.selected_annotation_id = None
            self._notify("selection")
        self._document_changed()

    def select_annotation(self, annotation_id: UUID | str | None) -> None:
        self.selected_annotation_id = coerce_annotation_id(annotation_id)
        self._notify("selection")

    def _find(self, annotation_id: UUID | str | None) -> Annotation | None:
        target = coerce_annotation_id(annotation_id)
        if target is None:
            return None
        return self.document.find_annotation(target)

    # Navigation

    def _navigation_order(self) -> list[Annotation]:
        return sorted(self.document.unresolved_annotations, key=lambda ann: ann.range.start_offset)

    def _current_index(self, ordered: list[Annotation]) -> int | None:
        for idx, ann in enumerate(ordered):
            if ann.id == self.selected_annotation_id:
                return idx
        return None

    def navigate_to_next(self) -> None:
        ordered = self._navigation_order()
        if not ordered:
            return
        idx = self._current_index(ordered)
        target = ordered[0] if idx is None else ordered[(idx + 1) % len(ordered)]
        self.select_annotation(target.id)

    def navigate_to_previous(self) -> None:
        ordered = self._navigation_order()
        if not ordered:
            return
        idx = self._current_index(ordered)
        target = ordered[-1] if idx is None else ordered[idx - 1]
        self.select_annotation(target.id)

    # Read model

    @property
    def unresolved_count(self) -> int:
        return len(self.document.unresolved_annotations)

    @property
    def resolved_count(self) -> int:
        return len(self.document.annotations) - self.unresolved_count

    def filtered_annotations(
        self,
        category: Category | None = None,
        show_resolved: bool = False,
    ) -> list[Annotation]:
        annotations = self.document.annotations
        if not show_resolved:
            annotations = [ann for ann in annotations if not ann.is_resolved]
        if category is not None:
            annotations = [ann for ann in annotations if ann.category == category]
        return sorted(
            annotations,
            key=lambda ann: (ann.severity.sort_order, ann.range.start_offset),
        )

    # Persistence

    @property
    def save_pending(self) -> bool:
        return self._saver.pending

    def _document_changed(self) -> None:
        self.document.touch()
        self._notify("document")
        self.schedule_save()

    def schedule_save(self) -> None:
        self._saver.trigger()

    def flush(self) -> None:
        """Run a pending debounced save immediately."""
        self._saver.flush()

    def export_now(self) -> ExportSnapshot:
        snapshot = build_export_snapshot(self.document)
        write_json_atomic(self.export_path, snapshot.to_json_dict())
        return snapshot

    def save(self) -> bool:
        try:
            write_json_atomic(self.state_path, self.document.to_json_dict())
            self.export_now()
        except OSError as exc:
            self.last_save_error = f"Failed to save: {exc}"
            log.warning("Failed to save document state: %s", exc)
            self._notify("save_error")
            return False
        self.last_save_error = None
        self._notify("saved")
        return True
