"""Annotation and document data models shared by the store and the exporter."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_TITLE = "Untitled Document"
GENERAL_COMMENT = "Needs attention"

# Marks an omitted keyword where None is a meaningful value
UNCHANGED: Any = object()


def utcnow() -> datetime:
    return datetime.now(UTC)


class QuillModel(BaseModel):
    """Base model writing camelCase JSON keys while accepting either spelling."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Category(str, Enum):
    # Declaration order is the section order of the generated prompt.
    VOICE = "VOICE"
    CLARITY = "CLARITY"
    STRUCTURE = "STRUCTURE"
    EXPAND = "EXPAND"
    CONDENSE = "CONDENSE"
    REPHRASE = "REPHRASE"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def default_comment(self) -> str:
        return f"Needs {self.label.lower()} improvement"


class Severity(str, Enum):
    MUST_FIX = "must-fix"
    SHOULD_FIX = "should-fix"
    CONSIDER = "consider"

    @property
    def label(self) -> str:
        return {
            Severity.MUST_FIX: "Must Fix",
            Severity.SHOULD_FIX: "Should Fix",
            Severity.CONSIDER: "Consider",
        }[self]

    @property
    def sort_order(self) -> int:
        return list(Severity).index(self)


class TextRange(QuillModel):
    """Half-open character range into the document content."""

    start_offset: int
    end_offset: int

    @model_validator(mode="after")
    def _check_order(self) -> TextRange:
        if self.start_offset > self.end_offset:
            raise ValueError(
                f"startOffset ({self.start_offset}) must not exceed endOffset ({self.end_offset})."
            )
        return self

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset


class Annotation(QuillModel):
    id: UUID = Field(default_factory=uuid4, frozen=True)
    range: TextRange
    selected_text: str = Field(..., description="Snapshot of the text when the annotation was made.")
    category: Category | None = None
    severity: Severity = Severity.SHOULD_FIX
    comment: str = ""
    is_resolved: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _fill_default_comment(self) -> Annotation:
        if not self.comment:
            self.comment = default_comment_for(self.category)
        return self

    def touch(self) -> None:
        self.updated_at = utcnow()

    def update(
        self,
        *,
        comment: str | None = None,
        category: Category | None = UNCHANGED,
        severity: Severity | None = None,
    ) -> None:
        """Apply the given fields. Passing `category=None` clears the category."""
        if category is not UNCHANGED:
            self.category = category
        if severity is not None:
            self.severity = severity
        if comment is not None:
            self.comment = comment or default_comment_for(self.category)
        self.touch()


class Document(QuillModel):
    id: UUID = Field(default_factory=uuid4, frozen=True)
    title: str = DEFAULT_TITLE
    content: str = ""
    filename: str | None = None
    filepath: str | None = None
    annotations: list[Annotation] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    @property
    def unresolved_annotations(self) -> list[Annotation]:
        return [ann for ann in self.annotations if not ann.is_resolved]

    def find_annotation(self, annotation_id: UUID) -> Annotation | None:
        for ann in self.annotations:
            if ann.id == annotation_id:
                return ann
        return None

    def touch(self) -> None:
        self.updated_at = utcnow()


def default_comment_for(category: Category | None) -> str:
    if category is None:
        return GENERAL_COMMENT
    return category.default_comment


class ExportAnnotation(QuillModel):
    id: str
    text: str
    category: str | None = None
    severity: str
    comment: str
    start_offset: int
    end_offset: int


class ExportSnapshot(QuillModel):
    """Read-only projection written to document.json for the CLI and the agent."""

    filename: str | None = None
    filepath: str | None = None
    title: str
    content: str
    word_count: int
    annotations: list[ExportAnnotation] = Field(default_factory=list)
    prompt: str
