"""Prompt templates and the export snapshot derived from the live document."""

from __future__ import annotations

from quill.models import Annotation, Category, Document, ExportAnnotation, ExportSnapshot

PREVIEW_CHARS = 50

REQUEST_LINE = "Please revise the text addressing the feedback above."


def _feedback_line(ann: Annotation) -> str:
    return f'- [{ann.severity.label}] "{ann.selected_text[:PREVIEW_CHARS]}..." - {ann.comment}'


def _by_severity(annotations: list[Annotation]) -> list[Annotation]:
    return sorted(annotations, key=lambda ann: ann.severity.sort_order)


def document_reference(document: Document) -> str:
    return document.filepath or document.filename or document.title


def generate_prompt(document: Document) -> str:
    sections: list[str] = [
        f"## Document: {document_reference(document)}\n",
        f"I'm working on a piece of writing ({document.word_count} words).",
    ]

    grouped: dict[Category | None, list[Annotation]] = {}
    for ann in document.unresolved_annotations:
        grouped.setdefault(ann.category, []).append(ann)

    if grouped:
        sections.append("\n## Feedback\n")
        for category in Category:
            annotations = grouped.get(category)
            if annotations:
                sections.append(f"### {category.label}")
                sections.extend(_feedback_line(ann) for ann in _by_severity(annotations))
        general = grouped.get(None)
        if general:
            sections.append("### General")
            sections.extend(_feedback_line(ann) for ann in _by_severity(general))

    sections.append("\n## Request\n")
    sections.append(REQUEST_LINE)
    return "\n".join(sections)


def build_export_snapshot(document: Document) -> ExportSnapshot:
    return ExportSnapshot(
        filename=document.filename,
        filepath=document.filepath,
        title=document.title,
        content=document.content,
        word_count=document.word_count,
        annotations=[
            ExportAnnotation(
                id=str(ann.id),
                text=ann.selected_text,
                category=ann.category.value if ann.category else None,
                severity=ann.severity.value,
                comment=ann.comment,
                start_offset=ann.range.start_offset,
                end_offset=ann.range.end_offset,
            )
            for ann in document.unresolved_annotations
        ],
        prompt=generate_prompt(document),
    )


def build_edit_prompt(export: ExportSnapshot) -> str:
    return f"""
{export.prompt}

## Full Document Content

```
{export.content}
```
""".strip()


def _humanize_annotation_lines(export: ExportSnapshot) -> str:
    if not export.annotations:
        return "No specific annotations"
    blocks: list[str] = []
    for idx, ann in enumerate(export.annotations, start=1):
        category = f"[{ann.category}]" if ann.category else "[General]"
        preview = ann.text[:60] + ("..." if len(ann.text) > 60 else "")
        blocks.append(f'{idx}. {category} "{preview}"\n   → {ann.comment}')
    return "\n\n".join(blocks)


def build_humanize_prompt(export: ExportSnapshot) -> str:
    reference = export.filepath or export.filename or export.title
    return f"""
/compound-writing

## Document to Humanize

**File:** {reference}
**Word Count:** {export.word_count}

### Author Annotations

The author has marked these specific issues for revision:

{_humanize_annotation_lines(export)}

### Full Content

```
{export.content}
```

Please run the two-pass humanization system:
1. Diagnose the text for AI tells and address the author's annotations
2. Reconstruct with the feedback addressed while maintaining natural voice
""".strip()
