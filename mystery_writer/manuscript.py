"""Assemble a novel's chapters into a plain-text manuscript."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Optional


class ManuscriptExportError(RuntimeError):
    """Raised when writing the manuscript to disk fails."""


PLACEHOLDER_TEXT = "(This chapter has not been drafted yet.)"


def _clean(value: Optional[str]) -> str:
    if not value:
        return ""
    return str(value).strip()


def compile_manuscript(
    novel: object,
    chapters: Iterable[object],
    *,
    include_premise: bool = False,
) -> str:
    """Return the manuscript text for ``novel``.

    Chapters are written in ascending chapter number regardless of the order
    they are passed in. Undrafted chapters keep their heading and get a
    placeholder line so gaps stay visible.
    """

    title = _clean(getattr(novel, "title", "")) or "Untitled Mystery"
    lines: list[str] = [title, "=" * len(title)]

    premise = _clean(getattr(novel, "idea", ""))
    if include_premise and premise:
        lines.extend(["", "Premise", "-------", premise])

    ordered = sorted(chapters, key=lambda chapter: int(getattr(chapter, "number", 0) or 0))
    for chapter in ordered:
        heading = (
            f"Chapter {getattr(chapter, 'number', '?')}: "
            f"{_clean(getattr(chapter, 'title', '')) or 'Untitled Chapter'}"
        )
        lines.extend(["", "", heading, ""])
        content = _clean(getattr(chapter, "draft", ""))
        lines.append(content or PLACEHOLDER_TEXT)

    return "\n".join(lines).rstrip() + "\n"


def manuscript_filename(novel: object) -> str:
    title = _clean(getattr(novel, "title", "")) or "manuscript"
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-") or "manuscript"
    return f"{slug}.txt"


def export_manuscript_to_txt(
    novel: object,
    chapters: Iterable[object],
    *,
    output_path: Optional[Path] = None,
    include_premise: bool = False,
) -> Path:
    """Write the compiled manuscript for ``novel`` to a UTF-8 text file."""

    text_blob = compile_manuscript(novel, chapters, include_premise=include_premise)
    resolved_path = Path(output_path) if output_path else Path(manuscript_filename(novel))

    try:
        resolved_path.parent.mkdir(parents=True, exist_ok=True)
        resolved_path.write_text(text_blob, encoding="utf-8")
    except OSError as exc:  # pragma: no cover - IO failure
        raise ManuscriptExportError(f"Unable to export manuscript: {exc}") from exc

    return resolved_path


__all__ = [
    "ManuscriptExportError",
    "compile_manuscript",
    "export_manuscript_to_txt",
    "manuscript_filename",
]
