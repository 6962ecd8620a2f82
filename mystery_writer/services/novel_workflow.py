"""The ghost-writing workflow: idea, outline, chapter drafts, critique, revision.

Each step renders a prompt from the novel's stored state, sends it through the
shared completion queue and writes the reply back onto the model objects. The
caller owns the transaction; steps only flush.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from flask import current_app

from ..extensions import db
from ..models import Chapter, Character, Novel
from .completions import run_completion
from .prompts import build_prompt

MIN_CHAPTERS = 1
MAX_CHAPTERS = 60
PREVIOUS_CHAPTER_TAIL_CHARS = 1500


class WorkflowError(RuntimeError):
    """Raised when a workflow step cannot run with the novel's current state."""


@dataclass
class ChapterPlan:
    number: int
    title: str
    summary: str


@dataclass
class StepResult:
    text: str
    prompt: str


@dataclass
class OutlineResult:
    outline: str
    chapters: List[ChapterPlan]
    prompt: str


_STRUCTURED_HEADER_PATTERN = re.compile(
    r"^\s*(?:[#*]+\s*)?Chapter\s*:\s*Chapter\s+(\d+)\s*[—–-]\s*(.*?)\s*\**\s*$",
    re.IGNORECASE,
)
_LINE_HEADER_PATTERN = re.compile(
    r"^\s*(?:[#*]+\s*)?Chapter\s+(\d+)\s*[:.]\s*(.*)$",
    re.IGNORECASE,
)
_TITLE_SPLIT_PATTERN = re.compile(r"\s+[—–-]\s+|\s*[—–]\s*")


def _normalise_whitespace(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def _split_title_summary(raw: str) -> tuple[str, str]:
    parts = _TITLE_SPLIT_PATTERN.split(raw, maxsplit=1)
    if len(parts) == 2:
        return parts[0].strip(" *"), parts[1].strip()
    return raw.strip(" *"), ""


def parse_outline(text: str) -> List[ChapterPlan]:
    """Return the chapter plan described by ``text``.

    Two layouts are understood::

        Chapter 1: The Locked Study - Lady Ashcombe is found dead.

        Chapter: Chapter 1 - The Locked Study
        Lady Ashcombe is found dead.

    Lines before the first chapter header are ignored, continuation lines
    extend the current chapter's summary, and a repeated chapter number keeps
    only its first occurrence.
    """

    if not text or not text.strip():
        return []

    plans: List[ChapterPlan] = []
    seen: set[int] = set()
    current: Optional[Dict[str, Any]] = None

    def _close() -> None:
        if current is None:
            return
        number = int(current["number"])
        if number in seen:
            return
        seen.add(number)
        summary = _normalise_whitespace(" ".join(current["lines"]))
        plans.append(ChapterPlan(number=number, title=str(current["title"]), summary=summary))

    for line in text.splitlines():
        structured = _STRUCTURED_HEADER_PATTERN.match(line)
        single = None if structured else _LINE_HEADER_PATTERN.match(line)
        if structured or single:
            _close()
            match = structured or single
            number = int(match.group(1))
            remainder = _normalise_whitespace(match.group(2))
            if structured:
                title, lines = remainder.strip(" *"), []
            else:
                title, summary = _split_title_summary(remainder)
                lines = [summary] if summary else []
            current = {"number": number, "title": title or f"Chapter {number}", "lines": lines}
            continue

        if current is None:
            continue
        stripped = line.strip()
        if stripped:
            current["lines"].append(stripped)

    _close()
    return plans


def render_outline(plans: Sequence[ChapterPlan]) -> str:
    """Format a chapter plan back into canonical one-line-per-chapter text."""

    lines = []
    for plan in plans:
        line = f"Chapter {plan.number}: {plan.title or 'Untitled Chapter'}"
        if plan.summary:
            line = f"{line} - {plan.summary}"
        lines.append(line)
    return "\n".join(lines)


def format_cast(characters: Iterable[Character]) -> str:
    lines = [f"- {character.summary_line()}" for character in characters]
    return "\n".join(lines) if lines else "(No cast recorded yet; invent one consistent with the premise.)"


def resolve_current_step(novel: Novel) -> str:
    if not (novel.idea or "").strip():
        return "idea"
    if not novel.chapters:
        return "outline"
    if any(not chapter.has_draft for chapter in novel.chapters):
        return "drafting"
    if any(not (chapter.critique or "").strip() and not chapter.revision_count for chapter in novel.chapters):
        return "critique"
    return "manuscript"


def generate_idea(novel: Novel, brief: Optional[str] = None) -> StepResult:
    """Ask the model for a murder-mystery premise and store it on ``novel``."""

    brief_text = (brief if brief is not None else novel.brief or "").strip()
    prompt = build_prompt(
        "idea",
        title=novel.title,
        brief=brief_text or "Surprise me with an original closed-circle mystery.",
        setting=(novel.setting or "").strip() or "Any period or place that suits the story.",
    )
    idea = run_completion("idea", prompt).strip()

    novel.brief = brief_text or None
    novel.idea = idea
    novel.current_step = resolve_current_step(novel)
    db.session.flush()
    return StepResult(text=idea, prompt=prompt)


def generate_outline(novel: Novel, chapter_count: Optional[int] = None) -> OutlineResult:
    """Ask the model for a chapter-by-chapter outline and rebuild the chapter plan."""

    if not (novel.idea or "").strip():
        raise WorkflowError("Generate or enter a premise before outlining the novel.")

    count = int(chapter_count or novel.chapter_count or 12)
    if not MIN_CHAPTERS <= count <= MAX_CHAPTERS:
        raise WorkflowError(f"Chapter count must be between {MIN_CHAPTERS} and {MAX_CHAPTERS}.")

    prompt = build_prompt(
        "outline",
        title=novel.title,
        chapter_count=count,
        idea=novel.idea.strip(),
        cast=format_cast(novel.characters),
    )
    outline_text = run_completion("outline", prompt)
    plans = apply_outline(novel, outline_text)
    if len(plans) != count:
        current_app.logger.warning(
            "Outline for novel %s has %s chapters; %s were requested.",
            novel.id,
            len(plans),
            count,
        )
    return OutlineResult(outline=novel.outline, chapters=plans, prompt=prompt)


def apply_outline(novel: Novel, outline_text: str) -> List[ChapterPlan]:
    """Store ``outline_text`` and sync the novel's chapters to it.

    The outline is saved in canonical one-line-per-chapter form, so any chatter
    around the chapter lines is dropped. Chapters whose number survives keep
    their draft and critique.
    """

    plans = parse_outline(outline_text)
    if not plans:
        raise WorkflowError(
            "The outline did not contain any chapters. Use lines like 'Chapter 1: Title - Summary'."
        )

    wanted = {plan.number for plan in plans}
    for chapter in list(novel.chapters):
        if chapter.number not in wanted:
            novel.chapters.remove(chapter)

    for plan in plans:
        chapter = novel.chapter(plan.number)
        if chapter is None:
            chapter = Chapter(number=plan.number)
            novel.chapters.append(chapter)
        chapter.title = plan.title[:200]
        chapter.summary = plan.summary or None

    novel.chapters.sort(key=lambda item: item.number)
    novel.outline = render_outline(plans)
    novel.chapter_count = len(plans)
    novel.current_step = resolve_current_step(novel)
    db.session.flush()
    return plans


def draft_chapter(novel: Novel, number: int, guidance: str = "") -> StepResult:
    """Write the prose for chapter ``number``."""

    chapter = _require_chapter(novel, number)
    previous = novel.chapter(number - 1)
    if previous is not None and previous.has_draft:
        previous_text = previous.draft.strip()[-PREVIOUS_CHAPTER_TAIL_CHARS:]
    else:
        previous_text = "(This is the first chapter to be written.)"

    guidance_text = (guidance or "").strip()
    prompt = build_prompt(
        "chapter",
        title=novel.title,
        idea=(novel.idea or "").strip(),
        cast=format_cast(novel.characters),
        outline=(novel.outline or "").strip(),
        previous=previous_text,
        number=chapter.number,
        chapter_title=chapter.title,
        summary=chapter.summary or "(no summary)",
        guidance=f"Author notes: {guidance_text}\n" if guidance_text else "",
    )
    text = run_completion("chapter", prompt).strip()

    chapter.draft = text
    chapter.critique = None
    novel.current_step = resolve_current_step(novel)
    db.session.flush()
    return StepResult(text=text, prompt=prompt)


def critique_chapter(novel: Novel, number: int) -> StepResult:
    """Have the editor review chapter ``number`` and store the notes."""

    chapter = _require_chapter(novel, number)
    if not chapter.has_draft:
        raise WorkflowError(f"Draft chapter {number} before asking for a critique.")

    prompt = build_prompt(
        "critique",
        title=novel.title,
        number=chapter.number,
        chapter_title=chapter.title,
        summary=chapter.summary or "(no summary)",
        draft=chapter.draft.strip(),
    )
    text = run_completion("critique", prompt).strip()

    chapter.critique = text
    novel.current_step = resolve_current_step(novel)
    db.session.flush()
    return StepResult(text=text, prompt=prompt)


def revise_chapter(novel: Novel, number: int) -> StepResult:
    """Rewrite chapter ``number`` so it answers its critique."""

    chapter = _require_chapter(novel, number)
    if not chapter.has_draft:
        raise WorkflowError(f"Draft chapter {number} before revising it.")
    if not (chapter.critique or "").strip():
        raise WorkflowError(f"Critique chapter {number} before revising it.")

    prompt = build_prompt(
        "revise",
        title=novel.title,
        number=chapter.number,
        chapter_title=chapter.title,
        summary=chapter.summary or "(no summary)",
        critique=chapter.critique.strip(),
        draft=chapter.draft.strip(),
    )
    text = run_completion("revise", prompt).strip()

    chapter.draft = text
    chapter.critique = None
    chapter.revision_count = (chapter.revision_count or 0) + 1
    novel.current_step = resolve_current_step(novel)
    db.session.flush()
    return StepResult(text=text, prompt=prompt)


def _require_chapter(novel: Novel, number: int) -> Chapter:
    chapter = novel.chapter(number)
    if chapter is None:
        raise WorkflowError(f"Chapter {number} is not part of the outline.")
    return chapter
