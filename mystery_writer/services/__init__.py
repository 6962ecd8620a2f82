"""Service layer helpers for the ghost-writing workflow."""

from __future__ import annotations

from .completions import (  # noqa: F401
    CompletionTimeoutError,
    get_completion_client,
    get_completion_queue,
    run_completion,
)
from .novel_workflow import (  # noqa: F401
    ChapterPlan,
    WorkflowError,
    apply_outline,
    critique_chapter,
    draft_chapter,
    generate_idea,
    generate_outline,
    parse_outline,
    revise_chapter,
)

__all__ = [
    "ChapterPlan",
    "CompletionTimeoutError",
    "WorkflowError",
    "apply_outline",
    "critique_chapter",
    "draft_chapter",
    "generate_idea",
    "generate_outline",
    "get_completion_client",
    "get_completion_queue",
    "parse_outline",
    "revise_chapter",
    "run_completion",
]
