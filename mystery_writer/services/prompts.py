"""Central configuration for the prompts sent at each workflow step."""

from __future__ import annotations

import re
from typing import Any, Dict

SYSTEM_PROMPTS: Dict[str, Dict[str, Any]] = {
    "idea": {
        "max_new_tokens": 900,
        "system": (
            "You are a bestselling author of classic whodunits. You invent fair-play murder "
            "mysteries in which every clue the detective needs is available to the reader."
        ),
        "template": (
            "Develop the premise for a murder-mystery novel titled \"{title}\".\n"
            "Author's brief: {brief}\n"
            "Setting preference: {setting}\n\n"
            "Describe, under these headings:\n"
            "Setting - the time, place and closed circle of suspects.\n"
            "Victim - who dies, how, and why their death matters.\n"
            "Detective - who investigates and what makes their method distinctive.\n"
            "Suspects - four or five suspects, each with a motive and an alibi.\n"
            "Culprit - who did it, how, and the key clue that gives them away.\n"
            "Twist - the misdirection that keeps readers guessing."
        ),
    },
    "outline": {
        "max_new_tokens": 1800,
        "system": (
            "You are a meticulous mystery plotter. You plant clues and red herrings at a steady "
            "pace and save the reveal for the final chapters."
        ),
        "template": (
            "Using the premise below, outline \"{title}\" in exactly {chapter_count} chapters.\n\n"
            "Premise:\n{idea}\n\n"
            "Cast:\n{cast}\n\n"
            "Write one line per chapter and nothing else, using the format:\n"
            "Chapter 1: Title - One or two sentences on what happens and which clue surfaces."
        ),
    },
    "chapter": {
        "max_new_tokens": 3000,
        "system": (
            "You are ghost-writing a murder mystery. Write vivid, tightly plotted prose in the "
            "third person past tense. Never reveal the culprit before the outline does."
        ),
        "template": (
            "Novel: \"{title}\"\n\n"
            "Premise:\n{idea}\n\n"
            "Cast:\n{cast}\n\n"
            "Full outline:\n{outline}\n\n"
            "Previous chapter ending:\n{previous}\n\n"
            "Write Chapter {number}: {chapter_title}.\n"
            "This chapter must cover: {summary}\n"
            "{guidance}"
            "Return only the chapter prose."
        ),
    },
    "critique": {
        "max_new_tokens": 900,
        "system": (
            "You are an exacting mystery editor. You judge clue fairness, pacing, red herrings "
            "and continuity, and you always give concrete, actionable notes."
        ),
        "template": (
            "Critique Chapter {number} (\"{chapter_title}\") of \"{title}\".\n\n"
            "Planned content: {summary}\n\n"
            "Chapter text:\n{draft}\n\n"
            "List the strongest moments, then the problems, then numbered revision notes."
        ),
    },
    "revise": {
        "max_new_tokens": 3000,
        "system": (
            "You are ghost-writing a murder mystery and revising a chapter after editorial "
            "feedback. Keep what works; fix what the editor flagged."
        ),
        "template": (
            "Revise Chapter {number} (\"{chapter_title}\") of \"{title}\".\n\n"
            "Planned content: {summary}\n\n"
            "Editor's notes:\n{critique}\n\n"
            "Current text:\n{draft}\n\n"
            "Return only the revised chapter prose."
        ),
    },
}


_PLACEHOLDER_PATTERN = re.compile(r"\{([a-z_]+)\}")


def get_prompt_entry(step: str) -> Dict[str, Any]:
    try:
        return SYSTEM_PROMPTS[step]
    except KeyError as exc:
        raise KeyError(f"No prompt is configured for the '{step}' step.") from exc


def get_prompt_max_new_tokens(step: str) -> int:
    return int(get_prompt_entry(step).get("max_new_tokens") or 1024)


def build_prompt(step: str, **values: Any) -> str:
    """Render the user prompt for ``step``.

    Placeholders without a value become empty strings so optional context
    never leaks ``{braces}`` into a prompt.
    """

    template = get_prompt_entry(step)["template"]

    def _substitute(match: "re.Match[str]") -> str:
        raw = values.get(match.group(1))
        return "" if raw is None else str(raw)

    return _PLACEHOLDER_PATTERN.sub(_substitute, template)


def get_entry_system_prompt(step: str) -> str:
    return str(get_prompt_entry(step).get("system") or "")
