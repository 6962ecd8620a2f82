import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mystery_writer import create_app
from mystery_writer.completion import CompletionError
from mystery_writer.config import TestConfig
from mystery_writer.extensions import db
from mystery_writer.models import Chapter, Character, Novel
from mystery_writer.services import novel_workflow
from mystery_writer.services.completions import (
    CLIENT_EXTENSION_KEY,
    CompletionTimeoutError,
    get_completion_queue,
    run_completion,
)


OUTLINE_TEXT = """Here is your outline:

Chapter 1: The Locked Study - Lady Ashcombe is found dead behind a bolted door.
Chapter 2: Muddy Boots - Inspector Vale notices the gardener's boots are clean.
Chapter 3: The Confession - The nephew confesses, but the clock tells another story.
"""


class DummyClient:
    def __init__(self, responder):
        self.responder = responder
        self.calls = []
        self.threads = []

    def complete(self, prompt, *, system_prompt=None, max_tokens=None, temperature=None):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "max_tokens": max_tokens})
        self.threads.append(threading.current_thread().name)
        return self.responder(prompt)


@pytest.fixture
def app_ctx():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    get_completion_queue().stop(timeout=2)
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def novel(app_ctx):
    novel = Novel(title="Death at Ashcombe Hall", setting="1920s country house", chapter_count=3)
    db.session.add(novel)
    db.session.commit()
    return novel


def _use_client(app, responder):
    client = DummyClient(responder)
    app.extensions[CLIENT_EXTENSION_KEY] = client
    return client


def test_parse_outline_reads_single_line_format():
    plans = novel_workflow.parse_outline(OUTLINE_TEXT)

    assert [plan.number for plan in plans] == [1, 2, 3]
    assert plans[0].title == "The Locked Study"
    assert plans[0].summary == "Lady Ashcombe is found dead behind a bolted door."


def test_parse_outline_reads_section_format_and_continuations():
    text = (
        "Chapter: Chapter 1 — Arrival\n"
        "Guests gather for the reading of the will.\n"
        "A storm cuts the phone line.\n\n"
        "Chapter: Chapter 2 — The Body\n"
        "The solicitor is found in the conservatory.\n"
    )

    plans = novel_workflow.parse_outline(text)

    assert [(plan.number, plan.title) for plan in plans] == [(1, "Arrival"), (2, "The Body")]
    assert plans[0].summary == "Guests gather for the reading of the will. A storm cuts the phone line."


def test_parse_outline_handles_markdown_and_duplicates():
    text = (
        "**Chapter 1: Twenty-one Candles** - The party begins.\n"
        "Chapter 1: Again - ignored duplicate\n"
        "## Chapter 2. Lights Out\n"
    )

    plans = novel_workflow.parse_outline(text)

    assert [(plan.number, plan.title) for plan in plans] == [(1, "Twenty-one Candles"), (2, "Lights Out")]
    assert plans[0].summary == "The party begins."
    assert plans[1].summary == ""


def test_parse_outline_without_chapters_is_empty():
    assert novel_workflow.parse_outline("Just some notes about the plot.") == []
    assert novel_workflow.parse_outline("") == []


def test_render_outline_round_trips_titles():
    plans = novel_workflow.parse_outline(OUTLINE_TEXT)
    rendered = novel_workflow.render_outline(plans)

    assert rendered.splitlines()[1] == (
        "Chapter 2: Muddy Boots - Inspector Vale notices the gardener's boots are clean."
    )


def test_generate_idea_stores_premise_and_advances(app_ctx, novel):
    client = _use_client(app_ctx, lambda prompt: "Setting: Ashcombe Hall in a snowstorm.")

    result = novel_workflow.generate_idea(novel, "A poisoning at a New Year's party")

    assert result.text == "Setting: Ashcombe Hall in a snowstorm."
    assert novel.idea == result.text
    assert novel.brief == "A poisoning at a New Year's party"
    assert novel.current_step == "outline"
    assert "A poisoning at a New Year's party" in client.calls[0]["prompt"]
    assert "1920s country house" in client.calls[0]["prompt"]
    assert client.calls[0]["system_prompt"]
    assert client.threads == ["completion-queue"]


def test_generate_outline_requires_premise(app_ctx, novel):
    _use_client(app_ctx, lambda prompt: OUTLINE_TEXT)

    with pytest.raises(novel_workflow.WorkflowError, match="premise"):
        novel_workflow.generate_outline(novel)


def test_generate_outline_builds_chapters(app_ctx, novel):
    novel.idea = "A snowed-in house party and a poisoned decanter."
    db.session.add(Character(novel=novel, name="Inspector Vale", role="Detective"))
    db.session.commit()
    client = _use_client(app_ctx, lambda prompt: OUTLINE_TEXT)

    result = novel_workflow.generate_outline(novel, 3)
    db.session.commit()

    assert [plan.title for plan in result.chapters] == ["The Locked Study", "Muddy Boots", "The Confession"]
    assert Chapter.query.filter_by(novel_id=novel.id).count() == 3
    assert novel.current_step == "drafting"
    assert novel.outline.splitlines()[0] == (
        "Chapter 1: The Locked Study - Lady Ashcombe is found dead behind a bolted door."
    )
    assert "Here is your outline" not in novel.outline
    assert "exactly 3 chapters" in client.calls[0]["prompt"]
    assert "Inspector Vale (Detective)" in client.calls[0]["prompt"]


def test_apply_outline_keeps_surviving_drafts(app_ctx, novel):
    novel.idea = "Premise"
    novel_workflow.apply_outline(novel, OUTLINE_TEXT)
    novel.chapter(1).draft = "The door was bolted from inside."
    db.session.commit()

    novel_workflow.apply_outline(novel, "Chapter 1: The Sealed Room - A body.\nChapter 2: Frost - Footprints.")
    db.session.commit()

    chapters = Chapter.query.filter_by(novel_id=novel.id).order_by(Chapter.number).all()
    assert [(chapter.number, chapter.title) for chapter in chapters] == [(1, "The Sealed Room"), (2, "Frost")]
    assert chapters[0].draft == "The door was bolted from inside."
    assert novel.chapter_count == 2


def test_apply_outline_rejects_text_without_chapters(app_ctx, novel):
    with pytest.raises(novel_workflow.WorkflowError):
        novel_workflow.apply_outline(novel, "No chapters here.")


def test_draft_chapter_uses_previous_chapter_for_continuity(app_ctx, novel):
    novel.idea = "Premise"
    novel_workflow.apply_outline(novel, OUTLINE_TEXT)
    novel.chapter(1).draft = "...and the candle guttered out."
    db.session.commit()
    client = _use_client(app_ctx, lambda prompt: "Vale knelt by the boots.")

    result = novel_workflow.draft_chapter(novel, 2, guidance="Keep it tense.")

    assert result.text == "Vale knelt by the boots."
    assert novel.chapter(2).draft == "Vale knelt by the boots."
    prompt = client.calls[0]["prompt"]
    assert "...and the candle guttered out." in prompt
    assert "Write Chapter 2: Muddy Boots." in prompt
    assert "Author notes: Keep it tense." in prompt


def test_draft_unknown_chapter_fails(app_ctx, novel):
    _use_client(app_ctx, lambda prompt: "unused")

    with pytest.raises(novel_workflow.WorkflowError, match="Chapter 7"):
        novel_workflow.draft_chapter(novel, 7)


def test_critique_and_revise_cycle(app_ctx, novel):
    novel.idea = "Premise"
    novel_workflow.apply_outline(novel, "Chapter 1: Only Chapter - Everything happens.")
    db.session.commit()

    with pytest.raises(novel_workflow.WorkflowError, match="Draft chapter 1"):
        novel_workflow.critique_chapter(novel, 1)
    with pytest.raises(novel_workflow.WorkflowError):
        novel_workflow.revise_chapter(novel, 1)

    replies = iter(["First draft.", "Plant the clue earlier.", "Second draft."])
    _use_client(app_ctx, lambda prompt: next(replies))

    novel_workflow.draft_chapter(novel, 1)
    assert novel.current_step == "critique"

    novel_workflow.critique_chapter(novel, 1)
    assert novel.chapter(1).critique == "Plant the clue earlier."
    assert novel.current_step == "manuscript"

    novel_workflow.revise_chapter(novel, 1)
    chapter = novel.chapter(1)
    assert chapter.draft == "Second draft."
    assert chapter.critique is None
    assert chapter.revision_count == 1
    assert novel.current_step == "manuscript"


def test_completion_failure_reaches_caller_and_queue_recovers(app_ctx, novel):
    def responder(prompt):
        if "Surprise me" in prompt:
            raise CompletionError("endpoint unavailable")
        return "A premise."

    _use_client(app_ctx, responder)

    with pytest.raises(CompletionError, match="endpoint unavailable"):
        novel_workflow.generate_idea(novel, "")

    result = novel_workflow.generate_idea(novel, "Murder on a night train")
    assert result.text == "A premise."
    assert not get_completion_queue().busy


def _wait_for_idle(queue, timeout=2.0):
    deadline = time.monotonic() + timeout
    while queue.pending or queue.busy:
        if time.monotonic() > deadline:
            raise AssertionError("completion queue did not drain")
        time.sleep(0.01)


def test_completion_wait_timeout_cancels_queued_call(app_ctx):
    client = _use_client(app_ctx, lambda prompt: "too late")
    queue = get_completion_queue()
    release = threading.Event()
    blocker = queue.submit(lambda: release.wait(timeout=5))
    deadline = time.monotonic() + 2
    while not blocker.running() and time.monotonic() < deadline:
        time.sleep(0.01)

    with pytest.raises(CompletionTimeoutError, match="still busy"):
        run_completion("idea", "Invent a premise.", wait_seconds=0.1)

    assert queue.pending == 1
    release.set()
    assert blocker.result(timeout=2) is True
    _wait_for_idle(queue)

    assert client.calls == []
    assert queue.pending == 0
    assert not queue.busy


def test_completion_wait_defaults_to_config(app_ctx):
    _use_client(app_ctx, lambda prompt: "never seen")
    app_ctx.config["COMPLETION_WAIT_SECONDS"] = 0.05
    queue = get_completion_queue()
    release = threading.Event()
    queue.submit(lambda: release.wait(timeout=5))

    try:
        with pytest.raises(CompletionTimeoutError):
            run_completion("critique", "Review this chapter.")
    finally:
        release.set()
    _wait_for_idle(queue)
