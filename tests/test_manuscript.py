import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mystery_writer.manuscript import (
    PLACEHOLDER_TEXT,
    compile_manuscript,
    export_manuscript_to_txt,
    manuscript_filename,
)


def _novel(**kwargs):
    defaults = {"title": "Death at Ashcombe Hall", "idea": "A poisoned decanter."}
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _chapter(number, title, draft=None):
    return SimpleNamespace(number=number, title=title, draft=draft)


def test_compile_orders_chapters_and_marks_gaps():
    text = compile_manuscript(
        _novel(),
        [
            _chapter(2, "Muddy Boots"),
            _chapter(1, "The Locked Study", "  The door was bolted.  "),
        ],
    )

    lines = text.splitlines()
    assert lines[0] == "Death at Ashcombe Hall"
    assert lines[1] == "=" * len("Death at Ashcombe Hall")
    assert text.index("Chapter 1: The Locked Study") < text.index("Chapter 2: Muddy Boots")
    assert "The door was bolted." in lines
    assert lines[-1] == PLACEHOLDER_TEXT
    assert "A poisoned decanter." not in text
    assert text.endswith("\n")


def test_compile_can_include_premise():
    text = compile_manuscript(_novel(), [], include_premise=True)

    assert "Premise" in text
    assert "A poisoned decanter." in text


def test_compile_falls_back_on_missing_titles():
    text = compile_manuscript(_novel(title="  "), [_chapter(1, "", "Prose.")])

    assert text.startswith("Untitled Mystery\n")
    assert "Chapter 1: Untitled Chapter" in text


def test_export_writes_utf8_file(tmp_path):
    target = tmp_path / "exports" / "book.txt"

    path = export_manuscript_to_txt(
        _novel(title="Café Noir"),
        [_chapter(1, "Crème brûlée", "Poison in the custard.")],
        output_path=target,
    )

    assert path == target
    content = target.read_text(encoding="utf-8")
    assert content.startswith("Café Noir")
    assert "Chapter 1: Crème brûlée" in content


def test_manuscript_filename_is_slugged():
    assert manuscript_filename(_novel(title="The A.B.C. Murders!")) == "the-a-b-c-murders.txt"
    assert manuscript_filename(_novel(title="")) == "manuscript.txt"
