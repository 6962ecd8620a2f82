from __future__ import annotations

from pathlib import Path

from flask import (
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)

from ..completion import CompletionError, CompletionRateLimitError
from ..extensions import db
from ..manuscript import (
    ManuscriptExportError,
    compile_manuscript,
    export_manuscript_to_txt,
    manuscript_filename,
)
from ..models import Novel
from ..repository import CharacterRepository, NovelRepository
from ..services.completions import CompletionTimeoutError
from ..services.novel_workflow import (
    WorkflowError,
    apply_outline,
    critique_chapter,
    draft_chapter,
    generate_idea,
    generate_outline,
    resolve_current_step,
    revise_chapter,
)
from . import bp
from .forms import CharacterForm, DeleteForm, NovelForm, UploadForm


NOVEL_STEPS = [
    ("idea", "Premise"),
    ("outline", "Outline"),
    ("drafting", "Chapter drafts"),
    ("critique", "Critique"),
    ("manuscript", "Manuscript"),
]

_CHARACTER_FIELDS = ("role", "description", "motive", "alibi", "secret")


def _get_novel_or_404(novel_id: int) -> Novel:
    novel = NovelRepository().get_by_id(novel_id)
    if novel is None:
        abort(404)
    return novel


def _clean_optional(value: str | None) -> str | None:
    return (value or "").strip() or None


@bp.route("/<int:novel_id>", methods=["GET", "POST"])
def detail(novel_id: int):
    novel = _get_novel_or_404(novel_id)
    characters = CharacterRepository()

    novel_form = NovelForm(prefix="novel", obj=novel)
    character_form = CharacterForm(prefix="character")

    if novel_form.submit.data and novel_form.validate_on_submit():
        novel.title = novel_form.title.data.strip()
        novel.brief = _clean_optional(novel_form.brief.data)
        novel.setting = _clean_optional(novel_form.setting.data)
        novel.chapter_count = novel_form.chapter_count.data or novel.chapter_count
        db.session.commit()
        flash("Novel details saved.", "success")
        return redirect(url_for("novels.detail", novel_id=novel.id))

    if character_form.submit.data and character_form.validate_on_submit():
        values = {field: _clean_optional(getattr(character_form, field).data) for field in _CHARACTER_FIELDS}
        values["name"] = character_form.name.data.strip()
        values["is_victim"] = bool(character_form.is_victim.data)
        values["is_culprit"] = bool(character_form.is_culprit.data)

        character_id_raw = character_form.character_id.data
        character_id = int(character_id_raw) if character_id_raw else None
        if character_id:
            character = characters.get_for_novel(novel.id, character_id)
            if character is None:
                flash("We couldn't find the selected character.", "danger")
                return redirect(url_for("novels.detail", novel_id=novel.id))
            characters.update(character, **values)
            message = "Character updated."
        else:
            existing = characters.find_by_name(novel.id, values["name"])
            if existing is not None:
                flash(f"{existing.name} is already in the cast.", "warning")
                return redirect(url_for("novels.detail", novel_id=novel.id))
            characters.create(novel=novel, **values)
            message = "Character added to the cast."
        db.session.commit()
        flash(message, "success")
        return redirect(url_for("novels.detail", novel_id=novel.id))

    elif character_form.submit.data:
        for field_name, errors in character_form.errors.items():
            for error in errors:
                if field_name == "name":
                    flash("Add a character name before saving.", "danger")
                else:
                    flash(error, "danger")

    step_ids = [step[0] for step in NOVEL_STEPS]
    try:
        current_index = step_ids.index(novel.current_step)
    except ValueError:
        current_index = 0

    return render_template(
        "novels/detail.html",
        novel=novel,
        steps=NOVEL_STEPS,
        current_index=current_index,
        characters=characters.list_for_novel(novel.id),
        chapters=novel.chapters,
        novel_form=novel_form,
        character_form=character_form,
        upload_form=UploadForm(prefix="upload"),
        delete_form=DeleteForm(),
    )


@bp.route("/<int:novel_id>/delete", methods=["POST"])
def delete(novel_id: int):
    novel = _get_novel_or_404(novel_id)
    form = DeleteForm()
    if form.validate_on_submit():
        title = novel.title
        NovelRepository().delete(novel)
        db.session.commit()
        flash(f"Deleted “{title}”.", "info")
    return redirect(url_for("main.dashboard"))


@bp.route("/<int:novel_id>/characters/<int:character_id>/delete", methods=["POST"])
def delete_character(novel_id: int, character_id: int):
    novel = _get_novel_or_404(novel_id)
    characters = CharacterRepository()
    character = characters.get_for_novel(novel.id, character_id)
    if character is None:
        abort(404)
    form = DeleteForm()
    if form.validate_on_submit():
        characters.delete(character)
        db.session.commit()
        flash("Character removed from the cast.", "info")
    return redirect(url_for("novels.detail", novel_id=novel.id))


@bp.route("/<int:novel_id>/upload", methods=["POST"])
def upload(novel_id: int):
    novel = _get_novel_or_404(novel_id)
    form = UploadForm(prefix="upload")
    if not form.validate_on_submit():
        for errors in form.errors.values():
            for error in errors:
                flash(error, "danger")
        return redirect(url_for("novels.detail", novel_id=novel.id))

    try:
        text = form.document.data.read().decode("utf-8").strip()
    except UnicodeDecodeError:
        flash("The uploaded file must be UTF-8 encoded text.", "danger")
        return redirect(url_for("novels.detail", novel_id=novel.id))

    if not text:
        flash("The uploaded file is empty.", "warning")
        return redirect(url_for("novels.detail", novel_id=novel.id))

    if form.target.data == "idea":
        novel.idea = text
        novel.current_step = resolve_current_step(novel)
        db.session.commit()
        flash("Premise replaced with the uploaded text.", "success")
    else:
        try:
            plans = apply_outline(novel, text)
        except WorkflowError as exc:
            db.session.rollback()
            flash(str(exc), "danger")
        else:
            db.session.commit()
            flash(f"Outline uploaded with {len(plans)} chapters.", "success")
    return redirect(url_for("novels.detail", novel_id=novel.id))


def _error_response(exc: Exception):
    db.session.rollback()
    if isinstance(exc, (WorkflowError, ValueError)):
        status = 400
    elif isinstance(exc, CompletionRateLimitError):
        status = 429
    elif isinstance(exc, CompletionTimeoutError):
        status = 504
    else:
        status = 502
    return jsonify({"error": str(exc)}), status


def _run_step(novel: Novel, step: str, action):
    try:
        result = action()
    except (WorkflowError, CompletionError, ValueError) as exc:
        current_app.logger.info("Workflow step '%s' failed for novel %s: %s", step, novel.id, exc)
        return _error_response(exc)
    except Exception:  # pragma: no cover - unexpected failures still reach the user
        db.session.rollback()
        current_app.logger.exception("Unexpected error during workflow step '%s'", step)
        return jsonify({"error": "We couldn't reach the assistant right now. Please try again."}), 500

    db.session.commit()
    return result


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


@bp.route("/<int:novel_id>/idea", methods=["POST"])
def idea(novel_id: int):
    novel = _get_novel_or_404(novel_id)
    data = _payload()
    brief = data.get("brief")

    def action():
        result = generate_idea(novel, brief if isinstance(brief, str) else None)
        return jsonify({"idea": result.text, "current_step": novel.current_step})

    return _run_step(novel, "idea", action)


@bp.route("/<int:novel_id>/outline", methods=["POST"])
def outline(novel_id: int):
    novel = _get_novel_or_404(novel_id)
    data = _payload()
    raw_count = data.get("chapter_count")

    def action():
        count = int(raw_count) if raw_count not in (None, "") else None
        result = generate_outline(novel, count)
        return jsonify(
            {
                "outline": result.outline,
                "chapters": [chapter.to_dict() for chapter in novel.chapters],
                "current_step": novel.current_step,
            }
        )

    return _run_step(novel, "outline", action)


@bp.route("/<int:novel_id>/chapters/<int:number>/draft", methods=["POST"])
def draft(novel_id: int, number: int):
    novel = _get_novel_or_404(novel_id)
    guidance = _payload().get("guidance") or ""

    def action():
        draft_chapter(novel, number, str(guidance))
        return jsonify({"chapter": novel.chapter(number).to_dict(), "current_step": novel.current_step})

    return _run_step(novel, "draft", action)


@bp.route("/<int:novel_id>/chapters/<int:number>/critique", methods=["POST"])
def critique(novel_id: int, number: int):
    novel = _get_novel_or_404(novel_id)

    def action():
        critique_chapter(novel, number)
        return jsonify({"chapter": novel.chapter(number).to_dict(), "current_step": novel.current_step})

    return _run_step(novel, "critique", action)


@bp.route("/<int:novel_id>/chapters/<int:number>/revise", methods=["POST"])
def revise(novel_id: int, number: int):
    novel = _get_novel_or_404(novel_id)

    def action():
        revise_chapter(novel, number)
        return jsonify({"chapter": novel.chapter(number).to_dict(), "current_step": novel.current_step})

    return _run_step(novel, "revise", action)


@bp.route("/<int:novel_id>/manuscript")
def manuscript(novel_id: int):
    novel = _get_novel_or_404(novel_id)
    include_premise = request.args.get("premise", "").lower() in {"1", "true", "yes", "on"}
    text = compile_manuscript(novel, novel.chapters, include_premise=include_premise)
    return jsonify(
        {
            "manuscript": text,
            "chapters": len(novel.chapters),
            "drafted": novel.drafted_count,
        }
    )


@bp.route("/<int:novel_id>/manuscript.txt")
def download_manuscript(novel_id: int):
    novel = _get_novel_or_404(novel_id)
    export_dir = Path(current_app.config["MANUSCRIPT_EXPORT_DIR"])
    filename = manuscript_filename(novel)
    try:
        path = export_manuscript_to_txt(
            novel,
            novel.chapters,
            output_path=export_dir / f"{novel.id}-{filename}",
        )
    except ManuscriptExportError as exc:
        flash(str(exc), "danger")
        return redirect(url_for("novels.detail", novel_id=novel.id))

    return send_file(
        path,
        mimetype="text/plain; charset=utf-8",
        as_attachment=True,
        download_name=filename,
    )
