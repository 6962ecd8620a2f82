from flask import jsonify, redirect, render_template, url_for

from ..extensions import db
from ..novels.forms import NovelForm
from ..repository import NovelRepository
from ..services.completions import get_completion_queue
from . import bp


@bp.route("/", methods=["GET", "POST"])
def dashboard():
    form = NovelForm()
    repository = NovelRepository()
    if form.validate_on_submit():
        novel = repository.create(
            title=form.title.data.strip(),
            brief=(form.brief.data or "").strip() or None,
            setting=(form.setting.data or "").strip() or None,
            chapter_count=form.chapter_count.data or 12,
        )
        db.session.commit()
        return redirect(url_for("novels.detail", novel_id=novel.id))

    return render_template("main/dashboard.html", novels=repository.list_recent(), form=form)


@bp.route("/queue")
def queue_status():
    return jsonify(get_completion_queue().status())
