from __future__ import annotations

from datetime import datetime
from typing import Optional

from .extensions import db


class Novel(db.Model):
    __tablename__ = "novels"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(150), nullable=False)
    brief = db.Column(db.Text, nullable=True)
    setting = db.Column(db.String(255), nullable=True)
    idea = db.Column(db.Text, nullable=True)
    outline = db.Column(db.Text, nullable=True)
    chapter_count = db.Column(db.Integer, nullable=False, default=12)
    current_step = db.Column(db.String(50), nullable=False, default="idea")
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    characters = db.relationship(
        "Character",
        backref="novel",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Character.name",
    )
    chapters = db.relationship(
        "Chapter",
        backref="novel",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Chapter.number",
    )

    def chapter(self, number: int) -> Optional["Chapter"]:
        for chapter in self.chapters:
            if chapter.number == number:
                return chapter
        return None

    @property
    def drafted_count(self) -> int:
        return sum(1 for chapter in self.chapters if chapter.has_draft)

    def __repr__(self) -> str:  # pragma: no cover - repr for debugging
        return f"<Novel {self.title} ({self.current_step})>"


class Character(db.Model):
    __tablename__ = "characters"

    id = db.Column(db.Integer, primary_key=True)
    novel_id = db.Column(db.Integer, db.ForeignKey("novels.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    role = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)
    motive = db.Column(db.Text, nullable=True)
    alibi = db.Column(db.Text, nullable=True)
    secret = db.Column(db.Text, nullable=True)
    is_victim = db.Column(db.Boolean, nullable=False, default=False)
    is_culprit = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def summary_line(self) -> str:
        parts = [self.name]
        if self.role:
            parts.append(f"({self.role})")
        if self.is_victim:
            parts.append("[victim]")
        if self.is_culprit:
            parts.append("[culprit]")
        line = " ".join(parts)
        details = [
            f"{label}: {value.strip()}"
            for label, value in (
                ("description", self.description),
                ("motive", self.motive),
                ("alibi", self.alibi),
                ("secret", self.secret),
            )
            if value and value.strip()
        ]
        if details:
            line = f"{line} - " + "; ".join(details)
        return line

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Character {self.name}>"


class Chapter(db.Model):
    __tablename__ = "chapters"

    id = db.Column(db.Integer, primary_key=True)
    novel_id = db.Column(db.Integer, db.ForeignKey("novels.id"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(200), nullable=False, default="")
    summary = db.Column(db.Text, nullable=True)
    draft = db.Column(db.Text, nullable=True)
    critique = db.Column(db.Text, nullable=True)
    revision_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("novel_id", "number", name="uq_chapter_novel_number"),
    )

    @property
    def has_draft(self) -> bool:
        return bool((self.draft or "").strip())

    @property
    def word_count(self) -> int:
        return len((self.draft or "").split())

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "title": (self.title or "").strip(),
            "summary": (self.summary or "").strip(),
            "draft": (self.draft or "").strip(),
            "critique": (self.critique or "").strip(),
            "word_count": self.word_count,
            "revision_count": self.revision_count,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Chapter {self.number}: {self.title}>"
