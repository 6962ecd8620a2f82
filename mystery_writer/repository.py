"""Data access helpers for novels and their cast."""
from __future__ import annotations

from typing import Any, Generic, List, Optional, TypeVar

from sqlalchemy.orm import Session

from .extensions import db
from .models import Chapter, Character, Novel

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Common create/read/update/delete operations for one model."""

    def __init__(self, model_class: type[T], session: Optional[Session] = None) -> None:
        self.model_class = model_class
        self.session = session or db.session

    def create(self, **kwargs: Any) -> T:
        entity = self.model_class(**kwargs)
        self.session.add(entity)
        return entity

    def get_by_id(self, entity_id: int) -> Optional[T]:
        return self.session.get(self.model_class, entity_id)

    def get_all(self, limit: Optional[int] = None, offset: int = 0) -> List[T]:
        query = self.session.query(self.model_class)
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    def find_by(self, **kwargs: Any) -> List[T]:
        query = self.session.query(self.model_class)
        for key, value in kwargs.items():
            column = getattr(self.model_class, key, None)
            if column is None:
                raise AttributeError(f"{self.model_class.__name__} has no column '{key}'")
            if value is None:
                query = query.filter(column.is_(None))
            else:
                query = query.filter(column == value)
        return query.all()

    def find_one_by(self, **kwargs: Any) -> Optional[T]:
        results = self.find_by(**kwargs)
        return results[0] if results else None

    def update(self, entity: T, **kwargs: Any) -> T:
        for key, value in kwargs.items():
            if not hasattr(entity, key):
                raise AttributeError(f"{type(entity).__name__} has no attribute '{key}'")
            setattr(entity, key, value)
        return entity

    def delete(self, entity: T) -> None:
        self.session.delete(entity)

    def delete_by_id(self, entity_id: int) -> bool:
        """Delete entity by ID. Returns True if deleted, False if not found."""
        entity = self.get_by_id(entity_id)
        if entity is None:
            return False
        self.delete(entity)
        return True

    def count(self, **kwargs: Any) -> int:
        return len(self.find_by(**kwargs)) if kwargs else self.session.query(self.model_class).count()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class NovelRepository(BaseRepository[Novel]):
    def __init__(self, session: Optional[Session] = None) -> None:
        super().__init__(Novel, session)

    def list_recent(self) -> List[Novel]:
        return self.session.query(Novel).order_by(Novel.updated_at.desc(), Novel.id.desc()).all()


class CharacterRepository(BaseRepository[Character]):
    def __init__(self, session: Optional[Session] = None) -> None:
        super().__init__(Character, session)

    def list_for_novel(self, novel_id: int) -> List[Character]:
        return (
            self.session.query(Character)
            .filter_by(novel_id=novel_id)
            .order_by(Character.name.asc())
            .all()
        )

    def get_for_novel(self, novel_id: int, character_id: int) -> Optional[Character]:
        return self.session.query(Character).filter_by(id=character_id, novel_id=novel_id).first()

    def find_by_name(self, novel_id: int, name: str) -> Optional[Character]:
        cleaned = (name or "").strip()
        if not cleaned:
            return None
        return (
            self.session.query(Character)
            .filter(Character.novel_id == novel_id)
            .filter(db.func.lower(Character.name) == cleaned.lower())
            .first()
        )

    def culprit_for_novel(self, novel_id: int) -> Optional[Character]:
        return self.session.query(Character).filter_by(novel_id=novel_id, is_culprit=True).first()


class ChapterRepository(BaseRepository[Chapter]):
    def __init__(self, session: Optional[Session] = None) -> None:
        super().__init__(Chapter, session)

    def list_for_novel(self, novel_id: int) -> List[Chapter]:
        return (
            self.session.query(Chapter)
            .filter_by(novel_id=novel_id)
            .order_by(Chapter.number.asc())
            .all()
        )

    def get_for_novel(self, novel_id: int, number: int) -> Optional[Chapter]:
        return self.session.query(Chapter).filter_by(novel_id=novel_id, number=number).first()


__all__ = [
    "BaseRepository",
    "ChapterRepository",
    "CharacterRepository",
    "NovelRepository",
]
