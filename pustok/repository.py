import enum
from collections.abc import Iterable
from typing import Any, Generic, Optional, TypeVar, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

T = TypeVar("T")

Include = Union[str, enum.Enum]


class Repository(Generic[T]):
    """Persistence operations the catalog services rely on, for one mapped model."""

    def __init__(self, session: Session, model: type[T]):
        self.session = session
        self.model = model

    def find_by_id(self, entity_id: int) -> Optional[T]:
        return self.session.get(self.model, entity_id)

    def add(self, entity: T) -> None:
        self.session.add(entity)

    def remove(self, entity: T) -> None:
        self.session.delete(entity)

    def save_changes(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def query(self, predicate: Any = None, includes: Iterable[Include] = ()) -> list[T]:
        stmt = self._select(predicate, includes).order_by(self.model.id)
        return list(self.session.execute(stmt).scalars().all())

    def first(self, predicate: Any = None, includes: Iterable[Include] = ()) -> Optional[T]:
        stmt = self._select(predicate, includes).order_by(self.model.id).limit(1)
        return self.session.execute(stmt).scalars().first()

    def _select(self, predicate: Any, includes: Iterable[Include]):
        stmt = select(self.model)
        for include in includes:
            stmt = stmt.options(selectinload(self._relation(include)))
        # SQL expressions refuse truth testing, hence the explicit None check
        if predicate is not None:
            stmt = stmt.where(predicate)
        return stmt

    def _relation(self, include: Include):
        name = include.value if isinstance(include, enum.Enum) else include
        relationships = sa_inspect(self.model).relationships
        if name not in relationships:
            raise ValueError(f"{self.model.__name__} has no relation named {name!r}")
        return getattr(self.model, name)
