"""
Repositorio base para los colaboradores de persistencia.

Ofrece las operaciones simples que consume el núcleo de facturación
(find, find_all, create, update, soft_delete) sobre cualquier modelo
que use `SoftDeleteMixin`. Los registros inactivos o eliminados no son
visibles para `find`.
"""
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar
import logging

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):

    def __init__(self, db: Session, model: Type[ModelT]):
        self.db = db
        self.model = model

    def _visible(self, query):
        if hasattr(self.model, "is_active"):
            query = query.filter(self.model.is_active.is_(True))
        if hasattr(self.model, "deleted_at"):
            query = query.filter(self.model.deleted_at.is_(None))
        return query

    def find(self, record_id: Any) -> Optional[ModelT]:
        """Buscar un registro visible por id."""
        query = self.db.query(self.model).filter(self.model.id == record_id)
        return self._visible(query).first()

    def find_many(self, record_ids: Iterable[Any]) -> Dict[Any, ModelT]:
        """Buscar varios registros visibles; devuelve un dict id -> registro."""
        ids = list(set(record_ids))
        if not ids:
            return {}
        query = self.db.query(self.model).filter(self.model.id.in_(ids))
        return {row.id: row for row in self._visible(query).all()}

    def find_all(self, limit: Optional[int] = None, offset: int = 0, **filters) -> List[ModelT]:
        query = self._visible(self.db.query(self.model))
        for field, value in filters.items():
            if value is not None:
                query = query.filter(getattr(self.model, field) == value)
        query = query.order_by(self.model.id)
        if limit is not None:
            query = query.offset(offset).limit(limit)
        return query.all()

    def create(self, data: Dict[str, Any]) -> ModelT:
        record = self.model(**data)
        self.db.add(record)
        self.db.flush()
        return record

    def update(self, record_id: Any, data: Dict[str, Any]) -> Optional[ModelT]:
        record = self.find(record_id)
        if record is None:
            return None
        for field, value in data.items():
            setattr(record, field, value)
        self.db.flush()
        return record

    def soft_delete(self, record_id: Any) -> bool:
        record = self.find(record_id)
        if record is None:
            return False
        record.soft_delete()
        self.db.flush()
        logger.info(f"Soft deleted {self.model.__name__} {record_id}")
        return True
