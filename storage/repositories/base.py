"""
Base Repository.

Responsibilities:
- Generic CRUD operations for one mapped table.
- Stage writes in the caller's transaction (flush, never commit).

Non-Responsibilities:
- No business logic.
- No metrics.
- No event publishing.
- No transaction boundaries (the caller commits or rolls back).

Invariant:
Repositories must not encode domain decisions.
"""
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

T = TypeVar("T")


class Repository(Generic[T]):
    model: Type[T]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> T:
        record = self.model(**fields)
        self.db.add(record)
        self.db.flush()
        return record

    def get(self, record_id: Any) -> Optional[T]:
        return self.db.get(self.model, record_id)

    def update(self, record_id: Any, changes: Dict[str, Any]) -> Optional[T]:
        record = self.get(record_id)
        if record is None:
            return None
        for key, value in changes.items():
            if not hasattr(self.model, key) or key == "id":
                raise AttributeError(f"{self.model.__name__} has no writable field '{key}'")
            setattr(record, key, value)
        self.db.flush()
        return record

    def delete(self, record_id: Any) -> bool:
        record = self.get(record_id)
        if record is None:
            return False
        self.db.delete(record)
        self.db.flush()
        return True
