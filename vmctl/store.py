"""Instance record store backed by SQLAlchemy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vmctl.database import Instance, utcnow
from vmctl.exceptions import StoreError


class InstanceRepository(ABC):
    """Keyed storage of instances; every ``key`` matches either name or id."""

    @abstractmethod
    def insert(self, instance: Instance) -> Instance:
        """Persist a new instance record."""

    @abstractmethod
    def update(self, key: str, **fields) -> int:
        """Update fields of the matching record and return the row count."""

    @abstractmethod
    def query(self, key: str) -> Optional[Instance]:
        """Return the first record whose name or id equals ``key``."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Hard-delete the matching record."""

    @abstractmethod
    def list(self, statuses: Optional[List[str]] = None) -> List[Instance]:
        """Return all records, optionally filtered by status."""

    @abstractmethod
    def compare_and_set_status(self, key: str, expected: str, new: str, **fields) -> bool:
        """Set ``status`` to ``new`` only if it currently equals ``expected``."""


class SqlalchemyInstanceStore(InstanceRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def _matching(self, key: str):
        return self.db.query(Instance).filter(or_(Instance.name == key, Instance.id == key))

    def _commit(self, message: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"{message}: {exc}") from exc

    @staticmethod
    def _stamp(fields: dict) -> dict:
        if "status" in fields or "pid" in fields:
            fields["updated_at"] = utcnow()
        return fields

    def insert(self, instance: Instance) -> Instance:
        try:
            self.db.add(instance)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to save instance state for VM: {instance.name}: {exc}") from exc
        self._commit(f"Failed to save instance state for VM: {instance.name}")
        return instance

    def update(self, key: str, **fields) -> int:
        fields = self._stamp(fields)
        try:
            count = self._matching(key).update(fields, synchronize_session="evaluate")
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to update instance state for: {key}: {exc}") from exc
        self._commit(f"Failed to update instance state for: {key}")
        return count

    def query(self, key: str) -> Optional[Instance]:
        try:
            return self._matching(key).populate_existing().first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to query instance state for: {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        try:
            count = self._matching(key).delete(synchronize_session="evaluate")
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to remove instance state for: {key}: {exc}") from exc
        self._commit(f"Failed to remove instance state for: {key}")
        return count > 0

    def list(self, statuses: Optional[List[str]] = None) -> List[Instance]:
        try:
            query = self.db.query(Instance).populate_existing()
            if statuses:
                query = query.filter(Instance.status.in_(statuses))
            return query.order_by(Instance.created_at.desc()).all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to query virtual machines: {exc}") from exc

    def compare_and_set_status(self, key: str, expected: str, new: str, **fields) -> bool:
        fields = self._stamp(dict(fields, status=new))
        try:
            count = (
                self._matching(key)
                .filter(Instance.status == expected)
                .update(fields, synchronize_session="evaluate")
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Failed to update instance state for: {key}: {exc}") from exc
        self._commit(f"Failed to update instance state for: {key}")
        return count == 1
