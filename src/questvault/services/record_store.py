"""Generic persistence collaborator over a SQLAlchemy session."""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from questvault import monitoring
from questvault.errors import (
    ConcurrentUpdate,
    DuplicateRecord,
    NotFound,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordStore:
    """get / query / insert / update / delete on mapped models.

    Every write commits unless it runs inside ``transaction()``, in which case
    the outermost block commits once. Database failures roll the session back
    and surface as ``StorageError``.
    """

    def __init__(self, db: Session):
        """Initialize the store with a database session."""
        self.db = db
        self._depth = 0
        self._rolled_back = False

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        """Group several writes into one commit.

        A write that fails inside the block rolls the whole session back, so
        the outermost block refuses to commit even if the error was caught.
        """
        self._depth += 1
        try:
            yield self
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self._rolled_back = False
                self.db.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            if self._rolled_back:
                self._rolled_back = False
                raise StorageError("Transaction was rolled back by an earlier failure")
            self._commit()

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def get(self, model: Type[T], record_id: Any) -> T:
        """Get a record by primary key or raise NotFound."""
        try:
            record = self.db.get(model, record_id)
        except SQLAlchemyError as e:
            self._fail("get", e)
        if record is None:
            raise NotFound(model.__name__, record_id)
        return record

    def reload(self, model: Type[T], record_id: Any) -> T:
        """Get a record by primary key, refreshing any copy the session holds."""
        try:
            record = self.db.get(model, record_id, populate_existing=True)
        except SQLAlchemyError as e:
            self._fail("get", e)
        if record is None:
            raise NotFound(model.__name__, record_id)
        return record

    def find(self, model: Type[T], *criteria) -> Optional[T]:
        """Get the first record matching the criteria, if any."""
        try:
            return self.db.query(model).filter(*criteria).first()
        except SQLAlchemyError as e:
            self._fail("query", e)

    def query(
        self,
        model: Type[T],
        *criteria,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
    ) -> List[T]:
        """Get all records matching the criteria in the given order."""
        try:
            query = self.db.query(model).filter(*criteria)
            if order_by:
                query = query.order_by(*order_by)
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            self._fail("query", e)

    def count(self, model: Type[T], *criteria) -> int:
        try:
            return self.db.query(model).filter(*criteria).count()
        except SQLAlchemyError as e:
            self._fail("query", e)

    def insert(self, record: T) -> T:
        """Insert a record and return it with its generated id."""
        self.db.add(record)
        self._flush_or_commit()
        return record

    def insert_all(self, records: Iterable[T]) -> List[T]:
        records = list(records)
        self.db.add_all(records)
        self._flush_or_commit()
        return records

    def update(
        self,
        model: Type[T],
        record_id: Any,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> T:
        """Apply a patch to a record.

        With ``expected_version`` the write only succeeds if the record still
        carries that version; otherwise ``ConcurrentUpdate`` is raised. The
        flush itself is also guarded by the mapper's version column.
        """
        record = self.get(model, record_id)
        current = getattr(record, "version", None)
        if expected_version is not None and current != expected_version:
            monitoring.storage_errors.labels(error_type="conflict").inc()
            raise ConcurrentUpdate(
                f"{model.__name__} {record_id} is at version {current}, expected {expected_version}"
            )
        try:
            for key, value in patch.items():
                setattr(record, key, value)
        except ValidationError:
            self._rollback()
            raise
        self._flush_or_commit()
        return record

    def delete(self, model: Type[T], record_id: Any) -> None:
        """Delete a record or raise NotFound."""
        record = self.get(model, record_id)
        self.db.delete(record)
        self._flush_or_commit()

    def _flush_or_commit(self) -> None:
        if self._depth:
            if self._rolled_back:
                raise StorageError("Transaction was rolled back by an earlier failure")
            try:
                self.db.flush()
            except StaleDataError as e:
                self._conflict(e)
            except IntegrityError as e:
                self._duplicate(e)
            except SQLAlchemyError as e:
                self._fail("flush", e)
        else:
            self._commit()

    def _commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self._conflict(e)
        except IntegrityError as e:
            self._duplicate(e)
        except SQLAlchemyError as e:
            self._fail("commit", e)

    def _rollback(self) -> None:
        self.db.rollback()
        if self._depth:
            self._rolled_back = True

    def _conflict(self, error: Exception) -> None:
        self._rollback()
        monitoring.storage_errors.labels(error_type="conflict").inc()
        logger.warning("Concurrent update detected: %s", error)
        raise ConcurrentUpdate(str(error)) from error

    def _duplicate(self, error: Exception) -> None:
        self._rollback()
        monitoring.storage_errors.labels(error_type="duplicate").inc()
        logger.warning("Duplicate record rejected: %s", error.__class__.__name__)
        raise DuplicateRecord(str(error)) from error

    def _fail(self, operation: str, error: Exception) -> None:
        self._rollback()
        monitoring.storage_errors.labels(error_type=operation).inc()
        logger.error("Storage %s failed: %s", operation, error)
        raise StorageError(f"{operation} failed: {error}") from error
