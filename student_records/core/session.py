import enum
import logging
from typing import Any, List, Mapping, Optional, Tuple, Type, TypeVar

from sqlalchemy import and_, delete, inspect, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import PersistenceError, TransactionStateError
from .query import compile_predicate

logger = logging.getLogger(__name__)

EntityType = TypeVar("EntityType")

# (kind, entity type, payload) - payload depends on kind
StagedWrite = Tuple[str, Type[Any], Any]


class TransactionState(str, enum.Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def _instance_state(entity):
    state = inspect(entity, raiseerr=False)
    if state is None or not hasattr(state, "mapper"):
        raise TypeError(f"{type(entity).__name__} is not a mapped entity")
    return state


def _primary_key(mapper, entity) -> Tuple[Any, ...]:
    return tuple(mapper.primary_key_from_instance(entity))


def _identity_clause(mapper, identity: Tuple[Any, ...]):
    return and_(*(column == value for column, value in zip(mapper.primary_key, identity)))


class Transaction:
    """
    Unit of work opened on a RecordSession.

    Writes are only staged until ``commit()``, which applies all of them
    inside one database transaction: either every staged write becomes
    durable or none does.

    State machine: NOT_STARTED -> ACTIVE -> {COMMITTED, ROLLED_BACK}
    """

    def __init__(self, session: "RecordSession"):
        self._session = session
        self._staged: List[StagedWrite] = []
        self.state = TransactionState.NOT_STARTED

    def __repr__(self):
        return f"<Transaction state={self.state.value} staged={len(self._staged)}>"

    def _require_active(self, action: str):
        if self.state is not TransactionState.ACTIVE:
            raise TransactionStateError(
                f"Cannot {action}: transaction is {self.state.value}"
            )

    def begin(self) -> "Transaction":
        if self.state is not TransactionState.NOT_STARTED:
            raise TransactionStateError(
                f"Cannot begin: transaction is {self.state.value}"
            )
        self._session._attach(self)
        self.state = TransactionState.ACTIVE
        return self

    # =========================================================================
    # STAGING
    # =========================================================================

    def persist_new(self, entity):
        """Stage an insert. The entity's id is populated on commit."""
        self._require_active("persist_new")
        state = _instance_state(entity)
        if not state.transient:
            raise PersistenceError(
                f"{entity!r} has already been persisted; use persist_update",
            )
        if any(kind == "insert" and payload[0] is entity for kind, _, payload in self._staged):
            raise PersistenceError(f"{entity!r} is already staged for insert in this transaction")
        # Primary key values the caller supplied; restored if the commit fails
        original = {
            prop.key: getattr(entity, prop.key)
            for prop in (state.mapper.get_property_by_column(c) for c in state.mapper.primary_key)
        }
        self._staged.append(("insert", type(entity), (entity, original)))
        logger.debug(f"Staged insert of {entity!r}")

    def persist_update(self, entity):
        """
        Stage an update of the row matching the entity's id, using the
        entity's column values as they are right now.
        """
        self._require_active("persist_update")
        mapper = _instance_state(entity).mapper
        identity = _primary_key(mapper, entity)
        if any(value is None for value in identity):
            raise PersistenceError(f"Cannot update {entity!r}: it has no id")
        values = {
            prop.key: getattr(entity, prop.key)
            for prop in mapper.column_attrs
            if not any(column in mapper.primary_key for column in prop.columns)
        }
        self._staged.append(("update", type(entity), (identity, values)))
        logger.debug(f"Staged update of {entity!r}")

    def remove(self, entity):
        """Stage deletion of the row matching the entity's id."""
        self._require_active("remove")
        mapper = _instance_state(entity).mapper
        identity = _primary_key(mapper, entity)
        if any(value is None for value in identity):
            raise PersistenceError(f"Cannot remove {entity!r}: it has no id")
        self._staged.append(("delete", type(entity), identity))
        logger.debug(f"Staged delete of {entity!r}")

    # =========================================================================
    # COMPLETION
    # =========================================================================

    def commit(self):
        """
        Apply every staged write atomically.

        Raises PersistenceError (transaction left ROLLED_BACK, storage
        unchanged) if any staged write fails.
        """
        self._require_active("commit")
        staged, self._staged = self._staged, []
        try:
            self._session._apply(staged)
        except Exception:
            self.state = TransactionState.ROLLED_BACK
            logger.warning(f"Transaction rolled back after failed commit ({len(staged)} staged writes)")
            raise
        else:
            self.state = TransactionState.COMMITTED
            logger.info(f"Transaction committed ({len(staged)} writes)")
        finally:
            self._session._detach(self)

    def rollback(self):
        """Discard staged writes. Always succeeds; no-op once finished."""
        if self.state in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK):
            return
        discarded = len(self._staged)
        self._staged = []
        if self.state is TransactionState.ACTIVE:
            self._session._detach(self)
            logger.info(f"Transaction rolled back ({discarded} staged writes discarded)")
        self.state = TransactionState.ROLLED_BACK

    def __enter__(self) -> "Transaction":
        if self.state is TransactionState.NOT_STARTED:
            self.begin()
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.state is not TransactionState.ACTIVE:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()


class RecordSession:
    """
    Handle bound to one database connection for its whole lifetime.

    Entities returned by ``find_by_id`` and ``query`` are detached plain
    values: changing them does nothing until they are re-submitted with
    ``Transaction.persist_update`` and committed.
    """

    def __init__(self, connection: Connection):
        self._connection = connection
        self._orm = Session(
            bind=connection,
            autoflush=False,   # Flushes happen only while applying a commit
            expire_on_commit=False  # Keep attribute values on detached entities
        )
        self._active: Optional[Transaction] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_open(self):
        if self._closed:
            raise TransactionStateError("Session is closed")

    # =========================================================================
    # READS
    # =========================================================================

    def find_by_id(self, entity_type: Type[EntityType], entity_id: Any) -> Optional[EntityType]:
        """Load one entity by primary key; None if no such row exists."""
        self._require_open()
        mapper = inspect(entity_type)
        identity = entity_id if isinstance(entity_id, tuple) else (entity_id,)
        stmt = (
            select(entity_type)
            .where(_identity_clause(mapper, identity))
            .execution_options(populate_existing=True)
        )
        try:
            with self._orm.begin():
                entity = self._orm.scalars(stmt).first()
        finally:
            self._orm.expunge_all()
        return entity

    def query(
        self,
        entity_type: Type[EntityType],
        predicate: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> List[EntityType]:
        """
        Run a textual predicate (see ``core.query``) and return every match.

        Rows come back in database order unless the predicate ends with
        ``ORDER BY``.
        """
        self._require_open()
        stmt = compile_predicate(entity_type, predicate, params)
        return self.execute_select(stmt)

    def execute_select(self, stmt) -> List[Any]:
        """Run a prepared SELECT and return the entities, detached."""
        self._require_open()
        try:
            with self._orm.begin():
                entities = list(self._orm.scalars(stmt).all())
        finally:
            self._orm.expunge_all()
        return entities

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def transaction(self) -> Transaction:
        """A new transaction in the NOT_STARTED state."""
        self._require_open()
        return Transaction(self)

    def begin(self) -> Transaction:
        """A new, already begun transaction."""
        return self.transaction().begin()

    def _attach(self, transaction: Transaction):
        self._require_open()
        if self._active is not None:
            raise TransactionStateError("Session already has an active transaction")
        self._active = transaction

    def _detach(self, transaction: Transaction):
        if self._active is transaction:
            self._active = None

    def _apply(self, staged: List[StagedWrite]):
        self._require_open()
        try:
            with self._orm.begin():
                for kind, entity_type, payload in staged:
                    if kind == "insert":
                        entity, _ = payload
                        self._orm.add(entity)
                        self._orm.flush()
                    elif kind == "update":
                        identity, values = payload
                        self._write_one(
                            update(entity_type)
                            .where(_identity_clause(inspect(entity_type), identity))
                            .values(**values),
                            entity_type, identity, "update",
                        )
                    elif kind == "delete":
                        self._write_one(
                            delete(entity_type)
                            .where(_identity_clause(inspect(entity_type), payload)),
                            entity_type, payload, "delete",
                        )
        except Exception as e:
            self._reset_inserts(staged)
            if isinstance(e, SQLAlchemyError):
                raise PersistenceError(f"Commit failed: {e.__class__.__name__}: {getattr(e, 'orig', None) or e}") from e
            raise
        finally:
            self._orm.expunge_all()

    def _write_one(self, stmt, entity_type, identity, action: str):
        result = self._orm.execute(stmt, execution_options={"synchronize_session": False})
        if result.rowcount != 1:
            raise PersistenceError(
                f"Cannot {action} {entity_type.__name__} {identity}: row no longer exists",
                details={"entity": entity_type.__name__, "id": list(identity)},
            )

    @staticmethod
    def _reset_inserts(staged: List[StagedWrite]):
        for kind, _, payload in staged:
            if kind == "insert":
                entity, original = payload
                for key, value in original.items():
                    setattr(entity, key, value)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self):
        """Roll back any active transaction and release the connection. Idempotent."""
        if self._closed:
            return
        if self._active is not None:
            self._active.rollback()
        self._closed = True
        self._orm.close()
        self._connection.close()

    def __enter__(self) -> "RecordSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
