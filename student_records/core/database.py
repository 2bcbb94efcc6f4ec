import logging
import weakref
from typing import Any, List, Mapping, Optional, Union

from alembic.autogenerate import compare_metadata
from alembic.migration import MigrationContext
from alembic.operations import Operations
from pydantic import ValidationError
from sqlalchemy import Column, MetaData, create_engine, event, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import declarative_base

from .config import DatabaseConfig, SchemaMode, Settings
from .exceptions import ConfigurationError
from .session import RecordSession

logger = logging.getLogger(__name__)

# Create Base class for models
Base = declarative_base()


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

def _connect_args(backend: str, timeout: int) -> dict:
    """Driver-specific connection arguments carrying the connect timeout."""
    if backend == "sqlite":
        # Sessions may be opened and used on different worker threads
        return {"timeout": timeout, "check_same_thread": False}
    if backend in ("postgresql", "mysql", "mariadb"):
        return {"connect_timeout": timeout}
    return {}


def build_engine(config: DatabaseConfig) -> Engine:
    """
    Create the SQLAlchemy engine described by ``config``.

    Raises ConfigurationError if the URL is malformed or the driver
    cannot be loaded. No connection is attempted here.
    """
    try:
        url = make_url(config.url)
        if config.username is not None:
            url = url.set(username=config.username)
        if config.password is not None:
            url = url.set(password=config.password.get_secret_value())
        engine = create_engine(
            url,
            echo=config.echo,  # Print all SQL queries to console
            pool_pre_ping=True,  # Test connection before using (detect disconnects)
            connect_args=_connect_args(url.get_backend_name(), config.connect_timeout),
        )
    except (ArgumentError, ImportError) as e:
        raise ConfigurationError(f"Invalid database URL or driver: {e}") from e

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_conn, connection_record):
        logger.debug("New database connection established")

    return engine


# =============================================================================
# SCHEMA MANAGEMENT
# =============================================================================

def _schema_diffs(connection: Connection, metadata: MetaData) -> List[Any]:
    """Differences between ``metadata`` and the stored schema, as reported by alembic."""
    context = MigrationContext.configure(connection, opts={"compare_type": False})
    return compare_metadata(context, metadata)


def _missing_objects(diffs: List[Any]) -> List[str]:
    missing = []
    for diff in diffs:
        # modify_* diffs come grouped in lists; type drift is not checked
        if isinstance(diff, list):
            continue
        if diff[0] == "add_table":
            missing.append(f"table {diff[1].name}")
        elif diff[0] == "add_column":
            missing.append(f"column {diff[2]}.{diff[3].name}")
    return missing


def create_database_tables(connection: Connection, metadata: MetaData):
    """Create all tables defined in ``metadata``."""
    logger.info("Creating database tables...")
    metadata.create_all(bind=connection)
    logger.info("✅ Database tables created successfully!")


def drop_database_tables(connection: Connection, metadata: MetaData):
    """
    Drop all tables defined in ``metadata``.

    ⚠️ DANGER: This will delete all data!
    """
    logger.warning("⚠️ Dropping all database tables...")
    metadata.drop_all(bind=connection)
    logger.info("✅ Database tables dropped!")


def validate_database_tables(connection: Connection, metadata: MetaData):
    """Raise ConfigurationError if a mapped table or column is missing from storage."""
    missing = _missing_objects(_schema_diffs(connection, metadata))
    if missing:
        raise ConfigurationError(
            "Stored schema does not match entity definitions",
            details={"missing": missing},
        )
    logger.info("✅ Database schema validated")


def migrate_database_tables(connection: Connection, metadata: MetaData):
    """
    Apply additive schema changes: create missing tables and add missing
    columns (always as nullable). Existing objects are never dropped or altered.
    """
    operations = Operations(MigrationContext.configure(connection))
    for diff in _schema_diffs(connection, metadata):
        if isinstance(diff, list):
            continue
        kind = diff[0]
        if kind == "add_table":
            logger.info(f"Migrate: creating table {diff[1].name}")
            diff[1].create(bind=connection)
        elif kind == "add_column":
            _, schema, table_name, column = diff
            logger.info(f"Migrate: adding column {table_name}.{column.name}")
            operations.add_column(
                table_name,
                Column(column.name, column.type, nullable=True),
                schema=schema,
            )
        else:
            logger.debug(f"Migrate: skipping non-additive change {kind}")


def apply_schema_mode(engine: Engine, metadata: MetaData, mode: SchemaMode):
    """Run the open-time action of ``mode`` inside a single transaction."""
    if mode is SchemaMode.NONE:
        return
    with engine.begin() as connection:
        if mode in (SchemaMode.RECREATE, SchemaMode.RECREATE_PERSISTENT):
            drop_database_tables(connection, metadata)
            create_database_tables(connection, metadata)
        elif mode is SchemaMode.VALIDATE_ONLY:
            validate_database_tables(connection, metadata)
        elif mode is SchemaMode.MIGRATE:
            migrate_database_tables(connection, metadata)


def check_database_connection(engine: Engine):
    """
    Check that the database is reachable.

    Raises ConfigurationError if the connection cannot be established.
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"❌ Database connection failed: {e}")
        raise ConfigurationError(f"Cannot connect to database: {e}") from e
    logger.info("✅ Database connection successful!")


# =============================================================================
# SESSION FACTORY
# =============================================================================

class SessionFactory:
    """
    Process-wide owner of the engine. Opened once at startup, closed once
    at shutdown; hands out independent sessions in between.

    Usage:
        with SessionFactory.open(config) as factory:
            with factory.new_session() as session:
                student = session.find_by_id(Student, 1)
    """

    def __init__(self, engine: Engine, config: DatabaseConfig, metadata: MetaData):
        self.engine = engine
        self.config = config
        self.metadata = metadata
        self._sessions = weakref.WeakSet()
        self._closed = False

    @classmethod
    def open(
        cls,
        config: Union[DatabaseConfig, Mapping[str, Any]],
        metadata: Optional[MetaData] = None,
    ) -> "SessionFactory":
        """
        Validate ``config``, connect, and apply the configured schema mode.

        Raises ConfigurationError on invalid configuration, unreachable
        database, or a failed schema validation.
        """
        if not isinstance(config, DatabaseConfig):
            try:
                config = DatabaseConfig.model_validate(config)
            except ValidationError as e:
                raise ConfigurationError(
                    "Invalid database configuration",
                    details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
                ) from e

        if metadata is None:
            # Import models so Base.metadata knows every mapped table
            from student_records.models import student  # noqa: F401
            metadata = Base.metadata

        logger.info(f"Opening session factory: {config.safe_dict()}")
        engine = build_engine(config)
        try:
            check_database_connection(engine)
            apply_schema_mode(engine, metadata, config.schema_mode)
        except ConfigurationError:
            engine.dispose()
            raise
        except SQLAlchemyError as e:
            engine.dispose()
            raise ConfigurationError(
                f"Schema mode {config.schema_mode.value!r} failed: {e}"
            ) from e
        return cls(engine, config, metadata)

    @classmethod
    def from_settings(cls, settings: Settings, metadata: Optional[MetaData] = None) -> "SessionFactory":
        return cls.open(DatabaseConfig.from_settings(settings), metadata=metadata)

    @property
    def closed(self) -> bool:
        return self._closed

    def new_session(self) -> RecordSession:
        """Return a new session bound to its own connection."""
        if self._closed:
            raise ConfigurationError("Session factory is closed")
        try:
            connection = self.engine.connect()
        except SQLAlchemyError as e:
            raise ConfigurationError(f"Cannot connect to database: {e}") from e
        session = RecordSession(connection)
        self._sessions.add(session)
        return session

    def close(self):
        """
        Close outstanding sessions, drop the schema when the mode is
        ``recreate``, and dispose of the engine. Calling twice is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        for session in list(self._sessions):
            session.close()
        try:
            if self.config.schema_mode is SchemaMode.RECREATE:
                with self.engine.begin() as connection:
                    drop_database_tables(connection, self.metadata)
        finally:
            self.engine.dispose()
            logger.info("Session factory closed")

    def __enter__(self) -> "SessionFactory":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


# =============================================================================
# TEST DATABASE CONNECTION
# =============================================================================

if __name__ == "__main__":
    """Test database connection when running this file directly."""
    logging.basicConfig(level=logging.INFO)

    from .config import print_config, settings

    print_config()
    try:
        factory = SessionFactory.from_settings(settings)
    except ConfigurationError as e:
        print(f"❌ Connection failed: {e.message}")
    else:
        with factory, factory.new_session():
            print("✅ Session created successfully!")
