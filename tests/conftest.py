import pytest
from datetime import date
from fastapi.testclient import TestClient

from student_records.core.config import DatabaseConfig, SchemaMode, Settings
from student_records.core.database import SessionFactory
from student_records.main import create_app
from student_records.models.student import Student, StudentGroup


@pytest.fixture(scope='function')
def db_url(tmp_path):
    """URL of a fresh file-backed SQLite database."""
    return f"sqlite:///{tmp_path / 'students.db'}"


@pytest.fixture(scope='function')
def factory(db_url):
    """Session factory that builds the schema on open and drops it on close."""
    factory = SessionFactory.open(DatabaseConfig(url=db_url, schema_mode=SchemaMode.RECREATE))
    yield factory
    factory.close()


@pytest.fixture(scope='function')
def session(factory):
    session = factory.new_session()
    yield session
    session.close()


@pytest.fixture(scope='function')
def add_students(factory):
    """Insert students in one committed transaction and return them (ids populated)."""
    def _add_students(*specs):
        students = [
            Student(name=name, student_group=group, dob=dob)
            for name, group, dob in (spec + (None,) * (3 - len(spec)) for spec in specs)
        ]
        with factory.new_session() as session:
            with session.begin() as tx:
                for student in students:
                    tx.persist_new(student)
        return students
    return _add_students


@pytest.fixture(scope='function')
def jack_and_leslie(add_students):
    return add_students(
        ("Jack", StudentGroup.LOTUS, date(2001, 4, 12)),
        ("Leslie", StudentGroup.ROSE, date(2002, 9, 30)),
    )


@pytest.fixture(scope='function')
def client(tmp_path):
    """Test client whose app opens its own recreated SQLite database."""
    settings = Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'api.db'}",
        DB_SCHEMA_MODE=SchemaMode.RECREATE,
    )
    with TestClient(create_app(settings)) as client:
        yield client
