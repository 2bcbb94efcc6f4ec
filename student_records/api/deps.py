from typing import Generator
from fastapi import Request
from student_records.core.session import RecordSession


def get_db(request: Request) -> Generator[RecordSession, None, None]:
    """
    Dependency to get a database session from the app's session factory.
    The session is closed automatically once the request is done.
    """
    db = request.app.state.session_factory.new_session()
    try:
        yield db
    finally:
        db.close()
