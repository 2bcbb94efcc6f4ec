"""
End-to-end CRUD walkthrough against the configured database:

    create Jack/LOTUS and Leslie/ROSE -> read Jack -> move Jack to DAISY
    -> delete Jack -> Leslie is untouched

Run with ``student-records-walkthrough`` (uses the DATABASE_URL /
DB_SCHEMA_MODE settings; ``recreate`` gives a clean run every time).
"""
import logging
from typing import Dict, Optional

from student_records.core.config import settings
from student_records.core.database import SessionFactory
from student_records.core.logging import setup_logging
from student_records.models.student import StudentGroup
from student_records.schemas.student import StudentCreate, StudentUpdate
from student_records.services.student import student as crud_student

logger = logging.getLogger(__name__)


def run_walkthrough(factory: SessionFactory) -> Dict[str, Optional[str]]:
    """
    Run the scenario and return what was read back after each step,
    keyed by step name (``None`` when the student was not found).
    """
    observed: Dict[str, Optional[str]] = {}

    def describe(student) -> Optional[str]:
        if student is None:
            return None
        return f"{student.name}/{student.student_group.name}"

    # Create
    with factory.new_session() as db:
        jack, leslie = crud_student.create_students(db, [
            StudentCreate(name="Jack", student_group=StudentGroup.LOTUS),
            StudentCreate(name="Leslie", student_group=StudentGroup.ROSE),
        ])
        logger.info(f"Created {jack!r} and {leslie!r}")

    # Read
    with factory.new_session() as db:
        observed["read"] = describe(crud_student.get_student(db, jack.id))
        logger.info(f"Read student {jack.id}: {observed['read']}")

    # Update
    with factory.new_session() as db:
        crud_student.update_student(db, jack.id, StudentUpdate(student_group=StudentGroup.DAISY))
        observed["updated"] = describe(crud_student.get_student(db, jack.id))
        logger.info(f"After update: {observed['updated']}")

    # Delete
    with factory.new_session() as db:
        crud_student.delete_student(db, jack.id)
        observed["deleted"] = describe(crud_student.get_student(db, jack.id))
        observed["other"] = describe(crud_student.get_student(db, leslie.id))
        logger.info(f"After delete: {jack.id} -> {observed['deleted']}, {leslie.id} -> {observed['other']}")

    return observed


def main():
    setup_logging(settings.LOG_LEVEL)
    with SessionFactory.from_settings(settings) as factory:
        run_walkthrough(factory)


if __name__ == "__main__":
    main()
