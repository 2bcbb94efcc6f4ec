import logging
from datetime import date
from typing import List

from student_records.core.config import settings
from student_records.core.database import SessionFactory
from student_records.core.logging import setup_logging
from student_records.core.session import RecordSession
from student_records.models.student import StudentGroup
from student_records.schemas.student import StudentCreate
from student_records.services.student import student as crud_student

logger = logging.getLogger(__name__)

DEMO_STUDENTS = [
    StudentCreate(name="Jack", dob=date(2001, 4, 12), student_group=StudentGroup.LOTUS),
    StudentCreate(name="Leslie", dob=date(2002, 9, 30), student_group=StudentGroup.ROSE),
]


def seed_data(db: RecordSession) -> List[int]:
    """
    Seed the demo students. Returns the new ids, or an empty list when the
    table already has rows.
    """
    # 1. Check if data already exists to avoid duplication
    if crud_student.get_students(db, limit=1):
        logger.info("Database already contains data. Skipping seed.")
        return []

    logger.info("Seeding data...")

    # 2. Insert every demo student in one transaction
    students = crud_student.create_students(db, DEMO_STUDENTS)

    logger.info("✅ Data seeded successfully!")
    return [student.id for student in students]


def main():
    setup_logging(settings.LOG_LEVEL)
    with SessionFactory.from_settings(settings) as factory:
        with factory.new_session() as db:
            seed_data(db)


if __name__ == "__main__":
    main()
