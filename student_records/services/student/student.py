import logging
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import select

from student_records.core.exceptions import MultipleResultsError, NotFoundException, PersistenceError
from student_records.core.session import RecordSession
from student_records.models.student import Student
from student_records.schemas.student import StudentCreate, StudentUpdate

logger = logging.getLogger(__name__)


def get_student(db: RecordSession, student_id: int) -> Optional[Student]:
    """Lấy thông tin 1 học sinh theo ID"""
    return db.find_by_id(Student, student_id)


def get_students(db: RecordSession, skip: int = 0, limit: int = 100) -> List[Student]:
    """Lấy danh sách học sinh với phân trang (sắp xếp theo ID)"""
    stmt = select(Student).order_by(Student.id).offset(skip).limit(limit)
    return db.execute_select(stmt)


def query_students(
    db: RecordSession,
    predicate: Optional[str] = None,
    params: Optional[Mapping[str, Any]] = None,
) -> List[Student]:
    """
    Tìm học sinh theo điều kiện, ví dụ: "group IN (ROSE, DAISY)".
    Có thể trả về 0, 1 hoặc nhiều kết quả.
    """
    return db.query(Student, predicate, params)


def get_single_student(
    db: RecordSession,
    predicate: str,
    params: Optional[Mapping[str, Any]] = None,
) -> Student:
    """Lấy đúng 1 học sinh khớp điều kiện; báo lỗi nếu không có hoặc có nhiều hơn 1"""
    students = query_students(db, predicate, params)
    if not students:
        raise NotFoundException(f"No student matches {predicate!r}")
    if len(students) > 1:
        raise MultipleResultsError(
            f"{len(students)} students match {predicate!r}, expected exactly one",
            count=len(students),
        )
    return students[0]


def create_students(db: RecordSession, students: Iterable[StudentCreate]) -> List[Student]:
    """Tạo nhiều học sinh trong cùng một transaction"""
    db_students = [Student(**student.model_dump()) for student in students]
    with db.begin() as tx:
        for db_student in db_students:
            tx.persist_new(db_student)
    logger.info(f"Created students {[s.id for s in db_students]}")
    return db_students


def create_student(db: RecordSession, student: StudentCreate) -> Student:
    """Tạo học sinh mới"""
    return create_students(db, [student])[0]


def update_student(db: RecordSession, student_id: int, student: StudentUpdate) -> Optional[Student]:
    """
    Cập nhật thông tin học sinh.
    Chỉ các trường được gửi lên mới được thay đổi; trả về None nếu không tìm thấy.
    """
    db_student = get_student(db, student_id)
    if db_student is None:
        return None
    for field, value in student.model_dump(exclude_unset=True).items():
        setattr(db_student, field, value)
    with db.begin() as tx:
        tx.persist_update(db_student)
    logger.info(f"Updated student {student_id}")
    return db_student


def delete_student(db: RecordSession, student_id: int) -> Student:
    """
    Xóa học sinh.
    Báo PersistenceError nếu học sinh không còn tồn tại (đã bị xóa trước đó).
    """
    db_student = get_student(db, student_id)
    if db_student is None:
        raise PersistenceError(
            f"Cannot delete Student {student_id}: row no longer exists",
            details={"entity": "Student", "id": [student_id]},
        )
    with db.begin() as tx:
        tx.remove(db_student)
    logger.info(f"Deleted student {student_id}")
    return db_student
