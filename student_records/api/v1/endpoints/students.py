from fastapi import APIRouter, Depends, Query, Response, status
from typing import List, Optional
from student_records.api.deps import get_db
from student_records.core.exceptions import NotFoundException
from student_records.core.session import RecordSession
from student_records.services.student import student as crud_student
from student_records.schemas.student import Student, StudentCreate, StudentUpdate

router = APIRouter()


@router.get("/", response_model=List[Student])
def get_students(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    where: Optional[str] = None,
    db: RecordSession = Depends(get_db)
):
    """
    Lấy danh sách học sinh

    - **skip**: Bỏ qua n bản ghi đầu tiên (mặc định: 0)
    - **limit**: Số lượng bản ghi tối đa (mặc định: 100)
    - **where**: Điều kiện lọc, ví dụ `group IN (ROSE, DAISY)` (khi có thì bỏ qua phân trang)
    """
    if where:
        return crud_student.query_students(db, where)
    return crud_student.get_students(db, skip=skip, limit=limit)


@router.get("/{student_id}", response_model=Student)
def get_student(
    student_id: int,
    db: RecordSession = Depends(get_db)
):
    """
    Lấy thông tin chi tiết của 1 học sinh theo ID
    """
    student = crud_student.get_student(db, student_id=student_id)
    if not student:
        raise NotFoundException("Không tìm thấy học sinh")
    return student


@router.post("/", response_model=Student, status_code=status.HTTP_201_CREATED)
def create_student(
    student: StudentCreate,
    db: RecordSession = Depends(get_db)
):
    """
    Tạo học sinh mới

    Yêu cầu:
    - **name**: Tên học sinh (bắt buộc)
    - **dob**: Ngày sinh (YYYY-MM-DD)
    - **student_group**: Nhóm (LOTUS, ROSE, DAISY, ...)
    """
    return crud_student.create_student(db=db, student=student)


@router.post("/batch", response_model=List[Student], status_code=status.HTTP_201_CREATED)
def create_students(
    students: List[StudentCreate],
    db: RecordSession = Depends(get_db)
):
    """
    Tạo nhiều học sinh cùng lúc (tất cả hoặc không gì cả)
    """
    return crud_student.create_students(db=db, students=students)


@router.put("/{student_id}", response_model=Student)
def update_student(
    student_id: int,
    student: StudentUpdate,
    db: RecordSession = Depends(get_db)
):
    """
    Cập nhật thông tin học sinh
    """
    updated_student = crud_student.update_student(db=db, student_id=student_id, student=student)
    if updated_student is None:
        raise NotFoundException("Không tìm thấy học sinh")
    return updated_student


@router.delete("/{student_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_student(
    student_id: int,
    db: RecordSession = Depends(get_db)
):
    """
    Xóa học sinh
    """
    student = crud_student.get_student(db, student_id=student_id)
    if not student:
        raise NotFoundException("Không tìm thấy học sinh")

    crud_student.delete_student(db=db, student_id=student_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
