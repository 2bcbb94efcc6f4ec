from datetime import date
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from student_records.models.student import StudentGroup


class StudentBase(BaseModel):
    name: str = Field(min_length=1)
    dob: Optional[date] = None
    student_group: Optional[StudentGroup] = None


class StudentCreate(StudentBase):
    pass


class StudentUpdate(BaseModel):
    """Partial update: only the fields that are explicitly set get applied."""
    name: Optional[str] = Field(default=None, min_length=1)
    dob: Optional[date] = None
    student_group: Optional[StudentGroup] = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v: Optional[str]) -> str:
        """Name may be omitted, but never cleared (the column is NOT NULL)."""
        if v is None:
            raise ValueError("name cannot be null")
        return v


class StudentInDB(StudentBase):
    id: int

    model_config = ConfigDict(from_attributes=True)


class Student(StudentInDB):
    pass
