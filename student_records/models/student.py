import enum
from sqlalchemy import Column, Date, Enum, Integer, String
from sqlalchemy.orm import validates
from student_records.core.database import Base


class StudentGroup(str, enum.Enum):
    LOTUS = "LOTUS"
    ROSE = "ROSE"
    DAISY = "DAISY"
    TULIP = "TULIP"
    LILY = "LILY"
    ORCHID = "ORCHID"


class Student(Base):
    __tablename__ = "students"
    # Ids of deleted rows must never be handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    # Field names accepted by the predicate language, mapped to attributes
    __query_fields__ = {
        "id": "id",
        "name": "name",
        "dob": "dob",
        "group": "student_group",
        "student_group": "student_group",
    }

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    dob = Column(Date, nullable=True)
    # Stored as the member name (VARCHAR), never as an ordinal or native enum
    student_group = Column(
        Enum(StudentGroup, native_enum=False, length=32, validate_strings=True),
        nullable=True,
    )

    @validates("student_group")
    def _coerce_group(self, key, value):
        if value is None or isinstance(value, StudentGroup):
            return value
        try:
            return StudentGroup[value]
        except KeyError:
            raise ValueError(f"Unknown student group: {value!r}") from None

    def __repr__(self):
        group = self.student_group.name if self.student_group else None
        return f"<Student id={self.id} name={self.name!r} dob={self.dob} group={group}>"
