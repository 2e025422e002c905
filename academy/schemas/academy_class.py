"""
Academy API — Class Pydantic schemas
"""
from pydantic import BaseModel, ConfigDict, Field


class ScheduleSlot(BaseModel):
    day: str
    startTime: str = Field(..., examples=["18:30"])
    endTime: str = Field(..., examples=["20:00"])


class ClassSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(None, alias="_id")
    level: int | str | None = None
    ageGroup: str | None = None
    instructor: str | None = None
    schedule: list[ScheduleSlot] = []
    isEnrollmentOpen: bool = False
    image: str | None = None


class ClassResponse(ClassSummary):
    """A class as seen by an enrolled student or in the catalog; never the roster."""
    link: str | None = None


class EnrollRequest(BaseModel):
    classId: str = Field(..., min_length=1)


class ExportRow(BaseModel):
    firstName: str
    lastName: str
    email: str
    creationDate: str
    level: int | str = ""
    ageGroup: str = ""
    instructor: str = ""
    link: str = ""
    scheduleReference: str = ""
    scheduleExport: str = ""


class StudentsExport(BaseModel):
    student_data: list[ExportRow]
