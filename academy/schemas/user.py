"""
Academy API — User Pydantic schemas
"""
from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from academy.schemas.academy_class import ClassSummary

Privilege = Literal["student", "instructor", "admin"]


class SignUpRequest(BaseModel):
    # Sign-up forms post everything they collected (password included); only
    # the fields below are read.
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    firstName: str = Field(..., min_length=1, max_length=100)
    lastName: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=320)
    idpId: str = Field(
        ..., min_length=1, max_length=128, validation_alias=AliasChoices("idpId", "clerkId")
    )
    whatsapp: str | None = Field(None, max_length=40)
    gender: str | None = Field(None, max_length=40)


class UserUpdateRequest(BaseModel):
    """
    Mutable user fields. Immutable ones (_id, idpId, creationDate) and the
    enrollment set are not accepted here and are dropped if sent.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    firstName: str = Field(None, min_length=1, max_length=100)
    lastName: str = Field(None, min_length=1, max_length=100)
    email: str = Field(None, min_length=3, max_length=320)
    whatsapp: str | None = Field(None, max_length=40)
    gender: str | None = Field(None, max_length=40)
    privilege: Privilege = None


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    idpId: str
    firstName: str
    lastName: str
    email: str
    whatsapp: str | None = None
    gender: str | None = None
    privilege: Privilege
    enrolledClasses: list[str] = []
    creationDate: datetime | None = None


class UsersPage(BaseModel):
    items: list[UserResponse]
    total: int
    page: int
    limit: int


class StudentWithClasses(BaseModel):
    """Admin listing row: no phone number, classes without roster or join link."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    firstName: str
    lastName: str
    email: str
    privilege: Privilege
    creationDate: datetime | None = None
    enrolledClasses: list[ClassSummary] = []


class StudentsPage(BaseModel):
    items: list[StudentWithClasses]
    total: int
    page: int
    limit: int
