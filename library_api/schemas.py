from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    # read from ORM objects, serialize in camelCase
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


def _names(items):
    return [getattr(item, "name", item) for item in items or []]


class Message(BaseModel):
    message: str


class Token(BaseModel):
    token: str


class Principal(ApiModel):  # identity carried by a verified token
    id: int
    email: str
    firstname: str
    lastname: str
    roles: List[int] = []


class AuthorRead(ApiModel):
    firstname: str
    lastname: str
    email: str


class UserRead(ApiModel):
    id: int
    firstname: str
    lastname: str
    email: str
    roles: List[str] = []

    @field_validator("roles", mode="before")
    @classmethod
    def role_names(cls, value):
        return _names(value)


class PermissionRead(ApiModel):
    id: int
    name: str
    method: str
    url: str


class RoleRead(ApiModel):
    id: int
    name: str
    permissions: List[str] = []

    @field_validator("permissions", mode="before")
    @classmethod
    def permission_names(cls, value):
        return _names(value)


class BookRead(ApiModel):
    id: int
    title: str
    isbn: str
    quantity: int
    resume: str
    is_valid: bool
    published_at: Optional[datetime] = None
    author: Optional[AuthorRead] = None


class LoanRead(ApiModel):
    id: int
    book_id: int
    loan_at: datetime
    supposed_return_at: datetime
    return_at: Optional[datetime] = None


class LoanRecorded(ApiModel):
    message: str
    loans: List[LoanRead]


class BooksReturned(ApiModel):
    message: str
    returned: int
