"""Request payload schemas.

Field rules follow the club's registration form: names 3-20 characters,
display name 2-20, password 8-30.
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from .errors import BadRequest
from .models import Status

M = TypeVar("M", bound=BaseModel)


class Registration(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    firstname: str = Field(..., min_length=3, max_length=20)
    lastname: str = Field(..., min_length=3, max_length=20)
    knownas: str = Field(..., min_length=2, max_length=20)
    email: EmailStr
    phone: str = Field("", max_length=20)
    password: str = Field(..., min_length=8, max_length=30)


class PersonUpdate(BaseModel):
    """Partial profile update; only the fields present are changed."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    firstname: Optional[str] = Field(None, min_length=3, max_length=20)
    lastname: Optional[str] = Field(None, min_length=3, max_length=20)
    knownas: Optional[str] = Field(None, min_length=2, max_length=20)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    password: Optional[str] = Field(None, min_length=8, max_length=30)
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in {s.value for s in Status}:
            raise ValueError(f"unknown status: {v}")
        return v


class CourtFields(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(..., min_length=1, max_length=20)


def parse(model: type[M], data: Any) -> M:
    """Validate `data` into `model`, reporting the first problem as BadRequest."""
    if not isinstance(data, dict):
        raise BadRequest(f"expected an object, got: {data!r}")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or "data"
        raise BadRequest(f"validation failed for [{where}]: {first.get('msg')}") from e
