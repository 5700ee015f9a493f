from datetime import date

from pydantic import ValidationInfo, field_validator
from sqlmodel import SQLModel, Field

EARLIEST_YEAR = 1888
YEARS_AHEAD = 5


def latest_year() -> int:
    return date.today().year + YEARS_AHEAD


def clean_text(value: str, field_name: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{field_name} must not be empty")
    return value


def check_year(value: int) -> int:
    upper = latest_year()
    if not EARLIEST_YEAR <= value <= upper:
        raise ValueError(f"year must be between {EARLIEST_YEAR} and {upper}")
    return value


class MovieBase(SQLModel):
    title: str = Field(description="Movie title")
    director: str = Field(description="Director's name")
    year: int = Field(description="Release year")


class Movie(MovieBase):
    id: int = Field(description="Server-assigned identifier")


class MovieCreate(MovieBase):
    """Body of a create request. All fields are required."""

    @field_validator("title", "director")
    @classmethod
    def strip_text(cls, value: str, info: ValidationInfo) -> str:
        return clean_text(value, info.field_name)

    @field_validator("year")
    @classmethod
    def year_in_range(cls, value: int) -> int:
        return check_year(value)


class MovieUpdate(SQLModel):
    """Body of an update request.

    Every field is optional; a field left out or sent as null keeps
    its stored value.
    """

    title: str | None = None
    director: str | None = None
    year: int | None = None

    @field_validator("title", "director")
    @classmethod
    def strip_text(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            return None
        return clean_text(value, info.field_name)

    @field_validator("year")
    @classmethod
    def year_in_range(cls, value: int | None) -> int | None:
        if value is None:
            return None
        return check_year(value)
