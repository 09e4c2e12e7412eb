from __future__ import annotations

import datetime
from typing import Annotated, Any, Optional, Type, TypeVar
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from errors import WorkoutValidationError

DEFAULT_NOTES_MAX_LENGTH = 1000

Model = TypeVar("Model", bound=BaseModel)


def _normalise_timestamp(
    value: Optional[datetime.datetime], info: ValidationInfo
) -> Optional[datetime.datetime]:
    """Attach the caller's timezone to naive values and convert to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        tz = (info.context or {}).get("timezone") or "UTC"
        value = value.replace(tzinfo=ZoneInfo(tz))
    try:
        return value.astimezone(datetime.timezone.utc)
    except OverflowError:
        # pydantic only reports ValueError and AssertionError per field
        raise ValueError("out of range")


def _check_notes(value: Optional[str], info: ValidationInfo) -> Optional[str]:
    if value is None:
        return None
    limit = (info.context or {}).get("notes_max_length", DEFAULT_NOTES_MAX_LENGTH)
    if len(value) > limit:
        raise ValueError(f"must be at most {limit} characters")
    return value


class WorkoutCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    started_at: datetime.datetime
    notes: Optional[str] = None

    @field_validator("started_at")
    @classmethod
    def normalise_started_at(cls, value, info: ValidationInfo):
        return _normalise_timestamp(value, info)

    @field_validator("notes")
    @classmethod
    def check_notes(cls, value, info: ValidationInfo):
        return _check_notes(value, info)


class WorkoutUpdate(BaseModel):
    """Partial update; fields left unset or ``None`` keep their stored value."""

    model_config = ConfigDict(extra="forbid")

    started_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    duration: Optional[Annotated[StrictInt, Field(gt=0)]] = None
    notes: Optional[str] = None

    @field_validator("started_at", "completed_at")
    @classmethod
    def normalise_timestamps(cls, value, info: ValidationInfo):
        return _normalise_timestamp(value, info)

    @field_validator("notes")
    @classmethod
    def check_notes(cls, value, info: ValidationInfo):
        return _check_notes(value, info)

    @model_validator(mode="after")
    def check_completed_after_start(self) -> "WorkoutUpdate":
        if (
            self.started_at is not None
            and self.completed_at is not None
            and self.completed_at < self.started_at
        ):
            raise ValueError("completed_at must not be before started_at")
        return self

    def changes(self) -> dict:
        return {k: v for k, v in self.model_dump().items() if v is not None}


def _field_name(error: dict) -> str:
    loc = [str(part) for part in error.get("loc", ())]
    if loc:
        return ".".join(loc)
    # model-level validators report no location
    if "completed_at" in error.get("msg", ""):
        return "completed_at"
    return "input"


def _reason(error: dict) -> str:
    msg = error.get("msg", "invalid")
    for prefix in ("Value error, ", "Assertion failed, "):
        if msg.startswith(prefix):
            return msg[len(prefix):]
    return msg


def parse_input(
    model: Type[Model],
    data: Any,
    *,
    timezone: str = "UTC",
    notes_max_length: int = DEFAULT_NOTES_MAX_LENGTH,
) -> Model:
    """Validate ``data`` against ``model`` or raise ``WorkoutValidationError``."""
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    if not isinstance(data, dict):
        raise WorkoutValidationError("input", "must be an object")
    try:
        return model.model_validate(
            data,
            context={"timezone": timezone, "notes_max_length": notes_max_length},
        )
    except ValidationError as e:
        errors = [(_field_name(err), _reason(err)) for err in e.errors()]
        field, reason = errors[0]
        raise WorkoutValidationError(field, reason, errors) from e
