from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from src.common.constants import QueryMode


class LiveUserDTO(BaseModel):
    id: str
    name: str
    handle: Optional[str] = None
    photo_url: Optional[str] = None
    what_working_on: Optional[str] = None
    lat: float
    lon: float
    is_venue: bool = False
    venue_name: Optional[str] = None
    updated_at: datetime
    is_active: bool = True

    class Config:
        from_attributes = True


class LiveUserWithDistanceDTO(LiveUserDTO):
    """Запись с расстоянием до точки запроса (метры)."""
    distance: float


def _blank_to_none(value: Any) -> Any:
    """Пустая строка считается отсутствующим значением."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _id_to_str(value: Any) -> Any:
    """Числовой id приводится к строке (bool не считается числом)."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return _blank_to_none(value)


class LockInRequest(BaseModel):
    """
    Входные данные lock-in.

    lat/lon принимаются только числами: строки и bool отклоняются.
    handle принимается также под старым ключом x_handle.
    """
    id: Optional[str] = None
    name: str = Field(min_length=1)
    handle: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("handle", "x_handle"),
    )
    photo_url: Optional[str] = None
    what_working_on: Optional[str] = None
    lat: float = Field(strict=True, ge=-90, le=90, allow_inf_nan=False)
    lon: float = Field(strict=True, ge=-180, le=180, allow_inf_nan=False)
    is_venue: bool = False
    venue_name: Optional[str] = None

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("handle", "photo_url", "what_working_on", "venue_name", mode="before")
    @classmethod
    def empty_as_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, v: Any) -> Any:
        return _id_to_str(v)

    @field_validator("is_venue", mode="before")
    @classmethod
    def none_as_false(cls, v: Any) -> Any:
        return False if v is None else v


class DoneRequest(BaseModel):
    """Входные данные done: нужен только id."""
    id: str = Field(min_length=1)

    class Config:
        extra = "ignore"

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, v: Any) -> Any:
        return _id_to_str(v)


class NearbyQuery(BaseModel):
    """Точка запроса. Строковые числа из query string допускаются."""
    lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    lon: float = Field(ge=-180, le=180, allow_inf_nan=False)


class ActiveQuery(NearbyQuery):
    """Точка запроса и режим выборки (по умолчанию 5 миль)."""
    mode: QueryMode = QueryMode.AREA
