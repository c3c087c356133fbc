from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class ApiModel(BaseModel):
    """Reads from ORM objects, accepts snake_case or camelCase, emits camelCase."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class Envelope(BaseModel, Generic[DataT]):
    success: bool = True
    data: DataT


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: str


class Pagination(ApiModel):
    total: int
    limit: int
    skip: int
    has_more: bool


def page_info(*, total: int, limit: int, skip: int, returned: int) -> Pagination:
    return Pagination(total=total, limit=limit, skip=skip, has_more=skip + returned < total)


class Acknowledged(ApiModel):
    message: str
