"""User-facing populate request models.

PopulateSpec is what callers pass to ``populate``; the path resolver
validates it and compiles it into a ResolvedSpec.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


class PopulateOptions(BaseModel):
    """Lookup options applied to the referenced documents."""

    model_config = ConfigDict(extra="forbid")

    limit: int | None = Field(default=None, ge=0)
    sort: dict[str, int] | None = None
    lean: bool | None = None


class PopulateSpec(BaseModel):
    """One requested population path.

    Example:
        PopulateSpec(
            path="fans",
            match={"age": {"$gte": 21}},
            select="name -_id",
            options={"limit": 5},
            populate={"path": "friends"},
        )
    """

    model_config = ConfigDict(extra="forbid")

    path: str
    match: dict[str, Any] | None = None
    select: str | list[str] | dict[str, int] | None = None
    options: PopulateOptions = Field(default_factory=PopulateOptions)
    populate: Union[str, PopulateSpec, list[Union[str, PopulateSpec]], None] = None
    model: str | None = None


PopulateSpec.model_rebuild()

SpecInput = Union[str, dict[str, Any], PopulateSpec, list[Any], tuple[Any, ...]]
