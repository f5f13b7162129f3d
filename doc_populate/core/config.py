"""Population configuration.

PopulateConfig is a Pydantic model for type-safe engine settings.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PopulateConfig(BaseModel):
    """Settings shared by Populator and AsyncPopulator."""

    id_field: str = "_id"
    lean: bool = False
    max_depth: int | None = Field(default=None, ge=1)
    strict: bool = False
    concurrent: bool = True
