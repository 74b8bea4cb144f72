"""
Dataview contracts.

A dataview is an external, asynchronously fetched data source. The tree only
ever stores its id; records and fields live in the DataviewCache.
"""

from pydantic import BaseModel, ConfigDict, Field


class DataviewRef(BaseModel):
    """One entry of the external dataview listing."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(description="Dataview identifier stored in the tree")
    name: str | None = Field(default=None, description="Display name")
    description: str | None = None
    fields: list[str] | None = Field(default=None, description="Field names, when the listing includes them")
