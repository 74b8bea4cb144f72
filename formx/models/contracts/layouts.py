"""
Work-area layout contracts.

A layout is a template of root-level sections (header, body, sidebar, ...);
applying it replaces the tree with one container per section.
"""

from pydantic import BaseModel, ConfigDict, Field

from formx.models.enums import LayoutDirection, SectionPosition, SectionType


class LayoutSection(BaseModel):
    """One root-level region of a work-area layout."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Section identifier (e.g. 'header')")
    name: str = Field(description="Display name")
    type: SectionType = Field(description="Section kind")
    flex: float | None = Field(default=None, description="Flex-grow hint")
    min_height: str | None = Field(default=None, alias="minHeight", description="Minimum size hint")
    position: SectionPosition | None = Field(default=None, description="Placement hint")


class WorkAreaLayout(BaseModel):
    """A predefined layout template."""

    id: str
    name: str
    description: str = ""
    sections: list[LayoutSection] = Field(default_factory=list)
    direction: LayoutDirection = LayoutDirection.COLUMN
