"""Owners (experimenters) and groups of an OMERO server.

Both models carry a sentinel instance with ID -1 standing for "every
member" / "every group". Entities whose JSON has no ``omero:details``
keep these sentinels, and filters treat them as wildcards.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

ALL_ID = -1


class Owner(BaseModel):
    """An OMERO experimenter. Equality is by ID."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    ALL_MEMBERS: ClassVar[Owner]

    id: int = Field(..., alias="@id")
    first_name: str = Field(default="", alias="FirstName")
    middle_name: str = Field(default="", alias="MiddleName")
    last_name: str = Field(default="", alias="LastName")
    email_address: str = Field(default="", alias="Email")
    institution: str = Field(default="", alias="Institution")
    username: str = Field(default="", alias="UserName")

    @property
    def full_name(self) -> str:
        """First, middle and last names joined with spaces, skipping blanks."""
        names = (self.first_name, self.middle_name, self.last_name)
        return " ".join(name for name in names if name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Owner):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("owner", self.id))

    def __str__(self) -> str:
        return f"Owner {self.full_name or self.username} of ID {self.id}"


Owner.ALL_MEMBERS = Owner(id=ALL_ID, first_name="All members")


class Group(BaseModel):
    """An OMERO group and the experimenters belonging to it.

    ``owners`` is not part of the group's JSON; it is filled by the API
    handler from the group's ``url:experimenters`` link.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ALL_GROUPS: ClassVar[Group]

    id: int = Field(..., alias="@id")
    name: str = Field(default="", alias="Name")
    experimenters_url: str | None = Field(default=None, alias="url:experimenters")
    owners: list[Owner] = Field(default_factory=list)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Group):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("group", self.id))

    def __str__(self) -> str:
        return f"Group {self.name} of ID {self.id}"


Group.ALL_GROUPS = Group(id=ALL_ID, name="All groups")


def owner_from_details(details: Any) -> Owner | None:
    """Read ``omero:details.owner``; None if absent or malformed."""
    if not isinstance(details, dict) or not isinstance(details.get("owner"), dict):
        return None
    try:
        return Owner.model_validate(details["owner"])
    except ValueError:
        return None


def group_from_details(details: Any) -> Group | None:
    """Read ``omero:details.group``; None if absent or malformed."""
    if not isinstance(details, dict) or not isinstance(details.get("group"), dict):
        return None
    try:
        return Group.model_validate(details["group"])
    except ValueError:
        return None
