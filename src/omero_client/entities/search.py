"""Webclient search: query parameters and best-effort parsing of the HTML answer.

The search endpoint returns an HTML table; each ``<tr id="type-id">`` row
is turned into a SearchResult. Rows that cannot be read are skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from omero_client.entities.permissions import Group, Owner

logger = logging.getLogger(__name__)

_ROW_PATTERN = re.compile(r'<tr id="(.+?)-(.+?)".+?</tr>', re.DOTALL)
_DESCRIPTION_PATTERN = re.compile(r'<td class="desc"><a>(.+?)</a></td>')
_DATE_PATTERN = re.compile(r"<td class=\"date\" data-isodate='(.+?)'></td>")
_GROUP_PATTERN = re.compile(r'<td class="group">(.+?)</td>')
_LINK_PATTERN = re.compile(r'<td><a href="(.+?)"')

_OMERO_DATE_FORMAT = "%a, %d %b %Y %H:%M:%S %z"


@dataclass(frozen=True)
class SearchQuery:
    """Parameters of a webclient search."""

    query: str
    group: Group = Group.ALL_GROUPS
    owner: Owner = Owner.ALL_MEMBERS
    search_on_name: bool = True
    search_on_description: bool = False
    search_for_images: bool = True
    search_for_datasets: bool = False
    search_for_projects: bool = False
    search_for_wells: bool = False
    search_for_plates: bool = False
    search_for_screens: bool = False

    @property
    def fields(self) -> list[str]:
        fields = []
        if self.search_on_name:
            fields.append("name")
        if self.search_on_description:
            fields.append("description")
        return fields

    @property
    def data_types(self) -> list[str]:
        flags = {
            "images": self.search_for_images,
            "datasets": self.search_for_datasets,
            "projects": self.search_for_projects,
            "wells": self.search_for_wells,
            "plates": self.search_for_plates,
            "screens": self.search_for_screens,
        }
        return [data_type for data_type, enabled in flags.items() if enabled]


@dataclass(frozen=True)
class SearchResult:
    """One row of a search answer. Equality is by ID."""

    type: str
    id: int
    name: str
    group: str
    link: str
    date_acquired: datetime | None = None
    date_imported: datetime | None = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchResult):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


def _parse_date(text: str | None) -> datetime | None:
    if not text:
        return None
    try:
        return datetime.strptime(text, _OMERO_DATE_FORMAT)
    except ValueError:
        logger.info("Could not parse search result date %r", text)
        return None


def parse_search_results(html: str, server_uri: str) -> list[SearchResult]:
    """Extract search results from the HTML returned by ``load_searching/form``."""
    results: list[SearchResult] = []
    for row_match in _ROW_PATTERN.finditer(html):
        row = row_match.group(0)
        try:
            entity_id = int(row_match.group(2))
        except ValueError:
            logger.warning("Could not parse search result row %r", row_match.group(1))
            continue

        dates = _DATE_PATTERN.findall(row)
        description = _DESCRIPTION_PATTERN.search(row)
        group = _GROUP_PATTERN.search(row)
        link = _LINK_PATTERN.search(row)
        results.append(
            SearchResult(
                type=row_match.group(1),
                id=entity_id,
                name=description.group(1) if description else "-",
                group=group.group(1) if group else "-",
                link=server_uri + (link.group(1) if link else ""),
                date_acquired=_parse_date(dates[0] if dates else None),
                date_imported=_parse_date(dates[1] if len(dates) > 1 else None),
            )
        )
    return results
