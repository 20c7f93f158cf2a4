"""Responses read while discovering a server's API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ApiVersion(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str = ""
    base_url: str = Field(..., alias="url:base")


class ApiRoot(BaseModel):
    """Answer of ``GET {host}/api/``; the last version is the latest."""

    data: list[ApiVersion] = Field(..., min_length=1)

    @property
    def latest_version_url(self) -> str:
        return self.data[-1].base_url


class OmeroServer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    host: str = ""
    port: int = 4064


class OmeroServerList(BaseModel):
    data: list[OmeroServer] = Field(..., min_length=1)

    @property
    def server(self) -> OmeroServer:
        return self.data[0]


class CsrfToken(BaseModel):
    data: str = Field(..., min_length=1)
