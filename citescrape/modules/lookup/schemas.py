"""Response shapes of the bibliographic registries we query.

Only the fields we map are declared; anything else in the payload is ignored.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _RegistryModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ── Crossref ────────────────────────────────────────────────────


class CrossrefAuthor(_RegistryModel):
    given: str | None = None
    family: str | None = None
    name: str | None = None


class CrossrefDate(_RegistryModel):
    date_parts: list[list[int | None]] | None = Field(default=None, alias="date-parts")


class CrossrefWork(_RegistryModel):
    title: list[str] | None = None
    author: list[CrossrefAuthor] | None = None
    publisher: str | None = None
    container_title: list[str] | None = Field(default=None, alias="container-title")
    published: CrossrefDate | None = None
    published_print: CrossrefDate | None = Field(default=None, alias="published-print")
    published_online: CrossrefDate | None = Field(default=None, alias="published-online")
    created: CrossrefDate | None = None
    doi: str | None = Field(default=None, alias="DOI")
    url: str | None = Field(default=None, alias="URL")
    type: str | None = None
    abstract: str | None = None
    language: str | None = None


class CrossrefResponse(_RegistryModel):
    status: str
    message_type: str = Field(alias="message-type")
    message: CrossrefWork


# ── Open Library ────────────────────────────────────────────────


class OpenLibraryAuthor(_RegistryModel):
    name: str
    url: str | None = None


class OpenLibraryPublisher(_RegistryModel):
    name: str


class OpenLibraryBook(_RegistryModel):
    title: str
    authors: list[OpenLibraryAuthor] | None = None
    publishers: list[OpenLibraryPublisher] | None = None
    publish_date: str | None = None
    url: str | None = None
    notes: str | dict[str, Any] | None = None
