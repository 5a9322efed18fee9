from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WebPageType(str, Enum):
    ARTICLE = "article"
    WEBSITE = "website"
    BLOG = "blog"
    NEWS = "news"
    ACADEMIC = "academic"
    UNKNOWN = "unknown"


class ExtractionSource(str, Enum):
    JSON_LD = "json-ld"
    META_TAGS = "meta-tags"
    OG_TAGS = "og-tags"
    TWITTER_TAGS = "twitter-tags"
    HEURISTIC = "heuristic"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class Author(_CamelModel):
    full_name: str
    first_name: str | None = None
    last_name: str | None = None


class MetadataResult(_CamelModel):
    """Citation metadata for one page, DOI or ISBN."""

    url: str
    title: str
    access_date: str  # ISO 8601, stamped when extracted
    authors: list[Author] = Field(default_factory=list)
    published_date: str | None = None
    modified_date: str | None = None
    publisher: str | None = None
    site_name: str | None = None
    description: str | None = None
    language: str | None = None
    type: WebPageType = WebPageType.WEBSITE
    source: ExtractionSource | None = Field(default=None, alias="_source")


@dataclass
class PartialExtractionResult:
    """Fields one strategy managed to find; merged, never exposed."""

    source: ExtractionSource | None = None
    title: str | None = None
    authors: list[Author] = field(default_factory=list)
    published_date: str | None = None
    modified_date: str | None = None
    publisher: str | None = None
    site_name: str | None = None
    description: str | None = None
    language: str | None = None
    type: WebPageType | None = None


@dataclass(frozen=True)
class ExtractionContext:
    html: str
    url: str

    @property
    def hostname(self) -> str:
        return urlsplit(self.url).hostname or self.url
