"""The five metadata extraction strategies.

Each strategy reads one family of signals from a parsed page and returns a
PartialExtractionResult tagged with its ExtractionSource. Strategies never
raise for odd markup; missing or malformed signals become missing fields.
"""

import json
import logging
import re
from collections.abc import Callable
from datetime import timezone
from typing import Any

from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser

from citescrape.modules.extractor.schemas import (
    Author,
    ExtractionSource,
    PartialExtractionResult,
    WebPageType,
)

logger = logging.getLogger(__name__)

Strategy = Callable[[BeautifulSoup], PartialExtractionResult]

ARTICLE_TYPES = frozenset({
    "Article",
    "NewsArticle",
    "BlogPosting",
    "ScholarlyArticle",
    "TechArticle",
    "WebPage",
})

JSON_LD_TYPE_MAP: dict[str, WebPageType] = {
    "NewsArticle": WebPageType.NEWS,
    "BlogPosting": WebPageType.BLOG,
    "ScholarlyArticle": WebPageType.ACADEMIC,
    "Article": WebPageType.ARTICLE,
    "TechArticle": WebPageType.ARTICLE,
}

OG_TYPE_MAP: dict[str, WebPageType] = {
    "article": WebPageType.ARTICLE,
    "website": WebPageType.WEBSITE,
}


# ── Shared helpers ──────────────────────────────────────────────


def parse_author_name(name: str) -> Author:
    """Split a display name on whitespace; the last token is the surname."""
    parts = name.split()
    if len(parts) <= 1:
        return Author(full_name=name)
    return Author(
        full_name=name,
        first_name=" ".join(parts[:-1]),
        last_name=parts[-1],
    )


def normalize_date(value: str) -> str | None:
    """Parse a free-form date into ISO 8601 (UTC), or None if unparseable."""
    if not value or not value.strip():
        return None
    try:
        parsed = date_parser.parse(value.strip())
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        # offsets near datetime.min/max overflow on conversion
        return parsed.astimezone(timezone.utc).isoformat()
    except (ValueError, OverflowError, TypeError):
        logger.debug("Unparseable date dropped: %r", value)
        return None


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = " ".join(value.split())
    return text or None


def _as_text(value: Any) -> str | None:
    if isinstance(value, list):
        value = next((v for v in value if isinstance(v, str) and v.strip()), None)
    if isinstance(value, str):
        return value.strip() or None
    return None


def _element_text(el: Tag | None) -> str | None:
    if el is None:
        return None
    return _clean_text(el.get_text(" "))


def _meta_content(soup: BeautifulSoup, attr: str, name: str) -> str | None:
    pattern = re.compile(f"^{re.escape(name)}$", re.IGNORECASE)
    tag = soup.find("meta", attrs={attr: pattern})
    if tag is None:
        return None
    content = tag.get("content")
    if not isinstance(content, str):
        return None
    return content.strip() or None


# ── Structured data (JSON-LD) ───────────────────────────────────


def _is_article_type(value: Any) -> bool:
    if isinstance(value, list):
        return any(isinstance(t, str) and t in ARTICLE_TYPES for t in value)
    return isinstance(value, str) and value in ARTICLE_TYPES


def _map_json_ld_type(value: Any) -> WebPageType:
    first = value[0] if isinstance(value, list) and value else value
    if not isinstance(first, str):
        return WebPageType.WEBSITE
    return JSON_LD_TYPE_MAP.get(first, WebPageType.WEBSITE)


def _json_ld_items(data: Any) -> list[dict]:
    items = data if isinstance(data, list) else [data]
    flat: list[dict] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        flat.append(item)
        graph = item.get("@graph")
        if isinstance(graph, list):
            flat.extend(g for g in graph if isinstance(g, dict))
    return flat


def _parse_json_ld_authors(value: Any) -> list[Author]:
    if not value:
        return []
    entries = value if isinstance(value, list) else [value]
    authors: list[Author] = []
    for entry in entries:
        if isinstance(entry, str):
            if entry.strip():
                authors.append(parse_author_name(entry.strip()))
            continue
        if not isinstance(entry, dict):
            continue
        given = _as_text(entry.get("givenName"))
        family = _as_text(entry.get("familyName"))
        name = _as_text(entry.get("name")) or " ".join(p for p in (given, family) if p)
        if name:
            authors.append(Author(full_name=name, first_name=given, last_name=family))
    return authors


def _parse_publisher(value: Any) -> str | None:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        return _as_text(value.get("name"))
    return _as_text(value)


def extract_from_json_ld(soup: BeautifulSoup) -> PartialExtractionResult:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.debug("Skipping malformed JSON-LD block")
            continue

        for item in _json_ld_items(data):
            if not _is_article_type(item.get("@type")):
                continue
            return PartialExtractionResult(
                source=ExtractionSource.JSON_LD,
                title=_as_text(item.get("headline")) or _as_text(item.get("name")),
                authors=_parse_json_ld_authors(item.get("author")),
                published_date=_as_text(item.get("datePublished")),
                modified_date=_as_text(item.get("dateModified")),
                publisher=_parse_publisher(item.get("publisher")),
                description=_as_text(item.get("description")),
                language=_as_text(item.get("inLanguage")),
                type=_map_json_ld_type(item.get("@type")),
            )
    return PartialExtractionResult()


# ── Meta tags ───────────────────────────────────────────────────


def extract_from_meta_tags(soup: BeautifulSoup) -> PartialExtractionResult:
    def get_meta(name: str) -> str | None:
        return _meta_content(soup, "name", name)

    def get_article_meta(name: str) -> str | None:
        # article:* is declared with name= by some CMSs and property= by others
        return get_meta(name) or _meta_content(soup, "property", name)

    author = get_meta("author")
    return PartialExtractionResult(
        source=ExtractionSource.META_TAGS,
        title=get_meta("title"),
        authors=[parse_author_name(author)] if author else [],
        published_date=get_article_meta("article:published_time") or get_meta("date"),
        modified_date=get_article_meta("article:modified_time"),
        description=get_meta("description"),
        language=get_meta("language"),
    )


# ── Open Graph ──────────────────────────────────────────────────


def extract_from_open_graph(soup: BeautifulSoup) -> PartialExtractionResult:
    def get_og(prop: str) -> str | None:
        return _meta_content(soup, "property", f"og:{prop}")

    og_type = get_og("type")
    return PartialExtractionResult(
        source=ExtractionSource.OG_TAGS,
        title=get_og("title"),
        site_name=get_og("site_name"),
        description=get_og("description"),
        type=OG_TYPE_MAP.get(og_type) if og_type else None,
    )


# ── Twitter cards ───────────────────────────────────────────────


def extract_from_twitter_cards(soup: BeautifulSoup) -> PartialExtractionResult:
    def get_twitter(name: str) -> str | None:
        return _meta_content(soup, "name", f"twitter:{name}") or _meta_content(
            soup, "property", f"twitter:{name}"
        )

    creator = get_twitter("creator")
    handle = creator.removeprefix("@") if creator else None
    return PartialExtractionResult(
        source=ExtractionSource.TWITTER_TAGS,
        title=get_twitter("title"),
        authors=[Author(full_name=handle)] if handle else [],
        description=get_twitter("description"),
    )


# ── Heuristic DOM ───────────────────────────────────────────────


def extract_heuristic(soup: BeautifulSoup) -> PartialExtractionResult:
    title = _element_text(soup.find("h1")) or _element_text(
        soup.select_one('[class*="title"]')
    )

    author_el = soup.select_one('[rel~="author"], [class*="author"], [itemprop="author"]')
    author_name = _element_text(author_el)

    date_el = soup.select_one('time[datetime], [class*="date"], [itemprop="datePublished"]')
    date_str = None
    if date_el is not None:
        datetime_attr = date_el.get("datetime")
        date_str = (datetime_attr if isinstance(datetime_attr, str) else None) or _element_text(date_el)

    return PartialExtractionResult(
        source=ExtractionSource.HEURISTIC,
        title=title,
        authors=[parse_author_name(author_name)] if author_name else [],
        published_date=normalize_date(date_str) if date_str else None,
    )


# Priority order for merging: earlier strategies win.
STRATEGIES: list[tuple[ExtractionSource, Strategy]] = [
    (ExtractionSource.JSON_LD, extract_from_json_ld),
    (ExtractionSource.META_TAGS, extract_from_meta_tags),
    (ExtractionSource.OG_TAGS, extract_from_open_graph),
    (ExtractionSource.TWITTER_TAGS, extract_from_twitter_cards),
    (ExtractionSource.HEURISTIC, extract_heuristic),
]
