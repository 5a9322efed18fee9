import logging
import re
from datetime import datetime, timezone
from urllib.parse import quote

from bs4 import BeautifulSoup
from pydantic import ValidationError

from citescrape.modules.extractor.schemas import (
    Author,
    ExtractionSource,
    MetadataResult,
    WebPageType,
)
from citescrape.modules.fetcher.schemas import FetchError, FetchErrorKind
from citescrape.modules.lookup.base import DESCRIPTION_MAX_CHARS, RegistryClient
from citescrape.modules.lookup.schemas import (
    CrossrefAuthor,
    CrossrefDate,
    CrossrefResponse,
    CrossrefWork,
)

logger = logging.getLogger(__name__)

CROSSREF_WORKS_URL = "https://api.crossref.org/works/"

DOI_PATTERN = re.compile(r"^10\.\d{4,9}/[-._;()/:A-Za-z0-9]+$")
_DOI_URL_PREFIX = re.compile(r"^https?://(dx\.)?doi\.org/", re.IGNORECASE)


def validate_doi(value: str) -> str:
    """Return the bare DOI, accepting doi.org resolver URLs as input."""
    cleaned = _DOI_URL_PREFIX.sub("", value.strip())
    if not DOI_PATTERN.match(cleaned):
        raise FetchError(FetchErrorKind.INVALID_INPUT, "Invalid DOI format", value)
    return cleaned


def parse_date_parts(date: CrossrefDate | None) -> str | None:
    """[[2020, 3, 5]] -> "2020-03-05"; partial dates keep what is known."""
    if date is None or not date.date_parts or not date.date_parts[0]:
        return None
    first = date.date_parts[0]
    year = first[0]
    if not year:
        return None
    parts = [f"{year:04d}"]
    for value in first[1:3]:
        if not value:
            break
        parts.append(f"{value:02d}")
    return "-".join(parts)


def _parse_authors(authors: list[CrossrefAuthor] | None) -> list[Author]:
    parsed: list[Author] = []
    for author in authors or []:
        if author.name:
            parsed.append(Author(full_name=author.name))
        elif author.family:
            full_name = " ".join(p for p in (author.given, author.family) if p)
            parsed.append(
                Author(full_name=full_name, first_name=author.given, last_name=author.family)
            )
    return parsed


def _strip_markup(text: str | None) -> str | None:
    if not text:
        return None
    plain = " ".join(BeautifulSoup(text, "lxml").get_text(" ").split())
    return plain[:DESCRIPTION_MAX_CHARS] or None


def work_to_metadata(work: CrossrefWork, doi: str) -> MetadataResult:
    published = (
        parse_date_parts(work.published)
        or parse_date_parts(work.published_print)
        or parse_date_parts(work.published_online)
        or parse_date_parts(work.created)
    )
    container = work.container_title[0] if work.container_title else None
    return MetadataResult(
        url=work.url or f"https://doi.org/{doi}",
        title=work.title[0] if work.title else f"DOI: {doi}",
        access_date=datetime.now(timezone.utc).isoformat(),
        authors=_parse_authors(work.author),
        published_date=published,
        publisher=work.publisher,
        site_name=container or work.publisher,
        description=_strip_markup(work.abstract),
        language=work.language,
        type=WebPageType.ACADEMIC,
        source=ExtractionSource.JSON_LD,
    )


class DoiClient(RegistryClient):
    """Resolves DOIs against the Crossref works API."""

    registry_name = "Crossref"

    async def lookup(self, doi: str) -> MetadataResult:
        valid_doi = validate_doi(doi)
        payload = await self._get_json(
            CROSSREF_WORKS_URL + quote(valid_doi, safe=""), valid_doi, "DOI not found"
        )
        try:
            parsed = CrossrefResponse.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Unexpected Crossref payload for %s: %s", valid_doi, exc)
            raise FetchError(
                FetchErrorKind.EXTRACTION_FAILED, "Failed to parse Crossref response", valid_doi
            ) from exc

        logger.info("Resolved DOI %s via Crossref", valid_doi)
        return work_to_metadata(parsed.message, valid_doi)
