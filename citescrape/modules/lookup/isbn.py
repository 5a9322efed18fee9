import logging
import re
from datetime import datetime, timezone

from pydantic import ValidationError

from citescrape.modules.extractor.schemas import ExtractionSource, MetadataResult, WebPageType
from citescrape.modules.extractor.strategies import parse_author_name
from citescrape.modules.fetcher.schemas import FetchError, FetchErrorKind
from citescrape.modules.lookup.base import DESCRIPTION_MAX_CHARS, RegistryClient
from citescrape.modules.lookup.schemas import OpenLibraryBook

logger = logging.getLogger(__name__)

OPEN_LIBRARY_BOOKS_URL = "https://openlibrary.org/api/books"
OPEN_LIBRARY_SITE_NAME = "Open Library"

ISBN10_PATTERN = re.compile(r"^\d{9}[\dX]$")
ISBN13_PATTERN = re.compile(r"^97[89]\d{10}$")
YEAR_PATTERN = re.compile(r"\b(1[0-9]{3}|20[0-2][0-9])\b")


def _isbn10_checksum_ok(isbn: str) -> bool:
    total = sum(int(digit) * (10 - i) for i, digit in enumerate(isbn[:9]))
    total += 10 if isbn[9] == "X" else int(isbn[9])
    return total % 11 == 0


def _isbn13_checksum_ok(isbn: str) -> bool:
    total = sum(int(digit) * (1 if i % 2 == 0 else 3) for i, digit in enumerate(isbn[:12]))
    return (10 - total % 10) % 10 == int(isbn[12])


def validate_isbn(value: str) -> str:
    """Return the ISBN without separators, upper-cased; checksums are verified."""
    cleaned = re.sub(r"[- ]", "", value.strip()).upper()
    if ISBN10_PATTERN.match(cleaned):
        if not _isbn10_checksum_ok(cleaned):
            raise FetchError(FetchErrorKind.INVALID_INPUT, "Invalid ISBN-10 checksum", value)
        return cleaned
    if ISBN13_PATTERN.match(cleaned):
        if not _isbn13_checksum_ok(cleaned):
            raise FetchError(FetchErrorKind.INVALID_INPUT, "Invalid ISBN-13 checksum", value)
        return cleaned
    raise FetchError(FetchErrorKind.INVALID_INPUT, "Invalid ISBN format", value)


def parse_publish_year(value: str | None) -> str | None:
    if not value:
        return None
    match = YEAR_PATTERN.search(value)
    return match.group(1) if match else None


def _notes_text(notes: str | dict | None) -> str | None:
    # Open Library sometimes wraps notes as {"type": "/type/text", "value": ...}
    if isinstance(notes, dict):
        notes = notes.get("value")
    if not isinstance(notes, str) or not notes.strip():
        return None
    return notes.strip()[:DESCRIPTION_MAX_CHARS]


def book_to_metadata(book: OpenLibraryBook, isbn: str) -> MetadataResult:
    return MetadataResult(
        url=book.url or f"https://openlibrary.org/isbn/{isbn}",
        title=book.title,
        access_date=datetime.now(timezone.utc).isoformat(),
        authors=[parse_author_name(a.name) for a in book.authors or [] if a.name.strip()],
        published_date=parse_publish_year(book.publish_date),
        publisher=book.publishers[0].name if book.publishers else None,
        site_name=OPEN_LIBRARY_SITE_NAME,
        description=_notes_text(book.notes),
        type=WebPageType.ACADEMIC,
        source=ExtractionSource.JSON_LD,
    )


class IsbnClient(RegistryClient):
    """Resolves ISBNs against the Open Library books API."""

    registry_name = "Open Library"

    async def lookup(self, isbn: str) -> MetadataResult:
        valid_isbn = validate_isbn(isbn)
        book_key = f"ISBN:{valid_isbn}"
        url = f"{OPEN_LIBRARY_BOOKS_URL}?bibkeys={book_key}&format=json&jscmd=data"
        payload = await self._get_json(url, valid_isbn, "ISBN not found")

        if not isinstance(payload, dict) or not payload.get(book_key):
            raise FetchError(FetchErrorKind.NOT_FOUND, "ISBN not found", valid_isbn)
        try:
            book = OpenLibraryBook.model_validate(payload[book_key])
        except ValidationError as exc:
            logger.warning("Unexpected Open Library payload for %s: %s", valid_isbn, exc)
            raise FetchError(
                FetchErrorKind.EXTRACTION_FAILED,
                "Failed to parse Open Library response",
                valid_isbn,
            ) from exc

        logger.info("Resolved ISBN %s via Open Library", valid_isbn)
        return book_to_metadata(book, valid_isbn)
