import logging
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any

from bs4 import BeautifulSoup
from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException

from citescrape.modules.extractor.schemas import (
    ExtractionContext,
    ExtractionSource,
    MetadataResult,
    PartialExtractionResult,
    WebPageType,
)
from citescrape.modules.extractor.strategies import STRATEGIES, Strategy

logger = logging.getLogger(__name__)

# langdetect is randomised unless seeded
DetectorFactory.seed = 0

MIN_LANGDETECT_LENGTH = 50

_PROVENANCE_FIELDS = ("source", "authors")


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def merge_results(partials: list[PartialExtractionResult]) -> PartialExtractionResult:
    """Fold partial results in priority order.

    Every field keeps the first non-empty value seen. The first non-empty
    author list is taken whole and its strategy becomes the provenance tag;
    without any authors the provenance is whichever strategy supplied the
    title.
    """
    merged = PartialExtractionResult()
    title_source = None

    for partial in partials:
        for f in fields(PartialExtractionResult):
            if f.name in _PROVENANCE_FIELDS:
                continue
            value = getattr(partial, f.name)
            if _is_empty(value) or not _is_empty(getattr(merged, f.name)):
                continue
            setattr(merged, f.name, value)
            if f.name == "title":
                title_source = partial.source

        if partial.authors and not merged.authors:
            merged.authors = list(partial.authors)
            merged.source = partial.source

    if merged.source is None:
        merged.source = title_source
    return merged


class MetadataExtractor:
    """Turns raw third-party HTML into the best available MetadataResult."""

    def __init__(
        self, strategies: list[tuple[ExtractionSource, Strategy]] | None = None
    ) -> None:
        self._strategies = strategies or STRATEGIES

    def _run_strategies(self, soup: BeautifulSoup) -> list[PartialExtractionResult]:
        partials: list[PartialExtractionResult] = []
        for source, strategy in self._strategies:
            try:
                partials.append(strategy(soup))
            except Exception:
                logger.exception("Extraction strategy %s failed", source.value)
                partials.append(PartialExtractionResult(source=source))
        return partials

    @staticmethod
    def _document_title(soup: BeautifulSoup) -> str | None:
        if soup.title is None:
            return None
        return " ".join(soup.title.get_text().split()) or None

    @staticmethod
    def _document_language(soup: BeautifulSoup) -> str | None:
        html = soup.find("html")
        if html is None:
            return None
        lang = html.get("lang")
        if not isinstance(lang, str):
            return None
        return lang.strip() or None

    @staticmethod
    def _detect_language(text: str | None) -> str | None:
        if not text or len(text) < MIN_LANGDETECT_LENGTH:
            return None
        try:
            return detect(text)
        except LangDetectException:
            logger.debug("Language detection failed")
            return None

    def extract(self, context: ExtractionContext) -> MetadataResult:
        soup = BeautifulSoup(context.html or "", "lxml")
        merged = merge_results(self._run_strategies(soup))
        hostname = context.hostname

        language = (
            merged.language
            or self._document_language(soup)
            or self._detect_language(merged.description)
        )

        result = MetadataResult(
            url=context.url,
            title=merged.title or self._document_title(soup) or hostname,
            access_date=datetime.now(timezone.utc).isoformat(),
            authors=merged.authors,
            published_date=merged.published_date,
            modified_date=merged.modified_date,
            publisher=merged.publisher or hostname,
            site_name=merged.site_name or hostname,
            description=merged.description,
            language=language,
            type=merged.type or WebPageType.WEBSITE,
            source=merged.source,
        )
        logger.debug(
            "Extracted metadata for %s (source=%s, authors=%d)",
            context.url,
            result.source.value if result.source else None,
            len(result.authors),
        )
        return result


def extract_metadata(context: ExtractionContext) -> MetadataResult:
    return MetadataExtractor().extract(context)
