"""Tests for modules/extractor: strategies, merge priority and fallback chain."""

import dataclasses
from unittest.mock import patch

import pytest
from bs4 import BeautifulSoup

from citescrape.modules.extractor.schemas import (
    Author,
    ExtractionContext,
    ExtractionSource,
    PartialExtractionResult,
    WebPageType,
)
from citescrape.modules.extractor.service import (
    MetadataExtractor,
    extract_metadata,
    merge_results,
)
from citescrape.modules.extractor.strategies import (
    extract_from_json_ld,
    extract_from_meta_tags,
    extract_from_open_graph,
    extract_from_twitter_cards,
    extract_heuristic,
    normalize_date,
    parse_author_name,
)

URL = "https://news.example.com/2024/budget"


def soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def extract(html: str, url: str = URL):
    return extract_metadata(ExtractionContext(html=html, url=url))


class TestExtractionContext:
    def test_hostname(self):
        assert ExtractionContext(html="", url=URL).hostname == "news.example.com"

    def test_fields(self):
        assert [f.name for f in dataclasses.fields(ExtractionContext)] == ["html", "url"]


class TestParseAuthorName:
    def test_splits_last_token_as_surname(self):
        author = parse_author_name("Mary Ann Smith")
        assert author.first_name == "Mary Ann"
        assert author.last_name == "Smith"
        assert author.full_name == "Mary Ann Smith"

    def test_single_token(self):
        assert parse_author_name("Plato") == Author(full_name="Plato")


class TestNormalizeDate:
    def test_iso_date(self):
        assert normalize_date("2024-01-10") == "2024-01-10T00:00:00+00:00"

    def test_free_form_date(self):
        assert normalize_date("March 5, 2023").startswith("2023-03-05")

    def test_offset_converted_to_utc(self):
        assert normalize_date("2024-01-10T12:00:00+02:00") == "2024-01-10T10:00:00+00:00"

    @pytest.mark.parametrize("value", ["", "   ", "not a date"])
    def test_unparseable_is_none(self, value):
        assert normalize_date(value) is None

    @pytest.mark.parametrize("value", ["0001-01-01T00:00:00+05:00", "9999-12-31T23:59:59-05:00"])
    def test_out_of_range_after_offset_is_none(self, value):
        assert normalize_date(value) is None


class TestJsonLd:
    def test_news_article(self, news_article_html):
        result = extract_from_json_ld(soup(news_article_html))
        assert result.title == "City Council Approves Budget"
        assert result.type is WebPageType.NEWS
        assert result.authors[0].full_name == "Jane Doe"
        assert result.published_date == "2024-01-10"

    def test_graph_container_and_list_type(self):
        html = """<script type="application/ld+json">
        {"@graph": [{"@type": "Organization", "name": "Org"},
                    {"@type": ["BlogPosting"], "name": "Post",
                     "publisher": {"name": "Blog Inc"}, "inLanguage": "fr"}]}
        </script>"""
        result = extract_from_json_ld(soup(html))
        assert result.title == "Post"
        assert result.type is WebPageType.BLOG
        assert result.publisher == "Blog Inc"
        assert result.language == "fr"

    def test_malformed_block_is_skipped(self):
        html = """
        <script type="application/ld+json">{not json</script>
        <script type="application/ld+json">{"@type":"Article","headline":"Second"}</script>
        """
        assert extract_from_json_ld(soup(html)).title == "Second"

    def test_non_article_types_ignored(self):
        html = '<script type="application/ld+json">{"@type":"Product","name":"Shoe"}</script>'
        assert extract_from_json_ld(soup(html)).title is None

    def test_author_list_with_given_and_family(self):
        html = """<script type="application/ld+json">
        {"@type":"ScholarlyArticle","headline":"Paper",
         "author":[{"givenName":"Ada","familyName":"Lovelace"}, "Alan Turing"]}
        </script>"""
        result = extract_from_json_ld(soup(html))
        assert [a.full_name for a in result.authors] == ["Ada Lovelace", "Alan Turing"]
        assert result.authors[0].last_name == "Lovelace"
        assert result.type is WebPageType.ACADEMIC


class TestMetaAndSocialTags:
    def test_meta_tags(self):
        html = """<head>
        <meta name="title" content="Meta Title">
        <meta name="author" content="John Smith">
        <meta property="article:published_time" content="2024-02-01">
        <meta name="description" content="A description">
        </head>"""
        result = extract_from_meta_tags(soup(html))
        assert result.title == "Meta Title"
        assert result.authors[0].last_name == "Smith"
        assert result.published_date == "2024-02-01"
        assert result.description == "A description"

    def test_open_graph(self):
        html = """<meta property="og:title" content="OG Title">
        <meta property="og:site_name" content="Example News">
        <meta property="og:type" content="article">"""
        result = extract_from_open_graph(soup(html))
        assert result.title == "OG Title"
        assert result.site_name == "Example News"
        assert result.type is WebPageType.ARTICLE

    def test_twitter_creator_handle(self):
        result = extract_from_twitter_cards(soup('<meta name="twitter:creator" content="@jdoe">'))
        assert result.authors == [Author(full_name="jdoe")]
        assert result.source is ExtractionSource.TWITTER_TAGS


class TestHeuristic:
    def test_dom_signals(self):
        html = """<body>
        <h1> Big   Headline </h1>
        <span class="byline-author">Sam Writer</span>
        <time datetime="2023-06-01T08:00:00Z">June 1</time>
        </body>"""
        result = extract_heuristic(soup(html))
        assert result.title == "Big Headline"
        assert result.authors[0].full_name == "Sam Writer"
        assert result.published_date == "2023-06-01T08:00:00+00:00"

    def test_out_of_range_date_keeps_other_signals(self):
        html = """<head><title>Doc title</title></head><body>
        <h1>Heuristic Title</h1>
        <span class="author">Ann Lee</span>
        <time datetime="0001-01-01T00:00:00+05:00">long ago</time>
        </body>"""
        result = extract_heuristic(soup(html))
        assert result.title == "Heuristic Title"
        assert result.authors[0].full_name == "Ann Lee"
        assert result.published_date is None

        merged = extract(html)
        assert merged.title == "Heuristic Title"
        assert merged.authors[0].full_name == "Ann Lee"


class TestMergeResults:
    def test_first_non_empty_wins(self):
        merged = merge_results([
            PartialExtractionResult(source=ExtractionSource.JSON_LD, title=None),
            PartialExtractionResult(source=ExtractionSource.OG_TAGS, title="B", description="d"),
            PartialExtractionResult(source=ExtractionSource.HEURISTIC, title="C", description="e"),
        ])
        assert merged.title == "B"
        assert merged.description == "d"
        assert merged.source is ExtractionSource.OG_TAGS

    def test_author_list_taken_whole(self):
        merged = merge_results([
            PartialExtractionResult(source=ExtractionSource.META_TAGS, title="T"),
            PartialExtractionResult(
                source=ExtractionSource.TWITTER_TAGS, authors=[Author(full_name="a")]
            ),
            PartialExtractionResult(
                source=ExtractionSource.HEURISTIC,
                authors=[Author(full_name="b"), Author(full_name="c")],
            ),
        ])
        assert merged.authors == [Author(full_name="a")]
        assert merged.source is ExtractionSource.TWITTER_TAGS


class TestExtractMetadata:
    def test_title_priority(self):
        html = """<head>
        <script type="application/ld+json">{"@type":"Article","headline":"A"}</script>
        <meta property="og:title" content="B">
        </head><body><h1>C</h1></body>"""
        assert extract(html).title == "A"

    def test_twitter_creator_only(self):
        result = extract('<head><meta name="twitter:creator" content="@jdoe"></head>')
        assert [a.model_dump(by_alias=True, exclude_none=True) for a in result.authors] == [
            {"fullName": "jdoe"}
        ]

    def test_end_to_end_news_article(self, news_article_html):
        result = extract(news_article_html)
        assert result.title == "City Council Approves Budget"
        assert result.type is WebPageType.NEWS
        assert result.authors[0].full_name == "Jane Doe"
        assert result.published_date == "2024-01-10"
        assert result.source is ExtractionSource.JSON_LD
        assert result.language == "en"

        body = result.model_dump(mode="json", by_alias=True)
        assert body["_source"] == "json-ld"
        assert body["publishedDate"] == "2024-01-10"

    def test_falls_back_to_document_title(self):
        result = extract("<html><head><title> Plain  Page </title></head><body><p>x</p></body></html>")
        assert result.title == "Plain Page"

    def test_falls_back_to_hostname(self):
        result = extract("<html><body><p>nothing here</p></body></html>")
        assert result.title == "news.example.com"
        assert result.publisher == "news.example.com"
        assert result.site_name == "news.example.com"
        assert result.type is WebPageType.WEBSITE
        assert result.source is None

    @pytest.mark.parametrize("html", ["", "<<<>>>", "<html><script type='application/ld+json'>[</script>"])
    def test_never_raises_on_garbage(self, html):
        assert extract(html).title == "news.example.com"

    def test_language_detected_from_long_description(self):
        html = """<head><meta name="description" content="The city council approved the
        annual budget after a long debate about public transport and road repairs."></head>"""
        assert extract(html).language == "en"

    def test_short_description_not_detected(self):
        assert extract('<head><meta name="description" content="Short."></head>').language is None

    def test_failing_strategy_does_not_break_extraction(self):
        def broken(_soup):
            raise RuntimeError("boom")

        extractor = MetadataExtractor(
            [(ExtractionSource.JSON_LD, broken), (ExtractionSource.OG_TAGS, extract_from_open_graph)]
        )
        result = extractor.extract(
            ExtractionContext(html='<meta property="og:title" content="Still here">', url=URL)
        )
        assert result.title == "Still here"

    def test_access_date_is_utc_iso(self):
        with patch("citescrape.modules.extractor.service.datetime") as fake_datetime:
            fake_datetime.now.return_value.isoformat.return_value = "2024-05-01T00:00:00+00:00"
            assert extract("<p></p>").access_date == "2024-05-01T00:00:00+00:00"
