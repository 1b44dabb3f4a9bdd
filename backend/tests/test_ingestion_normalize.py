"""
Tests for the pure side of ingestion.py - shape adapters, status mapping,
clamping, deduplication and news-metadata alignment.
"""
import hashlib
from datetime import datetime

import pytest

from blogcluster.core.errors import PayloadError
from blogcluster.models.keywords_job import JobStatus
from blogcluster.services.ingestion import (
    MAX_KEYWORD_LEN,
    MAX_NEWS_URLS,
    MAX_SUGGESTIONS,
    authenticate,
    coerce_score,
    normalize_article,
    normalize_articles,
    normalize_keyword,
    normalize_status,
    normalize_suggestion,
    normalize_suggestions,
    normalize_topics,
    parse,
    parse_datetime,
    safe_news_meta,
)

from tests.fixtures.ingest_fixtures import (
    ARTICLES_BATCH,
    ENVELOPE_CALLBACK,
    JOB_ID,
    SUGGESTIONS_BATCH,
    TOPICS_BATCH,
    flat_callback,
    keyword_records,
)


# ---------------------------------------------------------------------------
# Status mapping
# ---------------------------------------------------------------------------

class TestNormalizeStatus:
    @pytest.mark.parametrize("status,finalize,expected", [
        ("FAILED", None, JobStatus.FAILED),
        ("failed", True, JobStatus.FAILED),
        ("READY", None, JobStatus.READY),
        ("ready", False, JobStatus.READY),
        ("RUNNING", True, JobStatus.READY),
        (None, "true", JobStatus.READY),
        (None, 1, JobStatus.READY),
        ("RUNNING", None, JobStatus.RUNNING),
        ("QUEUED", None, JobStatus.RUNNING),
        ("garbage", "no", JobStatus.RUNNING),
        (42, None, JobStatus.RUNNING),
        (None, None, JobStatus.RUNNING),
    ])
    def test_status_table(self, status, finalize, expected):
        assert normalize_status(status, finalize) == expected


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------

class TestScalars:
    def test_keyword_is_trimmed_collapsed_and_casefolded(self):
        assert normalize_keyword("  Best   Trail\tRunning SHOES ") == "best trail running shoes"

    def test_long_keyword_is_clamped(self):
        assert len(normalize_keyword("k" * 500)) == MAX_KEYWORD_LEN

    def test_non_string_keyword_is_empty(self):
        assert normalize_keyword(12) == ""
        assert normalize_keyword(None) == ""

    @pytest.mark.parametrize("value,expected", [
        (0.5, 0.5),
        (3, 3.0),
        ("0.75", 0.75),
        (" 12 ", 12.0),
        ("abc", None),
        ("nan", None),
        (float("inf"), None),
        (True, None),
        (None, None),
        ([1], None),
    ])
    def test_coerce_score(self, value, expected):
        assert coerce_score(value) == expected

    def test_parse_datetime_formats(self):
        assert parse_datetime("2025-09-01T10:00:00Z") == datetime(2025, 9, 1, 10, 0)
        assert parse_datetime("2025-09-01T12:00:00+02:00") == datetime(2025, 9, 1, 10, 0)
        assert parse_datetime("Mon, 01 Sep 2025 10:00:00 GMT") == datetime(2025, 9, 1, 10, 0)
        assert parse_datetime(1756720800) == datetime(2025, 9, 1, 10, 0)
        assert parse_datetime(1756720800000) == datetime(2025, 9, 1, 10, 0)

    @pytest.mark.parametrize("value", ["yesterday", "", None, True, float("nan")])
    def test_parse_datetime_unparseable_is_none(self, value):
        assert parse_datetime(value) is None


class TestAuthenticate:
    def test_matching_secret(self):
        assert authenticate("s3cret", "s3cret") is True

    def test_whitespace_is_ignored(self):
        assert authenticate(" s3cret ", "s3cret\n") is True

    def test_mismatch(self):
        assert authenticate("nope", "s3cret") is False

    def test_missing_header(self):
        assert authenticate(None, "s3cret") is False

    @pytest.mark.parametrize("expected", [None, "", "   "])
    def test_unconfigured_secret_rejects_everything(self, expected):
        assert authenticate("anything", expected) is False
        assert authenticate("", expected) is False


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

class TestSuggestions:
    def test_batch_is_normalized_and_deduplicated(self):
        out = normalize_suggestions(SUGGESTIONS_BATCH)

        assert [s.keyword for s in out] == ["best trail running shoes", "waterproof running shoes"]
        # first occurrence wins
        assert out[0].score == 0.91
        assert out[1].score == 0.75

    def test_news_urls_deduplicated_with_meta_kept_aligned(self):
        first = normalize_suggestions(SUGGESTIONS_BATCH)[0]

        assert first.news_urls == [
            "https://www.runnersworld.com/gear/a1",
            "https://example.com/trail-guide",
        ]
        assert len(first.news_meta) == len(first.news_urls)
        assert first.news_meta[0]["title"] == "Trail shoes tested"
        assert first.news_meta[0]["sourceName"] == "Runner's World"
        # the meta of the dropped duplicate URL is dropped with it
        assert first.news_meta[1]["title"] == "Trail guide"
        assert first.news_meta[1]["summary"] == "Everything about trails."

    def test_source_url_falls_back_to_first_news_url(self):
        first = normalize_suggestions(SUGGESTIONS_BATCH)[0]
        assert first.source_url == "https://www.runnersworld.com/gear/a1"

    def test_comma_separated_urls_and_url_keyed_meta(self):
        second = normalize_suggestions(SUGGESTIONS_BATCH)[1]

        assert second.source_url == "https://example.com/waterproof"
        assert second.news_urls == ["https://example.com/w1", "https://example.com/w2"]
        assert second.news_meta[0] is None
        assert second.news_meta[1]["summary"] == "Keyed by url"

    def test_single_meta_object_describes_first_url(self):
        s = normalize_suggestion({
            "keyword": "x",
            "newsUrls": ["https://a.test", "https://b.test"],
            "newsMeta": {"title": "Only one"},
        })
        assert s.news_meta[0]["title"] == "Only one"
        assert s.news_meta[1] is None

    def test_news_urls_are_capped(self):
        urls = [f"https://news.test/{i}" for i in range(MAX_NEWS_URLS + 5)]
        s = normalize_suggestion({"keyword": "x", "newsUrls": urls})
        assert len(s.news_urls) == MAX_NEWS_URLS
        assert len(s.news_meta) == MAX_NEWS_URLS

    def test_string_items_are_keywords(self):
        out = normalize_suggestions(["Alpha", " alpha ", "Beta"])
        assert [s.keyword for s in out] == ["alpha", "beta"]
        assert out[0].news_urls == []

    def test_batch_is_capped(self):
        out = normalize_suggestions(keyword_records(MAX_SUGGESTIONS + 20))
        assert len(out) == MAX_SUGGESTIONS

    def test_empty_meta_is_none(self):
        assert safe_news_meta({"title": "  ", "unknown": "x"}) is None
        assert safe_news_meta("not a dict") is None

    def test_meta_fields_are_clamped(self):
        meta = safe_news_meta({"title": "t" * 500, "summary": "s" * 900})
        assert len(meta["title"]) == 160
        assert len(meta["summary"]) == 600


# ---------------------------------------------------------------------------
# Articles and topics
# ---------------------------------------------------------------------------

class TestArticles:
    def test_batch_drops_missing_and_duplicate_urls(self):
        out = normalize_articles(ARTICLES_BATCH)
        assert [a.url for a in out] == [
            "https://www.example.com/second",
            "https://news.test/first",
            "https://blog.test/unranked-new",
            "https://blog.test/unranked-old",
        ]

    def test_article_id_falls_back_to_url_hash(self):
        a = normalize_article({"url": "https://blog.test/post"})
        assert a.article_id == hashlib.sha256(b"https://blog.test/post").hexdigest()[:32]

    def test_duplicate_article_id_is_dropped(self):
        out = normalize_articles([
            {"id": "same", "url": "https://a.test/1"},
            {"id": "same", "url": "https://a.test/2"},
        ])
        assert len(out) == 1

    def test_fields_are_coerced(self):
        out = normalize_articles(ARTICLES_BATCH)
        assert out[0].rank == 2
        assert out[0].published_time == datetime(2025, 9, 1, 10, 0)
        assert out[1].source_name == "News Test"
        assert out[2].published_time == datetime(2025, 9, 10, 6, 0)

    def test_unparseable_published_time_is_null(self):
        a = normalize_article({"url": "https://a.test", "published_time": "last tuesday"})
        assert a.published_time is None


class TestTopics:
    def test_tiers_are_casefolded_restricted_and_deduplicated(self):
        out = normalize_topics(TOPICS_BATCH)
        assert [(t.label, t.tier) for t in out] == [
            ("Trail Shoes", "top"),
            ("Trail Shoes", "all"),
            ("Carbon plates", "rising"),
            ("Zero drop", "all"),
        ]


# ---------------------------------------------------------------------------
# parse: shapes and inclusion
# ---------------------------------------------------------------------------

class TestParse:
    def test_flat_shape(self):
        payload = parse(flat_callback(status="RUNNING", suggestions=SUGGESTIONS_BATCH))

        assert payload.job_id == JOB_ID
        assert payload.status == JobStatus.RUNNING
        assert payload.user_id == "user_a"
        assert len(payload.suggestions) == 2
        assert payload.articles is None
        assert payload.topics is None

    def test_envelope_shape_is_final(self):
        payload = parse(ENVELOPE_CALLBACK)

        assert payload.job_id == JOB_ID
        assert payload.status == JobStatus.READY
        assert payload.user_id == "user_a"
        assert payload.location == "US:CA"
        assert payload.raw_payload == ENVELOPE_CALLBACK["uiPayload"]
        assert [s.keyword for s in payload.suggestions] == ["running shoes"]

    def test_envelope_can_still_report_failure(self):
        body = {"uiPayload": None, "dbPayload": {"jobId": JOB_ID, "status": "FAILED", "error": "quota"}}
        payload = parse(body)
        assert payload.status == JobStatus.FAILED
        assert payload.error == "quota"

    @pytest.mark.parametrize("wrapper", ["body", "data"])
    def test_wrapped_shape(self, wrapper):
        payload = parse({wrapper: flat_callback(job_id="kw_wrapped", finalize=True)})
        assert payload.job_id == "kw_wrapped"
        assert payload.status == JobStatus.READY

    def test_outer_job_id_beats_wrapper(self):
        payload = parse({"jobId": "kw_outer", "data": {"jobId": "kw_inner"}})
        assert payload.job_id == "kw_outer"

    @pytest.mark.parametrize("key", ["jobId", "requestId", "job_id", "request_id"])
    def test_job_id_synonyms(self, key):
        assert parse({key: "kw_syn"}).job_id == "kw_syn"

    def test_top_level_keyword_is_a_single_suggestion(self):
        payload = parse({"jobId": JOB_ID, "keyword": "Solo Keyword", "score": 0.4})
        assert [(s.keyword, s.score) for s in payload.suggestions] == [("solo keyword", 0.4)]

    def test_single_suggestion_object(self):
        payload = parse({"jobId": JOB_ID, "suggestions": {"keyword": "one"}})
        assert [s.keyword for s in payload.suggestions] == ["one"]

    def test_empty_list_is_included(self):
        payload = parse({"jobId": JOB_ID, "suggestions": [], "articles": [], "topicSuggestions": []})
        assert payload.suggestions == []
        assert payload.articles == []
        assert payload.topics == []

    def test_missing_job_id(self):
        with pytest.raises(PayloadError):
            parse({"status": "READY", "suggestions": []})

    def test_job_id_too_long(self):
        with pytest.raises(PayloadError):
            parse({"jobId": "k" * 129})

    @pytest.mark.parametrize("body", [None, [], "jobId", 12])
    def test_non_object_body(self, body):
        with pytest.raises(PayloadError):
            parse(body)

    def test_error_is_truncated(self):
        payload = parse({"jobId": JOB_ID, "status": "FAILED", "error": "e" * 900})
        assert len(payload.error) == 500
