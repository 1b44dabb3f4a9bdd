"""
Tests for jobs.py - status transitions, job creation and engine dispatch.
"""
import json

import httpx
import pytest

from blogcluster.core.errors import DispatchError, JobAccessDenied
from blogcluster.models import JobStatus, KeywordSuggestion, KeywordsJob, Usage
from blogcluster.services import ingestion, jobs
from blogcluster.services.automation import AutomationClient, build_callback_url

from tests.fixtures.app_fixtures import INGEST_SECRET, KEYWORDS_URL, EngineStub, make_settings

CALLBACK = "https://app.test/api/ingest/keywords-callback"


def _client(engine: EngineStub, **overrides) -> AutomationClient:
    return AutomationClient(make_settings(**overrides), transport=engine.transport)


class TestResolveTransition:
    @pytest.mark.parametrize("current,target,expected", [
        (None, JobStatus.RUNNING, JobStatus.RUNNING),
        (JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.RUNNING),
        (JobStatus.QUEUED, JobStatus.READY, JobStatus.READY),
        (JobStatus.RUNNING, JobStatus.FAILED, JobStatus.FAILED),
        (JobStatus.RUNNING, JobStatus.QUEUED, JobStatus.RUNNING),
        (JobStatus.READY, JobStatus.RUNNING, JobStatus.READY),
        (JobStatus.FAILED, JobStatus.RUNNING, JobStatus.FAILED),
        (JobStatus.READY, JobStatus.FAILED, JobStatus.FAILED),
        (JobStatus.FAILED, JobStatus.READY, JobStatus.READY),
    ])
    def test_monotonic(self, current, target, expected):
        assert jobs.resolve_transition(current, target) == expected


class TestLocation:
    @pytest.mark.parametrize("country,region,expected", [
        (None, None, "GLOBAL"),
        ("global", "ca", "GLOBAL"),
        ("us", None, "US"),
        ("us", "all", "US"),
        ("us", "ca", "US:CA"),
        (" gb ", " eng ", "GB:ENG"),
    ])
    def test_location_from_parts(self, country, region, expected):
        assert jobs.location_from_parts(country, region) == expected


class TestCreateJob:
    def test_creates_queued_job_with_generated_id(self, db):
        job = jobs.create_job(db, user_id="user_a", topic="  running shoes ", country="us", region="ca")

        assert job.id.startswith("kw_")
        assert job.status == JobStatus.QUEUED
        assert job.topic == "running shoes"
        assert job.location == "US:CA"

    def test_explicit_location_wins(self, db):
        job = jobs.create_job(db, user_id="user_a", topic="t", country="us", location="Austin, TX")
        assert job.location == "Austin, TX"

    def test_empty_topic_rejected(self, db):
        with pytest.raises(ValueError):
            jobs.create_job(db, user_id="user_a", topic="   ")

    def test_counts_research_usage(self, db):
        jobs.create_job(db, user_id="user_a", topic="one")
        jobs.create_job(db, user_id="user_a", topic="two")

        row = db.query(Usage).filter(Usage.user_id == "user_a", Usage.metric == "research").one()
        assert row.amount == 2

    def test_rerun_resets_own_job(self, db):
        job = jobs.create_job(db, user_id="user_a", topic="first", job_id="kw_fixed")
        jobs.cancel(db, job)

        rerun = jobs.create_job(db, user_id="user_a", topic="second", job_id="kw_fixed")

        assert rerun.id == "kw_fixed"
        assert rerun.status == JobStatus.QUEUED
        assert rerun.error is None
        assert rerun.completed_at is None
        assert rerun.topic == "second"
        assert db.query(KeywordsJob).count() == 1

    def test_claims_job_created_by_early_callback(self, db):
        ingestion.apply(db, ingestion.parse({"jobId": "kw_early", "status": "RUNNING", "suggestions": ["x"]}))

        job = jobs.create_job(db, user_id="user_a", topic="dentist seo", country="us", job_id="kw_early")

        assert job.user_id == "user_a"
        assert job.topic == "dentist seo"
        assert job.location == "US"
        # the callback's progress is kept
        assert job.status == JobStatus.RUNNING
        assert job.started_at is not None
        assert db.query(KeywordSuggestion).filter(KeywordSuggestion.job_id == "kw_early").count() == 1

    def test_early_callback_topic_is_kept(self, db):
        ingestion.apply(db, ingestion.parse({"jobId": "kw_early", "topic": "from engine", "status": "RUNNING"}))
        job = jobs.create_job(db, user_id="user_a", topic="from user", job_id="kw_early")
        assert job.topic == "from engine"

    def test_foreign_job_id_rejected(self, db):
        jobs.create_job(db, user_id="user_a", topic="mine", job_id="kw_taken")
        with pytest.raises(JobAccessDenied):
            jobs.create_job(db, user_id="user_b", topic="theirs", job_id="kw_taken")


class TestDispatch:
    def test_success_moves_to_running(self, db):
        engine = EngineStub()
        job = jobs.create_job(db, user_id="user_a", topic="running shoes", seed_keywords=["trail"])

        jobs.dispatch(db, job, _client(engine), CALLBACK)

        assert job.status == JobStatus.RUNNING
        assert job.started_at is not None
        request = engine.requests[0]
        assert str(request.url) == KEYWORDS_URL
        assert request.headers["X-Ingest-Secret"] == INGEST_SECRET
        sent = json.loads(request.content)
        assert sent["jobId"] == job.id
        assert sent["callbackUrl"] == CALLBACK
        assert sent["seedKeywords"] == ["trail"]

    def test_automation_secret_preferred_over_ingest_secret(self, db):
        engine = EngineStub()
        job = jobs.create_job(db, user_id="user_a", topic="t")

        jobs.dispatch(db, job, _client(engine, AUTOMATION_SECRET="outbound-only"), CALLBACK)

        assert engine.requests[0].headers["X-Ingest-Secret"] == "outbound-only"

    def test_success_does_not_rewind_a_faster_callback(self, db):
        engine = EngineStub()
        job = jobs.create_job(db, user_id="user_a", topic="t")
        job.status = JobStatus.READY
        db.commit()

        jobs.dispatch(db, job, _client(engine), CALLBACK)

        assert job.status == JobStatus.READY

    def test_engine_error_marks_failed(self, db):
        engine = EngineStub()
        engine.status_code = 500
        engine.body = {"message": "workflow is inactive"}
        job = jobs.create_job(db, user_id="user_a", topic="t")

        with pytest.raises(DispatchError) as excinfo:
            jobs.dispatch(db, job, _client(engine), CALLBACK)

        assert excinfo.value.job_id == job.id
        assert excinfo.value.status_code == 500
        assert "workflow is inactive" in excinfo.value.detail
        assert job.status == JobStatus.FAILED
        assert job.error.startswith("engine 500: ")
        assert len(job.error) <= len("engine 500: ") + jobs.DISPATCH_ERROR_TEXT_LEN
        assert job.completed_at is not None

    def test_long_engine_error_is_truncated(self, db):
        engine = EngineStub()
        engine.status_code = 502
        engine.body = "x" * 5000
        job = jobs.create_job(db, user_id="user_a", topic="t")

        with pytest.raises(DispatchError) as excinfo:
            jobs.dispatch(db, job, _client(engine), CALLBACK)

        assert len(excinfo.value.detail) == jobs.DISPATCH_DETAIL_LEN
        assert job.error == "engine 502: " + "x" * jobs.DISPATCH_ERROR_TEXT_LEN

    def test_unconfigured_engine_fails_without_request(self, db):
        engine = EngineStub()
        job = jobs.create_job(db, user_id="user_a", topic="t")

        with pytest.raises(DispatchError) as excinfo:
            jobs.dispatch(db, job, _client(engine, AUTOMATION_KEYWORDS_URL=None), CALLBACK)

        assert excinfo.value.status_code is None
        assert engine.requests == []
        assert job.status == JobStatus.FAILED
        assert job.error.startswith("engine unreachable: ")

    def test_transport_error_is_a_failure(self, db):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = AutomationClient(make_settings(), transport=httpx.MockTransport(boom))
        job = jobs.create_job(db, user_id="user_a", topic="t")

        with pytest.raises(DispatchError):
            jobs.dispatch(db, job, client, CALLBACK)
        assert job.status == JobStatus.FAILED


class TestCancel:
    def test_cancel_forces_failed(self, db):
        job = jobs.create_job(db, user_id="user_a", topic="t")
        job.status = JobStatus.READY
        db.commit()

        jobs.cancel(db, job)

        assert job.status == JobStatus.FAILED
        assert job.error == "cancelled"
        assert job.completed_at is not None


class TestCallbackUrl:
    def test_forwarded_headers_win(self):
        headers = {"x-forwarded-proto": "https", "x-forwarded-host": "tunnel.test, proxy.internal"}
        url = build_callback_url(headers, "https://public.test", "/api/ingest/keywords-callback")
        assert url == "https://tunnel.test/api/ingest/keywords-callback"

    def test_public_base_url_next(self):
        url = build_callback_url({"x-forwarded-host": "only-host.test"}, "https://public.test/", "api/x")
        assert url == "https://public.test/api/x"

    def test_request_base_url_last(self):
        url = build_callback_url({}, None, "/api/x", fallback_base_url="http://testserver/")
        assert url == "http://testserver/api/x"
