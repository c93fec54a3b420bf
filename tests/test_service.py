import json

import pytest

import run_fetch
from job_aggregator.aggregator import JobAggregator
from job_aggregator.config import Settings
from job_aggregator.errors import AggregationError, PersistenceError, SourceError
from job_aggregator.models import FetchResult, SourceOutcome
from job_aggregator.report import build_fetch_result, format_report
from job_aggregator.service import JobService
from job_aggregator.storage import JobSearchQuery, SqliteJobRepository

from helpers import FakeSource, make_job, record, run


class BrokenRepository(SqliteJobRepository):
    def upsert(self, jobs):
        raise PersistenceError("disk I/O error")


def make_service(tmp_path, repository_cls=SqliteJobRepository):
    sources = [
        FakeSource("remotive", [record(1), record(2, source_id=None, url="https://shared.example.com/x")]),
        FakeSource("hn_who_is_hiring", error=SourceError("hn_who_is_hiring", "HTTP 503 from firebase")),
        FakeSource("arbeitnow", [record(3), record(4, source_id=None, url="https://shared.example.com/x")]),
    ]
    return JobService(JobAggregator(sources), repository_cls(tmp_path / "jobs.db"))


def test_fetch_all_reports_counts(tmp_path):
    service = make_service(tmp_path)
    result = run(service.fetch_all())

    assert result.fetched == 4
    assert result.unique == 3
    assert result.saved == 3
    assert [o.source for o in result.per_source] == ["remotive", "hn_who_is_hiring", "arbeitnow"]
    assert result.failed_sources == ["hn_who_is_hiring"]
    assert service.repository.count() == 3


def test_repeated_fetch_does_not_duplicate_rows(tmp_path):
    service = make_service(tmp_path)
    run(service.fetch_all())
    run(service.fetch_all())
    assert service.repository.count() == 3


def test_fetch_all_passes_filters(tmp_path):
    service = make_service(tmp_path)
    result = run(service.fetch_all(limit=1, sources=["arbeitnow"]))
    assert [(o.source, o.count) for o in result.per_source] == [("arbeitnow", 1)]
    assert result.saved == 1


def test_persistence_failure_keeps_fetched_jobs(tmp_path):
    service = make_service(tmp_path, BrokenRepository)
    with pytest.raises(PersistenceError) as excinfo:
        run(service.fetch_all())
    assert len(excinfo.value.jobs) == 3


def test_no_sources_raises(tmp_path):
    service = JobService(JobAggregator([]), SqliteJobRepository(tmp_path / "jobs.db"))
    with pytest.raises(AggregationError):
        run(service.fetch_all())


def test_user_actions(tmp_path):
    service = make_service(tmp_path)
    run(service.fetch_all())
    job = service.search_jobs(JobSearchQuery(sources=["arbeitnow"]))[0]

    assert service.save_job(job.id)
    assert service.update_match_score(job.id, 0.5)
    saved = service.get_saved_jobs()
    assert [j.id for j in saved] == [job.id]
    assert saved[0].match_score == 0.5

    assert service.unsave_job(job.id)
    assert service.get_saved_jobs() == []


def test_build_fetch_result_and_report():
    outcomes = [
        SourceOutcome(source="remotive", count=2, elapsed_s=0.5),
        SourceOutcome(source="arbeitnow", error="timed out after 20s", elapsed_s=20.0),
    ]
    result = build_fetch_result([make_job()], outcomes, saved=1)
    assert result == FetchResult(fetched=2, unique=1, saved=1, per_source=outcomes)

    report = format_report(result)
    assert report.splitlines()[0] == "Fetched 2 jobs (1 unique), saved 1."
    assert "remotive" in report and "ok" in report
    assert "arbeitnow" in report and "FAILED  timed out after 20s" in report


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("JOB_AGGREGATOR_DATABASE_PATH", "/tmp/other.db")
    monkeypatch.setenv("JOB_AGGREGATOR_REMOTIVE__TIMEOUT_S", "5")
    monkeypatch.setenv("JOB_AGGREGATOR_ARBEITNOW__RATE_LIMIT__MAX_CALLS", "2")

    settings = Settings()
    assert settings.database_path == "/tmp/other.db"
    assert settings.remotive.timeout_s == 5.0
    assert settings.arbeitnow.rate_limit.max_calls == 2
    assert settings.remotive.rate_limit.on_limit == "reject"
    assert settings.source_order == ["remotive", "hn_who_is_hiring", "arbeitnow"]


def test_cli_writes_report_and_json(tmp_path, monkeypatch, capsys):
    service = make_service(tmp_path)

    class FakeServiceFactory:
        @staticmethod
        def from_settings(settings):
            return service

    monkeypatch.setattr(run_fetch, "JobService", FakeServiceFactory)
    monkeypatch.setattr(run_fetch, "configure_logging", lambda level: None)
    out = tmp_path / "out" / "jobs.json"

    assert run_fetch.main(["--db", str(tmp_path / "jobs.db"), "--out", str(out)]) == 0

    printed = capsys.readouterr().out
    assert "Fetched 4 jobs (3 unique), saved 3." in printed
    data = json.loads(out.read_text(encoding="utf-8"))
    assert [j["source"] for j in data] == ["remotive", "remotive", "arbeitnow"]


def test_cli_returns_error_code_when_save_fails(tmp_path, monkeypatch):
    service = make_service(tmp_path, BrokenRepository)

    class FakeServiceFactory:
        @staticmethod
        def from_settings(settings):
            return service

    monkeypatch.setattr(run_fetch, "JobService", FakeServiceFactory)
    monkeypatch.setattr(run_fetch, "configure_logging", lambda level: None)
    out = tmp_path / "jobs.json"

    assert run_fetch.main(["--out", str(out)]) == 1
    assert len(json.loads(out.read_text(encoding="utf-8"))) == 3


def test_cli_rejects_negative_limit(monkeypatch, capsys):
    monkeypatch.setattr(run_fetch, "configure_logging", lambda level: None)
    with pytest.raises(SystemExit) as excinfo:
        run_fetch.main(["--limit", "-1"])
    assert excinfo.value.code == 2
    assert "--limit: must be >= 0, got -1" in capsys.readouterr().err

    assert run_fetch.parse_args(["--limit", "0"]).limit == 0
