import httpx
import pytest

from job_aggregator.errors import RateLimitExceeded, SourceError
from job_aggregator.models import FetchFilter
from job_aggregator.rate_limit import RateLimitPolicy, RateLimitState
from job_aggregator.sources import ArbeitnowSource, RemotiveSource, build_sources

from helpers import fetch_with

REMOTIVE_PAYLOAD = {
    "jobs": [
        {
            "id": 101,
            "title": "Python Developer",
            "company_name": "Acme",
            "candidate_required_location": "USA Only",
            "url": "https://remotive.com/remote-jobs/101",
            "tags": ["python", "django"],
            "salary": "$80k - $120k",
            "publication_date": "2026-10-01T12:00:00",
            "description": "<p>Build <b>things</b></p>",
        },
        {
            "id": 102,
            "title": "Product Designer",
            "company_name": "Beta",
            "candidate_required_location": "Europe",
            "url": "https://remotive.com/remote-jobs/102",
            "tags": [],
            "salary": "",
            "publication_date": "2026-10-02T12:00:00",
        },
    ]
}


def arbeitnow_job(slug, **overrides):
    job = {
        "slug": slug,
        "company_name": "Gamma GmbH",
        "title": f"Engineer {slug}",
        "description": "<p>Work with us</p>",
        "remote": False,
        "url": f"https://www.arbeitnow.com/view/{slug}",
        "tags": ["Software Development"],
        "job_types": ["full time"],
        "location": "Berlin",
        "created_at": 1700000000,
    }
    job.update(overrides)
    return job


def test_remotive_parses_jobs(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=REMOTIVE_PAYLOAD)

    records = fetch_with(RemotiveSource, settings.remotive, handler, FetchFilter(keywords="python", limit=5))

    assert seen[0].url.params["search"] == "python"
    assert seen[0].url.params["limit"] == "5"
    assert [r.source_id for r in records] == ["101", "102"]
    first = records[0]
    assert first.title == "Python Developer"
    assert first.company == "Acme"
    assert first.location == "USA Only"
    assert first.description == "Build things"
    assert first.salary_text == "$80k - $120k"
    assert first.remote is True
    assert first.posted_raw == "2026-10-01T12:00:00"
    assert records[1].salary_text is None


def test_remotive_filters_location_client_side(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=REMOTIVE_PAYLOAD)

    records = fetch_with(RemotiveSource, settings.remotive, handler, FetchFilter(location="europe", limit=5))

    assert "limit" not in seen[0].url.params
    assert [r.source_id for r in records] == ["102"]


def test_remotive_empty_list_is_success(settings):
    records = fetch_with(RemotiveSource, settings.remotive, lambda r: httpx.Response(200, json={"jobs": []}))
    assert records == []


def test_http_error_raises_source_error(settings):
    with pytest.raises(SourceError) as excinfo:
        fetch_with(RemotiveSource, settings.remotive, lambda r: httpx.Response(500))
    assert excinfo.value.source == "remotive"
    assert "HTTP 500" in excinfo.value.message


def test_malformed_payload_raises_source_error(settings):
    with pytest.raises(SourceError):
        fetch_with(RemotiveSource, settings.remotive, lambda r: httpx.Response(200, json={"jobs": "nope"}))
    with pytest.raises(SourceError):
        fetch_with(RemotiveSource, settings.remotive, lambda r: httpx.Response(200, content=b"<html>"))


def test_transport_error_raises_source_error(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SourceError):
        fetch_with(RemotiveSource, settings.remotive, handler)


def test_http_429_is_retried(settings):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429)
        return httpx.Response(200, json=REMOTIVE_PAYLOAD)

    records = fetch_with(RemotiveSource, settings.remotive, handler)
    assert len(calls) == 2
    assert len(records) == 2


def test_http_429_gives_up_after_max_retries(settings):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429)

    source_settings = settings.remotive.model_copy(update={"max_retries": 2})
    with pytest.raises(SourceError):
        fetch_with(RemotiveSource, source_settings, handler)
    assert len(calls) == 3


def test_rate_limit_rejects_second_call(settings):
    state = RateLimitState("remotive", RateLimitPolicy(max_calls=1, period_s=3600, on_limit="reject"))

    def handler(request):
        return httpx.Response(200, json=REMOTIVE_PAYLOAD)

    fetch_with(RemotiveSource, settings.remotive, handler, rate_limit=state)
    with pytest.raises(RateLimitExceeded) as excinfo:
        fetch_with(RemotiveSource, settings.remotive, handler, rate_limit=state)
    assert excinfo.value.retry_after_s > 0


def test_arbeitnow_paginates(settings):
    pages = {
        "1": {"data": [arbeitnow_job("a"), arbeitnow_job("b")], "links": {"next": "https://x/?page=2"}},
        "2": {"data": [arbeitnow_job("c", remote=True, location="Remote")], "links": {"next": None}},
    }
    seen = []

    def handler(request):
        page = request.url.params["page"]
        seen.append(page)
        return httpx.Response(200, json=pages[page])

    records = fetch_with(ArbeitnowSource, settings.arbeitnow, handler)

    assert seen == ["1", "2"]
    assert [r.source_id for r in records] == ["a", "b", "c"]
    assert records[0].tags == ["Software Development", "full time"]
    assert records[0].remote is False
    assert records[0].posted_raw == 1700000000
    assert records[2].remote is True


def test_arbeitnow_stops_at_limit_and_max_pages(settings):
    seen = []

    def handler(request):
        seen.append(request.url.params["page"])
        page = seen[-1]
        return httpx.Response(200, json={"data": [arbeitnow_job(page + "a"), arbeitnow_job(page + "b")]})

    records = fetch_with(ArbeitnowSource, settings.arbeitnow, handler, FetchFilter(limit=3))
    assert [r.source_id for r in records] == ["1a", "1b", "2a"]
    assert seen == ["1", "2"]

    seen.clear()
    source_settings = settings.arbeitnow.model_copy(update={"max_pages": 1})
    records = fetch_with(ArbeitnowSource, source_settings, handler)
    assert seen == ["1"]
    assert len(records) == 2


def test_arbeitnow_filters_keywords_and_location(settings):
    payload = {
        "data": [
            arbeitnow_job("py", title="Python Backend Engineer"),
            arbeitnow_job("js", title="Frontend Engineer", tags=["JavaScript"]),
            arbeitnow_job("rm", title="Python Data Engineer", remote=True, location="Hamburg"),
        ],
        "links": {"next": None},
    }

    def handler(request):
        return httpx.Response(200, json=payload)

    records = fetch_with(ArbeitnowSource, settings.arbeitnow, handler, FetchFilter(keywords="python"))
    assert [r.source_id for r in records] == ["py", "rm"]

    records = fetch_with(ArbeitnowSource, settings.arbeitnow, handler, FetchFilter(location="remote"))
    assert [r.source_id for r in records] == ["rm"]


def test_records_without_url_are_dropped(settings):
    payload = {"data": [arbeitnow_job("a", url=None), arbeitnow_job("b")], "links": {"next": None}}
    records = fetch_with(ArbeitnowSource, settings.arbeitnow, lambda r: httpx.Response(200, json=payload))
    assert [r.source_id for r in records] == ["b"]


def test_build_sources_follows_configured_order(settings):
    rate_limits = {}
    sources = build_sources(settings, rate_limits=rate_limits)
    assert [s.name for s in sources] == ["remotive", "hn_who_is_hiring", "arbeitnow"]
    assert set(rate_limits) == {"remotive", "hn_who_is_hiring", "arbeitnow"}
    assert sources[0].rate_limit is rate_limits["remotive"]

    disabled = settings.model_copy(
        update={"arbeitnow": settings.arbeitnow.model_copy(update={"enabled": False})}
    )
    assert [s.name for s in build_sources(disabled)] == ["remotive", "hn_who_is_hiring"]


def test_default_limit_applies_without_request_limit(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=REMOTIVE_PAYLOAD)

    source_settings = settings.remotive.model_copy(update={"default_limit": 1})
    records = fetch_with(RemotiveSource, source_settings, handler)
    assert seen[0].url.params["limit"] == "1"
    assert [r.source_id for r in records] == ["101"]
