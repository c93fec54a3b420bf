import pytest

from job_aggregator.config import ArbeitnowSettings, HNWhoIsHiringSettings, RemotiveSettings, Settings

from helpers import OPEN_POLICY


@pytest.fixture
def settings():
    return Settings(
        remotive=RemotiveSettings(backoff_s=0, rate_limit=OPEN_POLICY),
        arbeitnow=ArbeitnowSettings(backoff_s=0, rate_limit=OPEN_POLICY),
        hn_who_is_hiring=HNWhoIsHiringSettings(backoff_s=0, rate_limit=OPEN_POLICY),
    )
