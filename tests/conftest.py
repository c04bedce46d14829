# tests/conftest.py
import pytest

from homematch import couples, ratelimit

from fakes import FakeSession, make_client


@pytest.fixture(autouse=True)
def fresh_process_state():
    for cache in (couples.mutual_likes_cache, couples.activity_cache, couples.stats_cache):
        cache.clear()
    ratelimit.set_store(ratelimit.MemoryRateLimitStore())
    yield


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    return make_client(session)


@pytest.fixture
def no_sleep():
    waits = []
    def sleep(seconds):
        waits.append(seconds)
    sleep.waits = waits
    return sleep
