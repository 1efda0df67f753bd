"""
Pytest configuration and fixtures.
"""
import pytest
from fastapi.testclient import TestClient

from signage.db import init_schema, make_engine, make_session_factory
from signage.main import create_app
from signage.models.display import Display
from signage.models.screen import Screen
from signage.services.cache import SignageCache
from signage.services.cached_reads import CachedReads
from signage.services.control import ScreenControl
from signage.services.realtime import StateBroadcaster
from signage.services.store import SignageStore

from fakes import FakeRegistry, FakeStore, ManualClock


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cache(clock) -> SignageCache:
    return SignageCache(ttl=300, clock=clock)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fake_reads(cache, fake_store) -> CachedReads:
    return CachedReads(cache, fake_store)


@pytest.fixture
def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file with two displays and three screens."""
    engine = make_engine(f"sqlite:///{tmp_path / 'signage-test.db'}")
    init_schema(engine)
    factory = make_session_factory(engine)

    db = factory()
    try:
        db.add_all([Display(id="display1", name="Venue 1"), Display(id="display2", name="Venue 2")])
        db.flush()
        db.add_all(
            [
                Screen(id="A", display_id="display1", name="Screen A", x=0, y=0, width=512, height=512),
                Screen(id="B", display_id="display1", name="Screen B", x=512, y=0, width=512, height=512),
                Screen(id="C", display_id="display2", name="Screen C", x=0, y=0, width=416, height=104),
            ]
        )
        db.commit()
    finally:
        db.close()

    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory) -> SignageStore:
    return SignageStore(session_factory)


@pytest.fixture
def reads(store, clock) -> CachedReads:
    return CachedReads(SignageCache(ttl=300, clock=clock), store)


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def broadcaster(reads, registry) -> StateBroadcaster:
    instance = StateBroadcaster(reads, send_timeout=1.0)
    instance.set_channel(registry)
    return instance


@pytest.fixture
def control(store, reads, broadcaster) -> ScreenControl:
    return ScreenControl(store, reads, broadcaster)


@pytest.fixture
def app(session_factory):
    return create_app(session_factory=session_factory, init_defaults=False, api_key="")


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
