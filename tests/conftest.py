import pytest

from scheduler.service import SchedulingService
from store import InMemoryDirectory, Store
from tests.fixtures import FakeClock, context


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    """File-backed SQLite so concurrent tests get real, separate connections."""
    store = Store(url=f"sqlite:///{tmp_path / 'scheduler.db'}")
    store.create_all()
    yield store
    store.engine.dispose()


@pytest.fixture
def directory():
    directory = InMemoryDirectory()
    directory.add_organization(context())
    return directory


@pytest.fixture
def service(store, directory, clock):
    return SchedulingService(store, directory, clock)
