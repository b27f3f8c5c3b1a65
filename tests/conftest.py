import pytest

from backend.app import crud, schemas
from backend.app.aggregator import MetricsAggregator
from backend.app.notifier import ChangeNotifier
from backend.app.rules import RuleConfiguration, RuleEngine
from backend.app.store import EventStore
from shared.database import create_db_engine

BASE_TS = 1_700_000_000_000


def click(session_id, page_url, selector, timestamp):
    return schemas.EventCreate(
        session_id=session_id,
        page_url=page_url,
        event_type="click",
        element_selector=selector,
        click_x=10,
        click_y=20,
        timestamp=timestamp,
    )


def scroll(session_id, page_url, depth, timestamp):
    return schemas.EventCreate(
        session_id=session_id,
        page_url=page_url,
        event_type="scroll",
        scroll_depth=depth,
        timestamp=timestamp,
    )


@pytest.fixture
def store(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'events.db'}")
    event_store = EventStore(db_engine)
    event_store.init_schema()
    yield event_store
    db_engine.dispose()


@pytest.fixture
def seed(store):
    def _seed(events):
        db = store.session_factory()
        try:
            return crud.insert_events(db, events)
        finally:
            db.close()

    return _seed


@pytest.fixture
def rule_engine(store):
    return RuleEngine(store, RuleConfiguration.default())


@pytest.fixture
def aggregator(store):
    return MetricsAggregator(store)


@pytest.fixture
def notifier():
    return ChangeNotifier(max_queue_size=3)
