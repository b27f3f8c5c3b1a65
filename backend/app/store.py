import asyncio
import logging
from typing import Any, Callable, Dict, List, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from backend.app import crud, schemas
from backend.app.errors import StoreReadError, StoreWriteError
from shared.database import Base, create_session_factory

logger = logging.getLogger(__name__)

QUERIES: Dict[str, Callable[..., List[Dict[str, Any]]]] = {
    "total_events": crud.count_events,
    "total_sessions": crud.count_sessions,
    "top_clicked_elements": crud.get_top_clicked_elements,
    "average_scroll_depth": crud.get_average_scroll_depth,
    "recent_activity": crud.get_recent_activity,
    "page_sessions": crud.get_page_sessions,
    "element_click_stats": crud.get_element_click_stats,
    "page_scroll_stats": crud.get_page_scroll_stats,
    "rage_click_sessions": crud.get_rage_click_sessions,
    "dead_click_candidates": crud.get_dead_click_candidates,
    "page_exit_stats": crud.get_page_exit_stats,
}


class EventStore:
    """
    Append-only event log with atomic batch inserts and named aggregate reads.

    Every call opens its own session on a worker thread, so concurrent reads
    each see a consistent snapshot of committed data but not of each other.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = create_session_factory(engine)

    def init_schema(self):
        Base.metadata.create_all(bind=self.engine)

    async def insert_batch(self, events: Sequence[schemas.EventCreate]) -> int:
        try:
            inserted = await asyncio.to_thread(self._run, crud.insert_events, {"events": events})
        except SQLAlchemyError as exc:
            logger.error(f"Error saving {len(events)} events to database: {exc}")
            raise StoreWriteError(f"Batch of {len(events)} events was not persisted") from exc

        logger.info(f"Successfully saved {inserted} events to database")
        return inserted

    async def query(self, name: str, **params) -> List[Dict[str, Any]]:
        fn = QUERIES.get(name)
        if fn is None:
            raise StoreReadError(f"Unknown query: {name}")

        try:
            return await asyncio.to_thread(self._run, fn, params)
        except SQLAlchemyError as exc:
            logger.error(f"Error executing query {name}: {exc}")
            raise StoreReadError(f"Query {name} failed") from exc

    def _run(self, fn, params):
        db = self.session_factory()
        try:
            return fn(db, **params)
        finally:
            db.close()


async def gather_or_cancel(*aws):
    """Await all reads together; on the first failure cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
