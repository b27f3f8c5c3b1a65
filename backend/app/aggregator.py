import logging
from typing import Any, Dict

from backend.app.errors import MetricsError, StoreReadError
from backend.app.store import EventStore, gather_or_cancel

logger = logging.getLogger(__name__)


class MetricsAggregator:
    def __init__(
        self,
        store: EventStore,
        top_elements_limit: int = 10,
        recent_activity_limit: int = 5,
        recent_activity_minutes: int = 60,
    ):
        self.store = store
        self.top_elements_limit = top_elements_limit
        self.recent_activity_limit = recent_activity_limit
        self.recent_activity_minutes = recent_activity_minutes

    async def snapshot(self) -> Dict[str, Any]:
        """Run the summary reads concurrently; any failure discards the whole snapshot."""
        try:
            (
                total_events,
                total_sessions,
                top_clicked,
                average_scroll,
                recent_activity,
            ) = await gather_or_cancel(
                self.store.query("total_events"),
                self.store.query("total_sessions"),
                self.store.query("top_clicked_elements", limit=self.top_elements_limit),
                self.store.query("average_scroll_depth"),
                self.store.query(
                    "recent_activity",
                    window_minutes=self.recent_activity_minutes,
                    limit=self.recent_activity_limit,
                ),
            )
        except StoreReadError as exc:
            logger.error(f"Metrics aggregation failed: {exc}")
            raise MetricsError("Could not aggregate metrics") from exc

        return {
            "totalEvents": total_events,
            "totalSessions": total_sessions,
            "topClickedElements": top_clicked,
            "averageScrollDepth": average_scroll,
            "recentActivity": recent_activity,
        }
