from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from backend.app import store as store_module
from backend.app.aggregator import MetricsAggregator
from backend.app.errors import MetricsError
from tests.conftest import BASE_TS, click, scroll


class TestMetricsAggregator:

    @pytest.mark.asyncio
    async def test_snapshot_shape(self, aggregator, seed):
        seed([
            click("s1", "/home", "button.buy", BASE_TS),
            click("s1", "/home", "button.buy", BASE_TS + 1),
            click("s2", "/cart", "a.checkout", BASE_TS + 2),
            scroll("s2", "/cart", 30, BASE_TS + 3),
            scroll("s3", "/home", 70, BASE_TS + 4),
        ])

        snapshot = await aggregator.snapshot()

        assert snapshot["totalEvents"] == [{"count": 5}]
        assert snapshot["totalSessions"] == [{"count": 3}]
        assert snapshot["topClickedElements"] == [
            {"element_selector": "button.buy", "clicks": 2},
            {"element_selector": "a.checkout", "clicks": 1},
        ]
        assert snapshot["averageScrollDepth"][0]["avg_depth"] == pytest.approx(50)
        assert snapshot["recentActivity"] == [
            {"page_url": "/home", "events_count": 3},
            {"page_url": "/cart", "events_count": 2},
        ]

    @pytest.mark.asyncio
    async def test_limits_are_applied(self, store, seed):
        seed(
            [click("s1", f"/page-{i}", f"button.b{i}", BASE_TS + i) for i in range(12)]
        )
        aggregator = MetricsAggregator(store, top_elements_limit=10, recent_activity_limit=5)

        snapshot = await aggregator.snapshot()

        assert len(snapshot["topClickedElements"]) == 10
        assert len(snapshot["recentActivity"]) == 5

    @pytest.mark.asyncio
    async def test_empty_store(self, aggregator):
        snapshot = await aggregator.snapshot()

        assert snapshot["totalEvents"] == [{"count": 0}]
        assert snapshot["topClickedElements"] == []
        assert snapshot["averageScrollDepth"] == [{"avg_depth": None}]
        assert snapshot["recentActivity"] == []

    @pytest.mark.asyncio
    async def test_any_failed_read_fails_the_snapshot(self, aggregator, seed):
        seed([click("s1", "/home", "button.buy", BASE_TS)])

        def failing(db, **params):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        with patch.dict(store_module.QUERIES, {"average_scroll_depth": failing}):
            with pytest.raises(MetricsError):
                await aggregator.snapshot()
