import pytest

from tests.conftest import BASE_TS, click, scroll
from tests.test_rules import exit_events, landing_page_events, rage_events


def flagged(issues):
    return {(issue.rule_id, issue.page_url, issue.element_selector): issue.metrics for issue in issues}


class TestIdempotency:

    @pytest.mark.asyncio
    async def test_repeated_analysis_without_inserts_is_stable(self, rule_engine, seed):
        seed(
            landing_page_events()
            + [scroll(f"blog-{i}", "/blog-post", i, BASE_TS + i) for i in range(20)]
            + rage_events()
            + [click(f"dead-{i}", "/product-page", "div.product-image", BASE_TS + i) for i in range(8)]
            + exit_events()
        )

        first = await rule_engine.analyze_all()
        second = await rule_engine.analyze_all()

        assert flagged(first) == flagged(second)
        assert {issue.rule_id for issue in first} == {
            "lowClickRate", "lowScrollDepth", "rageClicks", "deadClicks", "highExitRate"
        }
        assert {issue.id for issue in first}.isdisjoint({issue.id for issue in second})

    @pytest.mark.asyncio
    async def test_metrics_snapshot_is_stable(self, aggregator, seed):
        seed(rage_events())

        assert await aggregator.snapshot() == await aggregator.snapshot()
