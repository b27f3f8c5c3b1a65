import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel

from backend.app import schemas
from backend.app.errors import ConfigUpdateRejected, RuleAnalysisError, StoreReadError
from backend.app.store import EventStore, gather_or_cancel

logger = logging.getLogger(__name__)

EXIT_RATE_LIMIT = 0.5
SUGGESTION_PRIORITIES = ("high", "medium", "low")

SUGGESTIONS: Dict[str, List[str]] = {
    "lowClickRate": [
        "Consider making the button more prominent with better contrast or size",
        "Review button placement - move critical actions above the fold",
        "Test different button text or calls-to-action",
        "Add visual affordances like hover effects or icons",
        "Ensure the button purpose is clear from surrounding context",
    ],
    "lowScrollDepth": [
        "Add engaging content above the fold to encourage scrolling",
        "Use visual cues like arrows or gradients to indicate more content below",
        "Break up long content with images, videos, or interactive elements",
        "Consider sticky navigation or progress indicators",
        "Review page loading speed - slow pages discourage scrolling",
    ],
    "rageClicks": [
        "Check if the element should be interactive - add proper click handlers",
        "Improve loading feedback - add spinners or disable buttons during processing",
        "Ensure click targets are large enough (minimum 44px)",
        "Fix any JavaScript errors that might prevent proper interaction",
        "Add clear visual feedback when elements are clicked",
    ],
    "deadClicks": [
        "Remove click events from non-interactive elements",
        "Style interactive elements to look clickable (buttons, links)",
        "Add proper semantic HTML - use buttons instead of divs for actions",
        "Ensure consistent interaction patterns across the interface",
        "Consider if users expect these elements to be interactive",
    ],
    "highExitRate": [
        "Improve page loading speed and performance",
        "Ensure the page content matches user expectations from the entry point",
        "Add clear navigation and breadcrumbs",
        "Include engaging content or clear calls-to-action early on the page",
        "Review and improve the page's value proposition",
    ],
}


class RuleDefinition(BaseModel):
    id: str
    name: str
    description: str
    severity: schemas.Severity
    thresholds: Dict[str, Any]


def default_rules() -> List[RuleDefinition]:
    return [
        RuleDefinition(
            id="lowClickRate",
            name="Low Click Rate",
            description="Identifies buttons/links with low click rates relative to page views",
            severity="medium",
            thresholds={"minClickRate": 0.05, "minPageViews": 10},
        ),
        RuleDefinition(
            id="lowScrollDepth",
            name="Low Scroll Depth",
            description="Identifies pages where users scroll less than expected",
            severity="low",
            thresholds={"maxScrollDepth": 30, "minSessions": 5},
        ),
        RuleDefinition(
            id="rageClicks",
            name="Rage Clicks",
            description="Identifies elements with multiple rapid clicks indicating frustration",
            severity="high",
            thresholds={"clicksInWindow": 3, "timeWindow": 2000, "minOccurrences": 2},
        ),
        RuleDefinition(
            id="deadClicks",
            name="Dead Clicks",
            description="Identifies non-interactive elements being clicked frequently",
            severity="medium",
            thresholds={
                "minClicksOnNonInteractive": 5,
                "nonInteractiveSelectors": ["div", "span", "p", "h1", "h2", "h3", "h4", "h5", "h6"],
            },
        ),
        RuleDefinition(
            id="highExitRate",
            name="High Exit Rate",
            description="Identifies pages with high exit rates without significant interaction",
            severity="medium",
            thresholds={"maxInteractionTime": 10000, "minSessions": 5},
        ),
    ]


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class RuleConfiguration:
    """Rule definitions owned by one engine, mutable only through set_threshold."""

    def __init__(self, rules: List[RuleDefinition]):
        self._rules = {rule.id: rule for rule in rules}

    @classmethod
    def default(cls) -> "RuleConfiguration":
        return cls(default_rules())

    def get(self, rule_id: str) -> RuleDefinition:
        return self._rules[rule_id]

    def rules(self) -> List[RuleDefinition]:
        return list(self._rules.values())

    def thresholds(self) -> Dict[str, Dict[str, Any]]:
        return {rule_id: copy.deepcopy(rule.thresholds) for rule_id, rule in self._rules.items()}

    def set_threshold(self, rule_id: str, key: str, value: Any):
        rule = self._rules.get(rule_id)
        if rule is None:
            raise ConfigUpdateRejected(f"Unknown rule: {rule_id}")
        if key not in rule.thresholds:
            raise ConfigUpdateRejected(f"Unknown threshold {key} for rule {rule_id}")

        current = rule.thresholds[key]
        if _is_number(current):
            if not _is_number(value):
                raise ConfigUpdateRejected(f"Threshold {rule_id}.{key} must be numeric")
        elif isinstance(current, list):
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ConfigUpdateRejected(f"Threshold {rule_id}.{key} must be a list of strings")

        rule.thresholds[key] = value


class RuleEngine:
    def __init__(self, store: EventStore, config: RuleConfiguration):
        self.store = store
        self.config = config

    def get_rule_configuration(self) -> List[Dict[str, Any]]:
        return [rule.model_dump() for rule in self.config.rules()]

    def update_threshold(self, rule_id: str, key: str, value: Any) -> bool:
        try:
            self.config.set_threshold(rule_id, key, value)
        except ConfigUpdateRejected as exc:
            logger.warning(f"No threshold update performed: {exc}")
            return False

        logger.info(f"Threshold {rule_id}.{key} set to {value!r}")
        return True

    async def analyze_all(self) -> List[schemas.Issue]:
        """
        Run every detector concurrently against one snapshot of the thresholds.

        The result is all-or-nothing: if any detector's read fails, no issues
        are returned and RuleAnalysisError is raised instead.
        """
        thresholds = self.config.thresholds()
        try:
            results = await gather_or_cancel(
                self._low_click_rate(thresholds["lowClickRate"]),
                self._low_scroll_depth(thresholds["lowScrollDepth"]),
                self._rage_clicks(thresholds["rageClicks"]),
                self._dead_clicks(thresholds["deadClicks"]),
                self._high_exit_rate(thresholds["highExitRate"]),
            )
        except StoreReadError as exc:
            logger.error(f"Error analyzing rules: {exc}")
            raise RuleAnalysisError("Rule analysis failed") from exc

        detected_at = datetime.now(timezone.utc)
        issues = [issue for rule_issues in results for issue in rule_issues]
        for issue in issues:
            issue.suggestions = get_suggestions(issue.rule_id)
            issue.detected_at = detected_at
        return issues

    def _issue(self, rule_id: str, page_url: str, element_selector, description: str, metrics) -> schemas.Issue:
        rule = self.config.get(rule_id)
        return schemas.Issue(
            id=f"{rule_id}-{uuid.uuid4().hex}",
            rule_id=rule_id,
            rule_name=rule.name,
            severity=rule.severity,
            element_selector=element_selector,
            page_url=page_url,
            description=description,
            metrics=metrics,
        )

    async def _low_click_rate(self, thresholds) -> List[schemas.Issue]:
        min_click_rate = thresholds["minClickRate"]
        min_page_views = thresholds["minPageViews"]

        flagged = []
        for row in await self.store.query("element_click_stats"):
            page_sessions = row["page_sessions"]
            if page_sessions < min_page_views:
                continue
            click_rate = row["unique_sessions"] / page_sessions
            if click_rate < min_click_rate:
                flagged.append((click_rate, row))

        flagged.sort(key=lambda item: (item[0], -item[1]["clicks"]))
        return [
            self._issue(
                "lowClickRate",
                row["page_url"],
                row["element_selector"],
                f'Low click rate ({click_rate * 100:.1f}%) on "{row["element_selector"]}"',
                {
                    "clickRate": click_rate,
                    "clicks": row["clicks"],
                    "uniqueSessions": row["unique_sessions"],
                    "pageSessions": row["page_sessions"],
                },
            )
            for click_rate, row in flagged
        ]

    async def _low_scroll_depth(self, thresholds) -> List[schemas.Issue]:
        max_scroll_depth = thresholds["maxScrollDepth"]
        min_sessions = thresholds["minSessions"]

        rows = [
            row for row in await self.store.query("page_scroll_stats")
            if row["sessions"] >= min_sessions and row["avg_scroll_depth"] < max_scroll_depth
        ]
        rows.sort(key=lambda row: row["avg_scroll_depth"])
        return [
            self._issue(
                "lowScrollDepth",
                row["page_url"],
                None,
                f'Low average scroll depth ({row["avg_scroll_depth"]:.1f}%) on page',
                {
                    "avgScrollDepth": row["avg_scroll_depth"],
                    "maxScrollDepth": row["max_scroll_depth"],
                    "sessions": row["sessions"],
                },
            )
            for row in rows
        ]

    async def _rage_clicks(self, thresholds) -> List[schemas.Issue]:
        rage_sessions = await self.store.query(
            "rage_click_sessions",
            time_window=thresholds["timeWindow"],
            clicks_in_window=thresholds["clicksInWindow"],
        )

        per_element: Dict[tuple, List[int]] = {}
        for row in rage_sessions:
            per_element.setdefault((row["page_url"], row["element_selector"]), []).append(row["rapid_clicks"])

        flagged = [
            (page_url, selector, len(counts), sum(counts))
            for (page_url, selector), counts in per_element.items()
            if len(counts) >= thresholds["minOccurrences"]
        ]
        flagged.sort(key=lambda item: (-item[2], -item[3]))
        return [
            self._issue(
                "rageClicks",
                page_url,
                selector,
                f'Rage clicks detected on "{selector}" ({affected} sessions affected)',
                {
                    "affectedSessions": affected,
                    "totalRageClicks": total,
                    "avgRageClicksPerSession": total / affected,
                },
            )
            for page_url, selector, affected, total in flagged
        ]

    async def _dead_clicks(self, thresholds) -> List[schemas.Issue]:
        rows = [
            row for row in await self.store.query(
                "dead_click_candidates", tags=thresholds["nonInteractiveSelectors"]
            )
            if row["clicks"] >= thresholds["minClicksOnNonInteractive"]
        ]
        rows.sort(key=lambda row: -row["clicks"])
        return [
            self._issue(
                "deadClicks",
                row["page_url"],
                row["element_selector"],
                f'Dead clicks on non-interactive element "{row["element_selector"]}" ({row["clicks"]} clicks)',
                {"clicks": row["clicks"], "uniqueSessions": row["unique_sessions"]},
            )
            for row in rows
        ]

    async def _high_exit_rate(self, thresholds) -> List[schemas.Issue]:
        min_sessions = thresholds["minSessions"]

        flagged = []
        for row in await self.store.query(
            "page_exit_stats", max_interaction_time=thresholds["maxInteractionTime"]
        ):
            sessions = row["sessions"]
            if sessions < min_sessions:
                continue
            exit_rate = row["quick_exit_sessions"] / sessions
            if exit_rate > EXIT_RATE_LIMIT:
                flagged.append((exit_rate, row))

        flagged.sort(key=lambda item: (-item[0], -item[1]["sessions"]))
        return [
            self._issue(
                "highExitRate",
                row["page_url"],
                None,
                f"High exit rate ({exit_rate * 100:.1f}%) with minimal interaction",
                {
                    "exitRate": exit_rate,
                    "sessions": row["sessions"],
                    "quickExitSessions": row["quick_exit_sessions"],
                },
            )
            for exit_rate, row in flagged
        ]


def get_suggestions(rule_id: str) -> List[schemas.Suggestion]:
    """First three catalog entries for the rule, prioritised by position."""
    texts = SUGGESTIONS.get(rule_id, [])[:len(SUGGESTION_PRIORITIES)]
    return [
        schemas.Suggestion(id=f"suggestion-{rule_id}-{index}", text=text, priority=SUGGESTION_PRIORITIES[index])
        for index, text in enumerate(texts)
    ]
