import logging

import pytest
from fastapi.testclient import TestClient

from backend.app import main
from backend.app.middleware import PROCESS_TIME_HEADER
from tests.conftest import BASE_TS


def click_payload(session_id, page_url, selector, timestamp):
    return {
        "sessionId": session_id,
        "pageUrl": page_url,
        "eventType": "click",
        "elementSelector": selector,
        "clickX": 5,
        "clickY": 7,
        "scrollDepth": None,
        "timestamp": timestamp,
    }


@pytest.fixture
def client(store, notifier, rule_engine, aggregator):
    main.app.dependency_overrides = {
        main.get_store: lambda: store,
        main.get_notifier: lambda: notifier,
        main.get_rule_engine: lambda: rule_engine,
        main.get_aggregator: lambda: aggregator,
    }
    yield TestClient(main.app)
    main.app.dependency_overrides = {}


class TestEventsEndpoint:

    def test_ingest_persists_and_notifies(self, client, notifier):
        listener = notifier.subscribe()
        payload = {"events": [click_payload(f"dead-{i}", "/product-page", "div.product-image", BASE_TS + i)
                              for i in range(8)]}

        response = client.post("/events", json=payload)

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "events_count": 8}
        assert listener.queue.get_nowait() == {"type": "metrics_update"}

        metrics = client.get("/metrics").json()
        assert metrics["totalEvents"] == [{"count": 8}]
        assert metrics["topClickedElements"] == [{"element_selector": "div.product-image", "clicks": 8}]

    def test_invalid_batches_are_rejected(self, client, notifier):
        listener = notifier.subscribe()

        assert client.post("/events", json={"events": []}).status_code == 422
        assert client.post("/events", json={"events": [{"sessionId": "s1"}]}).status_code == 422

        wrong_type = click_payload("s1", "/home", "a", BASE_TS)
        wrong_type["eventType"] = "hover"
        assert client.post("/events", json={"events": [wrong_type]}).status_code == 422

        scroll_with_selector = click_payload("s1", "/home", "a", BASE_TS)
        scroll_with_selector.update(eventType="scroll", scrollDepth=40)
        assert client.post("/events", json={"events": [scroll_with_selector]}).status_code == 422

        assert listener.queue.empty()
        assert client.get("/metrics").json()["totalEvents"] == [{"count": 0}]


class TestRulesEndpoints:

    def test_issues_are_serialised_in_camel_case(self, client):
        payload = {"events": [click_payload(f"dead-{i}", "/product-page", "div.product-image", BASE_TS + i)
                              for i in range(8)]}
        client.post("/events", json=payload)

        issues = client.get("/rules/issues").json()["issues"]

        dead = [issue for issue in issues if issue["ruleId"] == "deadClicks"]
        assert len(dead) == 1
        assert dead[0]["ruleName"] == "Dead Clicks"
        assert dead[0]["elementSelector"] == "div.product-image"
        assert dead[0]["pageUrl"] == "/product-page"
        assert dead[0]["metrics"]["clicks"] == 8
        assert dead[0]["suggestions"][0]["priority"] == "high"
        assert "detectedAt" in dead[0]

    def test_threshold_update(self, client):
        response = client.put("/rules/config/deadClicks/thresholds/minClicksOnNonInteractive", json={"value": 20})
        assert response.status_code == 200
        assert response.json() == {"updated": True}

        rules = {rule["id"]: rule for rule in client.get("/rules/config").json()["rules"]}
        assert rules["deadClicks"]["thresholds"]["minClicksOnNonInteractive"] == 20

        response = client.put("/rules/config/deadClicks/thresholds/bogus", json={"value": 20})
        assert response.status_code == 400

    def test_feedback_is_accepted(self, client):
        response = client.post(
            "/rules/feedback",
            json={"issueId": "deadClicks-abc", "suggestionId": "suggestion-deadClicks-0", "action": "accept"},
        )
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

        response = client.post(
            "/rules/feedback",
            json={"issueId": "deadClicks-abc", "suggestionId": "suggestion-deadClicks-0", "action": "ignore"},
        )
        assert response.status_code == 422


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_responses_report_process_time(client, caplog):
    with caplog.at_level(logging.INFO, logger="ux_analytics.requests"):
        response = client.get("/health")

    assert float(response.headers[PROCESS_TIME_HEADER]) >= 0
    assert any("GET /health -> 200" in message for message in caplog.messages)
