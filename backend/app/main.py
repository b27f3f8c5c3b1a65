import asyncio
import json
import logging
import time
from typing import AsyncIterator, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from backend.app import schemas
from backend.app.aggregator import MetricsAggregator
from backend.app.errors import MetricsError, RuleAnalysisError, StoreWriteError
from backend.app.middleware import RequestLoggingMiddleware
from backend.app.notifier import ChangeNotifier, Subscription
from backend.app.rules import RuleConfiguration, RuleEngine
from backend.app.store import EventStore
from shared.config import settings
from shared.database import engine

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="UX Issue Analytics API",
    description="API for ingesting interaction events and detecting UX issues",
    version="1.0.0",
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type"],
)

event_store = EventStore(engine)
change_notifier = ChangeNotifier(settings.NOTIFIER_QUEUE_SIZE)
rule_engine = RuleEngine(event_store, RuleConfiguration.default())
metrics_aggregator = MetricsAggregator(
    event_store,
    top_elements_limit=settings.TOP_ELEMENTS_LIMIT,
    recent_activity_limit=settings.RECENT_ACTIVITY_LIMIT,
    recent_activity_minutes=settings.RECENT_ACTIVITY_MINUTES,
)


def get_store() -> EventStore:
    return event_store


def get_notifier() -> ChangeNotifier:
    return change_notifier


def get_rule_engine() -> RuleEngine:
    return rule_engine


def get_aggregator() -> MetricsAggregator:
    return metrics_aggregator


@app.on_event("startup")
async def startup_event():
    event_store.init_schema()


@app.post("/events", response_model=schemas.EventsIngestResponse)
async def ingest_events(
        request: schemas.EventsIngestRequest,
        store: EventStore = Depends(get_store),
        notifier: ChangeNotifier = Depends(get_notifier)
):
    """
    Persist a batch of click/scroll events.

    The batch is stored atomically; listeners on /metrics/stream are told
    that new data is available once it commits.
    """
    if len(request.events) > settings.MAX_BATCH_EVENTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many events: {len(request.events)}. Maximum allowed is {settings.MAX_BATCH_EVENTS} events per request."
        )

    try:
        inserted = await store.insert_batch(request.events)
    except StoreWriteError as exc:
        logger.error(f"Insert error: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error")

    notifier.publish({"type": "metrics_update"})
    return schemas.EventsIngestResponse(status="ok", events_count=inserted)


@app.get("/metrics")
async def get_metrics(aggregator: MetricsAggregator = Depends(get_aggregator)):
    """Summary snapshot: totals, top clicked elements, scroll depth, recent activity."""
    try:
        return await aggregator.snapshot()
    except MetricsError as exc:
        logger.error(f"Metrics error: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error")


async def sse_messages(subscription: Subscription, keepalive_seconds: Optional[float] = None) -> AsyncIterator[str]:
    yield f"event: ping\ndata: {int(time.time() * 1000)}\n\n"
    while True:
        try:
            message = await asyncio.wait_for(subscription.get(), timeout=keepalive_seconds)
        except asyncio.TimeoutError:
            # idle streams still yield so the caller can check for a closed client
            yield ": keepalive\n\n"
            continue
        yield f"data: {json.dumps(message)}\n\n"


@app.get("/metrics/stream")
async def stream_metrics(request: Request, notifier: ChangeNotifier = Depends(get_notifier)):
    """Server-sent events announcing that fresh data can be fetched."""
    subscription = notifier.subscribe()

    async def event_stream():
        try:
            async for chunk in sse_messages(subscription, settings.SSE_KEEPALIVE_SECONDS):
                if await request.is_disconnected():
                    break
                yield chunk
        finally:
            notifier.unsubscribe(subscription)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/rules/config", response_model=schemas.RuleConfigResponse)
def get_rules_config(rules: RuleEngine = Depends(get_rule_engine)):
    return schemas.RuleConfigResponse(rules=rules.get_rule_configuration())


@app.put("/rules/config/{rule_id}/thresholds/{key}", response_model=schemas.ThresholdUpdateResponse)
def update_rule_threshold(
        rule_id: str,
        key: str,
        body: schemas.ThresholdUpdateRequest,
        rules: RuleEngine = Depends(get_rule_engine)
):
    """
    Change one detector threshold at runtime.

    Unknown rules or keys, and values of the wrong type, leave the
    configuration untouched and return 400.
    """
    if not rules.update_threshold(rule_id, key, body.value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"No update performed for {rule_id}.{key}"
        )
    return schemas.ThresholdUpdateResponse(updated=True)


@app.get("/rules/issues", response_model=schemas.IssuesResponse)
async def get_rule_issues(rules: RuleEngine = Depends(get_rule_engine)):
    """Recompute UX issues from the raw event log."""
    try:
        issues = await rules.analyze_all()
    except RuleAnalysisError as exc:
        logger.error(f"Rules issues error: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server error")
    return schemas.IssuesResponse(issues=issues)


@app.post("/rules/feedback", response_model=schemas.StatusResponse)
def post_rule_feedback(feedback: schemas.FeedbackRequest):
    # Feedback is only logged; it does not influence later analysis.
    logger.info(
        f"[RULES FEEDBACK] issue={feedback.issue_id} "
        f"suggestion={feedback.suggestion_id} action={feedback.action}"
    )
    return schemas.StatusResponse(status="ok")


@app.get("/")
def root():
    return {
        "message": "UX Issue Analytics API",
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    return {"status": "ok"}
