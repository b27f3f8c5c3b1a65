import re
from bisect import bisect_left, bisect_right
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Sequence

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from shared.models import Event, utcnow
from backend.app import schemas

_TAG_NAME = re.compile(r"[A-Za-z][A-Za-z0-9-]*")


def _as_dicts(rows) -> List[Dict]:
    return [dict(row._mapping) for row in rows]


def insert_events(db: Session, events: Sequence[schemas.EventCreate]) -> int:
    try:
        for event in events:
            db.add(Event(
                session_id=event.session_id,
                page_url=event.page_url,
                event_type=event.event_type,
                element_selector=event.element_selector,
                click_x=event.click_x,
                click_y=event.click_y,
                scroll_depth=event.scroll_depth,
                timestamp=event.timestamp,
            ))
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(events)


def count_events(db: Session):
    return _as_dicts(db.query(func.count(Event.id).label("count")).all())


def count_sessions(db: Session):
    return _as_dicts(db.query(func.count(func.distinct(Event.session_id)).label("count")).all())


def get_top_clicked_elements(db: Session, limit: int = 10):
    clicks = func.count(Event.id).label("clicks")
    results = db.query(
        Event.element_selector,
        clicks
    ).filter(
        Event.event_type == "click",
        Event.element_selector.isnot(None)
    ).group_by(
        Event.element_selector
    ).order_by(
        clicks.desc()
    ).limit(limit).all()

    return _as_dicts(results)


def get_average_scroll_depth(db: Session):
    return _as_dicts(db.query(func.avg(Event.scroll_depth).label("avg_depth")).filter(
        Event.event_type == "scroll",
        Event.scroll_depth.isnot(None)
    ).all())


def get_recent_activity(db: Session, window_minutes: int = 60, limit: int = 5):
    cutoff = utcnow() - timedelta(minutes=window_minutes)
    events_count = func.count(Event.id).label("events_count")
    results = db.query(
        Event.page_url,
        events_count
    ).filter(
        Event.ingested_at > cutoff
    ).group_by(
        Event.page_url
    ).order_by(
        events_count.desc()
    ).limit(limit).all()

    return _as_dicts(results)


def _page_sessions_subquery(db: Session):
    return db.query(
        Event.page_url.label("page_url"),
        func.count(func.distinct(Event.session_id)).label("page_sessions")
    ).group_by(Event.page_url).subquery()


def get_page_sessions(db: Session):
    page_sessions = _page_sessions_subquery(db)
    return _as_dicts(db.query(page_sessions.c.page_url, page_sessions.c.page_sessions).all())


def get_element_click_stats(db: Session):
    """Click and clicking-session counts per (page, selector), with the page's session total."""
    page_sessions = _page_sessions_subquery(db)
    results = db.query(
        Event.page_url,
        Event.element_selector,
        func.count(Event.id).label("clicks"),
        func.count(func.distinct(Event.session_id)).label("unique_sessions"),
        page_sessions.c.page_sessions
    ).join(
        page_sessions, page_sessions.c.page_url == Event.page_url
    ).filter(
        Event.event_type == "click",
        Event.element_selector.isnot(None),
        Event.element_selector != ""
    ).group_by(
        Event.page_url, Event.element_selector, page_sessions.c.page_sessions
    ).all()

    return _as_dicts(results)


def get_page_scroll_stats(db: Session):
    results = db.query(
        Event.page_url,
        func.count(func.distinct(Event.session_id)).label("sessions"),
        func.avg(Event.scroll_depth).label("avg_scroll_depth"),
        func.max(Event.scroll_depth).label("max_scroll_depth")
    ).filter(
        Event.event_type == "scroll",
        Event.scroll_depth.isnot(None)
    ).group_by(
        Event.page_url
    ).all()

    return _as_dicts(results)


def get_rage_click_sessions(db: Session, time_window: int, clicks_in_window: int):
    """
    Count rapid-click anchors per (page, session, selector).

    An anchor is a click at time t whose window [t, t + time_window] holds at
    least clicks_in_window clicks on the same selector, the anchor included.
    Anchors sharing a timestamp count once.
    """
    rows = db.query(
        Event.page_url,
        Event.session_id,
        Event.element_selector,
        Event.timestamp
    ).filter(
        Event.event_type == "click",
        Event.element_selector.isnot(None)
    ).order_by(
        Event.page_url, Event.session_id, Event.element_selector, Event.timestamp
    ).all()

    groups = defaultdict(list)
    for row in rows:
        groups[(row.page_url, row.session_id, row.element_selector)].append(row.timestamp)

    results = []
    for (page_url, session_id, selector), timestamps in groups.items():
        rapid_clicks = 0
        for anchor in sorted(set(timestamps)):
            in_window = bisect_right(timestamps, anchor + time_window) - bisect_left(timestamps, anchor)
            if in_window >= clicks_in_window:
                rapid_clicks += 1
        if rapid_clicks:
            results.append({
                "page_url": page_url,
                "session_id": session_id,
                "element_selector": selector,
                "rapid_clicks": rapid_clicks,
            })

    return results


def leading_tag(selector: str):
    match = _TAG_NAME.match(selector)
    return match.group(0) if match else None


def get_dead_click_candidates(db: Session, tags: Sequence[str]):
    if not tags:
        return []

    # LIKE is case-insensitive in SQLite, so it only narrows the scan
    results = db.query(
        Event.page_url,
        Event.element_selector,
        func.count(Event.id).label("clicks"),
        func.count(func.distinct(Event.session_id)).label("unique_sessions")
    ).filter(
        Event.event_type == "click",
        Event.element_selector.isnot(None),
        _any_prefix(tags)
    ).group_by(
        Event.page_url, Event.element_selector
    ).all()

    allowed = set(tags)
    return [row for row in _as_dicts(results) if leading_tag(row["element_selector"]) in allowed]


def _any_prefix(tags: Sequence[str]):
    return or_(*[Event.element_selector.like(f"{tag}%") for tag in tags])


def get_page_exit_stats(db: Session, max_interaction_time: int):
    durations = db.query(
        Event.page_url.label("page_url"),
        Event.session_id.label("session_id"),
        (func.max(Event.timestamp) - func.min(Event.timestamp)).label("duration")
    ).group_by(
        Event.page_url, Event.session_id
    ).subquery()

    results = db.query(
        durations.c.page_url,
        func.count().label("sessions"),
        func.sum(case((durations.c.duration <= max_interaction_time, 1), else_=0)).label("quick_exit_sessions")
    ).group_by(
        durations.c.page_url
    ).all()

    return _as_dicts(results)
