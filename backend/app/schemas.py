from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import List, Dict, Any, Literal, Optional, Union

Severity = Literal["low", "medium", "high"]


class EventCreate(BaseModel):
    session_id: str = Field(..., min_length=1)
    page_url: str = Field(..., min_length=1)
    event_type: Literal["click", "scroll"]
    element_selector: Optional[str] = None
    click_x: Optional[int] = None
    click_y: Optional[int] = None
    scroll_depth: Optional[float] = Field(None, ge=0, le=100)
    timestamp: int = Field(..., description="Client epoch milliseconds")

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @model_validator(mode="after")
    def check_event_shape(self):
        if self.event_type == "click" and self.scroll_depth is not None:
            raise ValueError("click events cannot carry scrollDepth")
        if self.event_type == "scroll" and (
            self.element_selector is not None or self.click_x is not None or self.click_y is not None
        ):
            raise ValueError("scroll events cannot carry elementSelector, clickX or clickY")
        return self


class EventsIngestRequest(BaseModel):
    events: List[EventCreate] = Field(..., min_length=1)


class EventsIngestResponse(BaseModel):
    status: str
    events_count: int


class Suggestion(BaseModel):
    id: str
    text: str
    priority: Severity


class Issue(BaseModel):
    id: str
    rule_id: str
    rule_name: str
    severity: Severity
    element_selector: Optional[str] = None
    page_url: str
    description: str
    metrics: Dict[str, Union[int, float]]
    suggestions: List[Suggestion] = Field(default_factory=list)
    detected_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class IssuesResponse(BaseModel):
    issues: List[Issue]


class RuleConfigItem(BaseModel):
    id: str
    name: str
    description: str
    severity: Severity
    thresholds: Dict[str, Any]


class RuleConfigResponse(BaseModel):
    rules: List[RuleConfigItem]


class ThresholdUpdateRequest(BaseModel):
    value: Any


class ThresholdUpdateResponse(BaseModel):
    updated: bool


class FeedbackRequest(BaseModel):
    issue_id: str = Field(..., min_length=1)
    suggestion_id: str = Field(..., min_length=1)
    action: Literal["accept", "reject"]

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class StatusResponse(BaseModel):
    status: str
