class AnalyticsError(Exception):
    """Base class for failures raised by the analytics core."""


class StoreWriteError(AnalyticsError):
    """A batch insert failed; none of its events were persisted."""


class StoreReadError(AnalyticsError):
    """A named aggregate read failed."""


class MetricsError(AnalyticsError):
    """The metrics snapshot could not be assembled."""


class RuleAnalysisError(AnalyticsError):
    """At least one detector failed, so the whole analysis was discarded."""


class ConfigUpdateRejected(AnalyticsError):
    """A threshold update named an unknown rule or key, or had the wrong type."""
