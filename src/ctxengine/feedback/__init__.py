"""Usage feedback: learn which offered files actually matter."""

from ctxengine.feedback.models import FileUsage, FileUsefulness, UsageEvent, UsageReport
from ctxengine.feedback.store import UsageStore
from ctxengine.feedback.tracker import UsageFeedback, normalize_task

__all__ = [
    "FileUsage",
    "FileUsefulness",
    "UsageEvent",
    "UsageFeedback",
    "UsageReport",
    "UsageStore",
    "normalize_task",
]
