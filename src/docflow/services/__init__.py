from .dispatcher import JobDispatcher
from .export_service import SessionExportService
from .operation_tracker import OperationTracker
from .post_processing import PostProcessingService, PostProcessSummary
from .rate_limiter import BackoffTracker, TokenBucketRateLimiter
from .session_lifecycle import SessionLifecycleManager
from .session_service import SessionService, StartupReport

__all__ = [
    "BackoffTracker",
    "JobDispatcher",
    "OperationTracker",
    "PostProcessSummary",
    "PostProcessingService",
    "SessionExportService",
    "SessionLifecycleManager",
    "SessionService",
    "StartupReport",
    "TokenBucketRateLimiter",
]
