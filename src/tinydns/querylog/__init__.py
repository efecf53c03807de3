from .base import QueryObserver, ResolutionEvent, notify_observer
from .json_logging import JsonQueryLog

__all__ = ["JsonQueryLog", "QueryObserver", "ResolutionEvent", "notify_observer"]
