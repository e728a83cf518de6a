"""
Observability collaborator passed into ledger and aggregation calls.
"""

import logging
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class Observer:
    """No-op observer. Subclasses override what they record."""

    def event(self, name: str, **fields) -> None:
        pass

    def failure(self, name: str, error: BaseException, **fields) -> None:
        pass


class LoggingObserver(Observer):
    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def event(self, name: str, **fields) -> None:
        self.log.info(name, extra=fields)

    def failure(self, name: str, error: BaseException, **fields) -> None:
        self.log.warning(name, extra={**fields, "error": str(error), "errorType": type(error).__name__})


class RecordingObserver(Observer):
    """Keeps events in memory; used by tests and local debugging."""

    def __init__(self):
        self.events: List[Tuple[str, dict]] = []
        self.failures: List[Tuple[str, BaseException, dict]] = []

    def event(self, name: str, **fields) -> None:
        self.events.append((name, fields))

    def failure(self, name: str, error: BaseException, **fields) -> None:
        self.failures.append((name, error, fields))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


default_observer = LoggingObserver()
