"""Backend reporter interface shared by every result destination."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from test_types import TestResult


class BaseReporter(ABC):
    """Abstract base class for result backends.

    A backend owns its result buffer. Callers read it through
    ``get_test_results`` (a copy) and only ever replace it wholesale with
    ``set_test_results``. Every operation raises on failure; deciding what to
    do about it is the caller's job.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("relay_reporter")
        self.results: List[TestResult] = []

    def get_test_results(self) -> List[TestResult]:
        return list(self.results)

    def set_test_results(self, results: Iterable[TestResult]) -> None:
        self.results = list(results)

    @abstractmethod
    async def start_test_run(self) -> None:
        """Create or attach to the run results will be reported into."""
        pass

    async def add_test_result(self, result: TestResult) -> None:
        """Buffer one finished result."""
        self.results.append(result)

    @abstractmethod
    async def send_results(self) -> None:
        """Deliver buffered results that were not delivered yet."""
        pass

    @abstractmethod
    async def publish(self) -> None:
        """Deliver everything and finish the run."""
        pass

    @abstractmethod
    async def complete(self) -> None:
        """Mark the run as finished."""
        pass

    async def aclose(self) -> None:
        """Release resources held by the backend."""
        pass
