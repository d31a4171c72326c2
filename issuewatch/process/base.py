"""Abstract base class for per-brand processing jobs."""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from issuewatch.models import Brand


class BaseProcessor(ABC):
    """Base class for batch jobs that run over one brand at a time."""

    def __init__(self, config: dict):
        self.config = config

    @abstractmethod
    def process_brand(
        self, conn: sqlite3.Connection, brand: Brand, now: datetime,
    ) -> Any:
        """Run the job for one brand and return its summary."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Processor name, also used as the run-lock kind."""
        ...
