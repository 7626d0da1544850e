"""Metrics tracking for sync progress."""
import time
import logging
from collections import defaultdict
from typing import Dict

logger = logging.getLogger(__name__)


class Metrics:
    """Track page and record counters for one sync run."""

    def __init__(self, total_pages: int = 0):
        self.total_pages = total_pages
        self.start_time = time.time()
        self.counters: Dict[str, int] = defaultdict(int)

    def increment(self, key: str, amount: int = 1) -> None:
        """Increment a counter."""
        self.counters[key] = self.counters.get(key, 0) + amount

    def get(self, key: str) -> int:
        return self.counters.get(key, 0)

    def pages_done(self) -> int:
        return self.get("pages_ok") + self.get("pages_failed")

    def get_rate(self) -> float:
        """Get current page rate (pages/second)."""
        elapsed = time.time() - self.start_time
        if elapsed > 0:
            return self.pages_done() / elapsed
        return 0.0

    def report(self) -> None:
        """Log current metrics."""
        done = self.pages_done()
        logger.info(
            f"Progress: {done}/{self.total_pages} pages "
            f"({done * 100 // self.total_pages if self.total_pages > 0 else 0}%) | "
            f"Rate: {self.get_rate():.2f} pages/s | "
            f"OK: {self.get('pages_ok')} | "
            f"Failed: {self.get('pages_failed')} | "
            f"Remediated: {self.get('pages_remediated')} | "
            f"Records: {self.get('records')}"
        )

    def get_summary(self) -> Dict:
        """Get summary statistics."""
        return {
            "total_pages": self.total_pages,
            "pages_ok": self.get("pages_ok"),
            "pages_failed": self.get("pages_failed"),
            "pages_remediated": self.get("pages_remediated"),
            "pages_unresolved": self.get("pages_unresolved"),
            "records": self.get("records"),
            "inserted": self.get("inserted"),
            "updated": self.get("updated"),
            "unchanged": self.get("unchanged"),
            "rate": self.get_rate(),
            "elapsed_seconds": time.time() - self.start_time,
        }
