"""Per-run metrics appended to a JSONL file."""
import time
from pathlib import Path
from typing import Any, Dict

import aiofiles
import orjson

from catalog_sync.config import METRICS_FILE


def metrics_line(run_id: str, status: str, summary: Dict[str, Any]) -> bytes:
    """One JSONL line; floats rounded to milliseconds."""
    payload = {"ts": round(time.time(), 3), "run_id": run_id, "status": status}
    for key, value in summary.items():
        payload[key] = round(value, 3) if isinstance(value, float) else value
    return orjson.dumps(payload) + b"\n"


class MetricsExporter:
    """Appends the summary of a finished or failed run."""

    def __init__(self, run_id: str, metrics_file: Path = METRICS_FILE):
        self.run_id = run_id
        self.metrics_file = metrics_file

    async def export_metrics(self, status: str, summary: Dict[str, Any]) -> None:
        async with aiofiles.open(self.metrics_file, "ab") as f:
            await f.write(metrics_line(self.run_id, status, summary))
