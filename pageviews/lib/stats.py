"""
Run statistics for the hourly top-pages job.

One JSON document per run: overwritten at ``<dir>/top_pages.json`` and kept
under ``<dir>/history/top_pages_<run_id>.json``.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


def get_run_id() -> str:
    """Generate a unique run ID based on timestamp."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


class RunStats:
    """
    Collects per-hour outcomes for one job run.

    Usage:
        stats = RunStats("top_pages", Path("stats"))
        stats.hour_written("2020-01-01T00:00", rows=1234)
        stats.finalize().save()
    """

    def __init__(
        self,
        stage_name: str,
        stats_dir: Optional[Path] = None,
        run_id: Optional[str] = None
    ):
        self.stage_name = stage_name
        self.stats_dir = Path(stats_dir) if stats_dir else None
        self.run_id = run_id or get_run_id()
        self.start_time = datetime.now()
        self.data: Dict[str, Any] = {
            "stage": stage_name,
            "run_id": self.run_id,
            "start_time": self.start_time.isoformat(),
            "end_time": None,
            "duration_seconds": None,
            "status": "running",
            "config": {},
            "inputs": {},
            "hours": {},
            "totals": {
                "hours_written": 0,
                "hours_skipped": 0,
                "download_failures": 0,
                "cleanup_failures": 0,
                "rows_written": 0,
            },
            "errors": []
        }

    def set_config(self, **kwargs) -> "RunStats":
        self.data["config"].update(kwargs)
        return self

    def set_inputs(self, **kwargs) -> "RunStats":
        self.data["inputs"].update(kwargs)
        return self

    def _bump(self, key: str, amount: int = 1) -> None:
        self.data["totals"][key] += amount

    def hour_written(self, hour: str, rows: int, output: Optional[str] = None) -> "RunStats":
        self.data["hours"][hour] = {"status": "written", "rows": rows, "output": output}
        self._bump("hours_written")
        self._bump("rows_written", rows)
        return self

    def hour_skipped(self, hour: str, reason: str) -> "RunStats":
        self.data["hours"][hour] = {"status": "skipped", "reason": reason}
        self._bump("hours_skipped")
        return self

    def download_failed(self, hour: str) -> "RunStats":
        self._bump("download_failures")
        return self.add_error("download failed", context=hour)

    def cleanup_failed(self, hour: str) -> "RunStats":
        self._bump("cleanup_failures")
        return self.add_error("temp file cleanup failed", context=hour)

    def add_error(self, error: str, context: Optional[str] = None) -> "RunStats":
        self.data["errors"].append({
            "timestamp": datetime.now().isoformat(),
            "error": error,
            "context": context
        })
        return self

    def finalize(self, status: str = "completed") -> "RunStats":
        """Finalize the stats with end time and duration."""
        end_time = datetime.now()
        self.data["end_time"] = end_time.isoformat()
        self.data["duration_seconds"] = round(
            (end_time - self.start_time).total_seconds(), 2
        )
        self.data["status"] = status
        return self

    def get_stats_path(self) -> Path:
        return self.stats_dir / f"{self.stage_name}.json"

    def get_history_path(self) -> Path:
        history_dir = self.stats_dir / "history"
        history_dir.mkdir(parents=True, exist_ok=True)
        return history_dir / f"{self.stage_name}_{self.run_id}.json"

    def save(self) -> Optional[Path]:
        """Write current and history copies. No-op without a stats dir."""
        if self.stats_dir is None:
            return None
        self.stats_dir.mkdir(parents=True, exist_ok=True)

        stats_path = self.get_stats_path()
        with open(stats_path, 'w', encoding='utf-8') as f:
            json.dump(self.data, f, indent=2, ensure_ascii=False)

        with open(self.get_history_path(), 'w', encoding='utf-8') as f:
            json.dump(self.data, f, indent=2, ensure_ascii=False)

        return stats_path

    @property
    def totals(self) -> Dict[str, int]:
        return dict(self.data["totals"])

    def to_dict(self) -> Dict[str, Any]:
        return self.data.copy()
