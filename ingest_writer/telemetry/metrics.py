from __future__ import annotations

import math
import threading
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple


def _percentile(sorted_values: List[float], p: float) -> float:
    if not sorted_values:
        return float("nan")
    k = (len(sorted_values) - 1) * (p / 100.0)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    d0 = sorted_values[f] * (c - k)
    d1 = sorted_values[c] * (k - f)
    return d0 + d1


def pct_summary(values: Iterable[float]) -> Dict[str, float]:
    vals = sorted(v for v in values if v is not None)
    if not vals:
        return {"count": 0, "min": float("nan"), "p50": float("nan"),
                "p95": float("nan"), "p99": float("nan"), "max": float("nan")}
    return {
        "count": len(vals),
        "min": vals[0],
        "p50": _percentile(vals, 50),
        "p95": _percentile(vals, 95),
        "p99": _percentile(vals, 99),
        "max": vals[-1],
    }


@dataclass
class Metrics:
    lock: threading.Lock = field(default_factory=threading.Lock)

    batches_committed: int = 0
    batches_failed: int = 0
    batches_discarded: int = 0

    rows_committed: int = 0
    rows_failed: int = 0

    # stage -> list of durations
    stage_durations: Dict[str, List[float]] = field(
        default_factory=lambda: defaultdict(list))
    # rows/s for non-empty commits
    commit_rows_per_sec: List[float] = field(default_factory=list)

    # error classification
    errors_by_type: Counter[str] = field(default_factory=Counter)

    def inc(self, attr: str, value: int = 1) -> None:
        with self.lock:
            setattr(self, attr, getattr(self, attr) + value)

    def observe_stage(self, stage: str, duration: float) -> None:
        with self.lock:
            self.stage_durations[stage].append(duration)

    def observe_commit(self, rows: int, duration: float) -> None:
        with self.lock:
            self.batches_committed += 1
            self.rows_committed += rows
            self.stage_durations["batch_commit"].append(duration)
            if rows and duration > 0:
                self.commit_rows_per_sec.append(rows / duration)

    def observe_failure(self, rows: int, error_type: str | None) -> None:
        with self.lock:
            self.batches_failed += 1
            self.rows_failed += rows
            if error_type:
                self.errors_by_type[error_type] += 1

    def record_error(self, exc: BaseException) -> None:
        with self.lock:
            self.errors_by_type[type(exc).__name__] += 1

    def summary(self) -> Tuple[str, Dict]:
        with self.lock:
            stage_stats = {
                stage: pct_summary(durations)
                for stage, durations in self.stage_durations.items()
            }
            rps_stats = pct_summary(self.commit_rows_per_sec)
            res = {
                "batches_committed": self.batches_committed,
                "batches_failed": self.batches_failed,
                "batches_discarded": self.batches_discarded,
                "rows_committed": self.rows_committed,
                "rows_failed": self.rows_failed,
                "stage_stats": stage_stats,
                "commit_rows_per_sec": rps_stats,
                "errors_by_type": dict(self.errors_by_type),
            }

        lines = []
        lines.append("===== WRITER SUMMARY =====")
        lines.append(f"Batches    : ok={res['batches_committed']}  "
                     f"fail={res['batches_failed']}  discarded={res['batches_discarded']}")
        lines.append(f"Rows       : committed={res['rows_committed']:,}  "
                     f"failed={res['rows_failed']:,}")
        lines.append("")
        lines.append("Per-stage timings (seconds):")
        for stage, stats in stage_stats.items():
            lines.append(
                f"  {stage:20s} "
                f"count={stats['count']:6d}  "
                f"min={stats['min']:.4f}  p50={stats['p50']:.4f}  "
                f"p95={stats['p95']:.4f}  p99={stats['p99']:.4f}  max={stats['max']:.4f}"
            )
        if rps_stats["count"]:
            lines.append("")
            lines.append("Commit rows/sec:")
            lines.append(
                f"  p50={rps_stats['p50']:.2f}  "
                f"p95={rps_stats['p95']:.2f}  "
                f"p99={rps_stats['p99']:.2f}  "
                f"max={rps_stats['max']:.2f}"
            )
        if res["errors_by_type"]:
            lines.append("")
            lines.append("Errors by type:")
            for k, v in sorted(res["errors_by_type"].items(), key=lambda kv: kv[1], reverse=True):
                lines.append(f"  {k}: {v}")

        return "\n".join(lines), res

    def stage_percentile(self, stage: str, p: float) -> float:
        with self.lock:
            vals = self.stage_durations.get(stage, [])
            if not vals:
                return float("nan")
            sorted_vals = sorted(vals)
            return _percentile(sorted_vals, p)
