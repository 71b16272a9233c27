"""Report output helpers."""
from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, TextIO

from .metrics import BUCKETS, metric_band
from .models import GeoGridReport, GridResult


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(path: str, encoding: str = "utf-8") -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path) as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_report(out_dir: str, report: GeoGridReport, filename: str = "report.json") -> str:
    ensure_dir(out_dir)
    path = os.path.join(out_dir, filename)
    write_json_object(path, report.to_dict())
    return path


def _rank_label(result: GridResult) -> str:
    return f"#{result.rank}" if result.rank is not None else "unranked"


def _point_line(result: GridResult) -> str:
    p = result.point
    line = f"  point {p.id} ({p.lat:.5f}, {p.lng:.5f}): {_rank_label(result)}"
    if result.competitors:
        line += f" behind {', '.join(result.competitors)}"
    return line


def render_summary(report: GeoGridReport) -> List[str]:
    m = report.metrics
    total = len(report.results)
    completed = sum(1 for r in report.results if r.ok)
    lines: List[str] = [
        f"Keyword: {report.keyword}",
        f"Business: {report.business_name}",
        f"Grid: {report.shape} {report.grid_size}x{report.grid_size}, "
        f"{report.radius_km:g} km around ({report.center_lat:.5f}, {report.center_lng:.5f})",
        f"Completion: {completed}/{total} ({report.completion_rate * 100:.0f}%)"
        + (" [cancelled]" if report.cancelled else ""),
    ]

    if m.afpr_defined:
        lines.append(f"AFPR: {m.afpr:.2f} ({metric_band(m.afpr, 'rank')})")
    else:
        lines.append("AFPR: n/a (no first-page ranks)")
    if m.grm_defined:
        lines.append(f"GRM: {m.grm:.2f} ({metric_band(m.grm, 'rank')})")
    else:
        lines.append("GRM: n/a (not ranked anywhere)")
    lines.append(f"TSS: {m.tss:.1f}% ({metric_band(m.tss, 'share')})")
    lines.append(f"Visibility: {m.visibility_score:.1f} ({metric_band(m.visibility_score, 'share')})")
    lines.append(
        "Distribution: " + ", ".join(f"{bucket}: {m.distribution.get(bucket, 0)}%" for bucket in BUCKETS)
    )

    if m.top_points:
        lines.append("Top points:")
        lines.extend(_point_line(r) for r in m.top_points)
    if m.weak_points:
        lines.append("Weak points:")
        lines.extend(_point_line(r) for r in m.weak_points)

    errors: Dict[str, int] = {}
    for r in report.results:
        if r.error is not None:
            errors[r.error.value] = errors.get(r.error.value, 0) + 1
    if errors:
        lines.append("Errors: " + ", ".join(f"{k}={v}" for k, v in sorted(errors.items())))
    if report.request_counts:
        lines.append("Requests: " + ", ".join(f"{k}={v}" for k, v in report.request_counts.items()))
    return lines


def format_summary(report: GeoGridReport, sep: Optional[str] = None) -> str:
    return (sep or "\n").join(render_summary(report))
