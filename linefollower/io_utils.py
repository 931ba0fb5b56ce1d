from __future__ import annotations

"""Utility functions for reading and writing simulation data.

This module centralises the I/O helpers used by the command line tools.  It
converts tracks to and from the closed-path description shared with external
editors, reads ``key,value`` parameter files and writes tabular results with
:mod:`pandas`.

A track description is an ordered list of records, one per segment::

    {"type": "line", "p0": [x, y], "p1": [x, y]}
    {"type": "arc", "center": [x, y], "radius": r, "theta0": a, "theta1": b}

The same records can be stored as JSON or flattened to a CSV file with the
columns listed in :data:`TRACK_CSV_COLUMNS`.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

import csv
import json
import math
import pandas as pd

try:  # pragma: no cover - import shim
    from .geometry import ArcSegment, ClosedTrack, LineSegment, Segment, TrackError
except ImportError:  # pragma: no cover - direct execution support
    from geometry import ArcSegment, ClosedTrack, LineSegment, Segment, TrackError


class TrackFormatError(TrackError):
    """Raised when a track description cannot be parsed."""


TRACK_CSV_COLUMNS = ["type", "x0", "y0", "x1", "y1", "cx", "cy", "radius", "theta0", "theta1"]


def _pair(record: Mapping[str, Any], key: str, index: int) -> tuple[float, float]:
    try:
        x, y = record[key]
        return float(x), float(y)
    except KeyError:
        raise TrackFormatError(f"segment {index}: missing '{key}'") from None
    except (TypeError, ValueError):
        raise TrackFormatError(f"segment {index}: '{key}' must be an (x, y) pair") from None


def _scalar(record: Mapping[str, Any], key: str, index: int) -> float:
    try:
        value = float(record[key])
    except KeyError:
        raise TrackFormatError(f"segment {index}: missing '{key}'") from None
    except (TypeError, ValueError):
        raise TrackFormatError(f"segment {index}: '{key}' must be a number") from None
    if not math.isfinite(value):
        raise TrackFormatError(f"segment {index}: '{key}' must be finite")
    return value


def segment_from_record(record: Mapping[str, Any], index: int = 0) -> Segment:
    """Build a single segment from its description record."""
    if not isinstance(record, Mapping):
        raise TrackFormatError(f"segment {index}: expected a mapping")
    kind = str(record.get("type", "")).lower()
    if kind == "line":
        p0 = _pair(record, "p0", index)
        p1 = _pair(record, "p1", index)
        if not all(map(math.isfinite, p0 + p1)):
            raise TrackFormatError(f"segment {index}: endpoints must be finite")
        return LineSegment(p0, p1)
    if kind == "arc":
        center = _pair(record, "center", index)
        if not all(map(math.isfinite, center)):
            raise TrackFormatError(f"segment {index}: center must be finite")
        return ArcSegment(
            center,
            _scalar(record, "radius", index),
            _scalar(record, "theta0", index),
            _scalar(record, "theta1", index),
        )
    raise TrackFormatError(f"segment {index}: unknown segment type '{record.get('type')}'")


def track_from_records(records: Iterable[Mapping[str, Any]]) -> ClosedTrack:
    """Deserialize and validate a closed track.

    Raises
    ------
    TrackError
        If a record is malformed, a segment is degenerate or the segments do
        not form a closed loop.
    """
    return ClosedTrack(segment_from_record(r, i) for i, r in enumerate(records))


def track_to_records(track: ClosedTrack) -> List[Dict[str, Any]]:
    """Serialize ``track`` into its list of segment records."""
    return [seg.to_record() for seg in track]


def read_track_json(path: str | Path) -> ClosedTrack:
    """Read a track stored as a JSON list of segment records."""
    with Path(path).open() as f:
        records = json.load(f)
    if not isinstance(records, list):
        raise TrackFormatError("a track file must contain a list of segments")
    return track_from_records(records)


def write_track_json(track: ClosedTrack, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        json.dump(track_to_records(track), f, indent=2)


def read_track_csv(path: str | Path) -> ClosedTrack:
    """Read a track stored as one CSV row per segment.

    Line rows use ``x0, y0, x1, y1``; arc rows use ``cx, cy, radius, theta0,
    theta1``.  Unused cells may be left empty.
    """
    df = pd.read_csv(path)
    if "type" not in df.columns:
        raise TrackFormatError("track file missing required column: type")

    records = []
    for row in df.to_dict("records"):
        kind = str(row["type"]).strip().lower()
        if kind == "line":
            records.append(
                {
                    "type": kind,
                    "p0": (row.get("x0"), row.get("y0")),
                    "p1": (row.get("x1"), row.get("y1")),
                }
            )
        else:
            records.append(
                {
                    "type": kind,
                    "center": (row.get("cx"), row.get("cy")),
                    "radius": row.get("radius"),
                    "theta0": row.get("theta0"),
                    "theta1": row.get("theta1"),
                }
            )
    return track_from_records(records)


def write_track_csv(track: ClosedTrack, path: str | Path) -> None:
    rows = []
    for seg in track:
        row: Dict[str, Any] = {"type": seg.kind}
        if isinstance(seg, LineSegment):
            row.update(x0=seg.p0[0], y0=seg.p0[1], x1=seg.p1[0], y1=seg.p1[1])
        else:
            row.update(
                cx=seg.center[0],
                cy=seg.center[1],
                radius=seg.r,
                theta0=seg.theta0,
                theta1=seg.theta1,
            )
        rows.append(row)
    write_csv(pd.DataFrame(rows, columns=TRACK_CSV_COLUMNS), path)


def read_track(path: str | Path) -> ClosedTrack:
    """Read a track from a ``.json`` or ``.csv`` file."""
    path = Path(path)
    if path.suffix.lower() == ".csv":
        return read_track_csv(path)
    return read_track_json(path)


def read_params_csv(path: str | Path) -> Dict[str, float | bool]:
    """Read ``key,value`` parameters from ``path``.

    Values of ``true``/``false`` are interpreted as booleans while other entries
    are parsed as floating point numbers.  Rows whose value is not a number are
    skipped.
    """
    params: Dict[str, float | bool] = {}
    with Path(path).open(newline="") as f:
        reader = csv.reader(f)
        for row in reader:
            if not row or all(cell.strip() == "" for cell in row):
                continue
            key = row[0].strip()
            if key.startswith("#"):
                continue
            try:
                raw_value = row[1].strip()
            except IndexError:
                continue

            value_lower = raw_value.lower()
            if value_lower == "true":
                params[key] = True
            elif value_lower == "false":
                params[key] = False
            else:
                try:
                    params[key] = float(raw_value)
                except ValueError:
                    continue
    return params


def write_csv(data: Mapping[str, Iterable] | pd.DataFrame, file_path: str | Path) -> None:
    """Write ``data`` to ``file_path`` ensuring parent directories exist."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(data, pd.DataFrame):
        data.to_csv(file_path, index=False)
    else:
        pd.DataFrame(data).to_csv(file_path, index=False)
