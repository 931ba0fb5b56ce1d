"""Track geometry built from line and arc segments.

This module describes a closed track as an ordered loop of primitive
segments and answers the queries needed by the simulation:

``LineSegment`` / ``ArcSegment``
    Primitive curves parameterised by arc length from their first point.  Both
    provide point and tangent lookups, a signed distance and an approximate
    projection of an external point.
``ClosedTrack``
    Validated loop of segments.  Arc-length queries wrap around the loop and
    the signed distance of the track is the segment value with the smallest
    magnitude.

Signed distances are positive on the right-hand side of the direction of
travel and negative on the left-hand side.  For a counter-clockwise arc the
outside of the circle is therefore positive.
"""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Sequence, Tuple, Union
import math

import numpy as np

CLOSURE_TOL = float(np.finfo(float).eps) * 100.0
"""Maximum gap allowed between joined segment endpoints."""


class TrackError(ValueError):
    """Base class for invalid track geometry."""


class DegenerateSegmentError(TrackError):
    """Raised when a segment would have zero length."""


class InvalidTrackError(TrackError):
    """Raised when segments do not form a closed loop."""


def cross(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the z component of the cross product of two planar vectors."""
    return a[0] * b[1] - a[1] * b[0]


def _point(p: Iterable[float]) -> Tuple[float, float]:
    x, y = p
    return float(x), float(y)


@dataclass(frozen=True)
class LineSegment:
    """Straight segment travelled from ``p0`` to ``p1``."""

    p0: Tuple[float, float]
    p1: Tuple[float, float]
    kind: str = field(default="line", init=False)
    length: float = field(init=False, repr=False)
    direction: Tuple[float, float] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        p0 = _point(self.p0)
        p1 = _point(self.p1)
        length = math.hypot(p1[0] - p0[0], p1[1] - p0[1])
        if length == 0.0:
            raise DegenerateSegmentError("the line segment must have a non-zero length")
        object.__setattr__(self, "p0", p0)
        object.__setattr__(self, "p1", p1)
        object.__setattr__(self, "length", length)
        object.__setattr__(
            self, "direction", ((p1[0] - p0[0]) / length, (p1[1] - p0[1]) / length)
        )

    def first_point(self) -> np.ndarray:
        return np.array(self.p0)

    def last_point(self) -> np.ndarray:
        return self.point_at(self.length)

    def point_at(self, d: float) -> np.ndarray:
        """Point reached after travelling ``d`` from ``p0``.

        ``d`` is expected to lie in ``[0, length]``.
        """
        vx, vy = self.direction
        return np.array([self.p0[0] + vx * d, self.p0[1] + vy * d])

    def tangent_at(self, d: float) -> np.ndarray:
        return np.array(self.direction)

    def within_bounds(self, p: Sequence[float]) -> bool:
        """Whether ``p`` projects onto the segment rather than its extension."""
        t = self.projection_distance(p)
        return 0.0 <= t <= self.length

    def signed_distance(self, p: Sequence[float]) -> float:
        """Signed distance from ``p`` to the segment.

        The perpendicular offset from the supporting line is used when ``p``
        projects inside the segment.  Otherwise the magnitude is the distance
        to the nearer endpoint, keeping the sign of the perpendicular offset.
        """
        u = (p[0] - self.p0[0], p[1] - self.p0[1])
        w = (self.p1[0] - self.p0[0], self.p1[1] - self.p0[1])
        offset = cross(u, w) / self.length
        along = u[0] * self.direction[0] + u[1] * self.direction[1]
        if not 0.0 <= along <= self.length:
            d0 = math.hypot(p[0] - self.p0[0], p[1] - self.p0[1])
            d1 = math.hypot(p[0] - self.p1[0], p[1] - self.p1[1])
            return math.copysign(1.0, offset) * min(d0, d1)
        return offset

    def projection_distance(self, p: Sequence[float]) -> float:
        return (p[0] - self.p0[0]) * self.direction[0] + (p[1] - self.p0[1]) * self.direction[1]

    def projection_tangent(self, p: Sequence[float]) -> np.ndarray:
        return np.array(self.direction)

    def to_record(self) -> dict:
        return {"type": self.kind, "p0": list(self.p0), "p1": list(self.p1)}


@dataclass(frozen=True)
class ArcSegment:
    """Circular arc around ``center`` swept from ``theta0`` to ``theta1``.

    The sweep direction is counter-clockwise when ``theta1 > theta0`` and
    clockwise otherwise.  Angles are in radians.
    """

    center: Tuple[float, float]
    r: float
    theta0: float
    theta1: float
    kind: str = field(default="arc", init=False)
    counterclockwise: bool = field(init=False, repr=False)
    length: float = field(init=False, repr=False)
    v0: Tuple[float, float] = field(init=False, repr=False)
    v1: Tuple[float, float] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        theta0 = float(self.theta0)
        theta1 = float(self.theta1)
        r = float(self.r)
        if theta1 == theta0:
            raise DegenerateSegmentError("the arc segment must have a non-zero sweep")
        if not r > 0.0:
            raise DegenerateSegmentError("the arc segment must have a positive radius")
        object.__setattr__(self, "center", _point(self.center))
        object.__setattr__(self, "r", r)
        object.__setattr__(self, "theta0", theta0)
        object.__setattr__(self, "theta1", theta1)
        object.__setattr__(self, "counterclockwise", theta1 - theta0 > 0.0)
        object.__setattr__(self, "length", r * abs(theta1 - theta0))
        object.__setattr__(self, "v0", (math.cos(theta0), math.sin(theta0)))
        object.__setattr__(self, "v1", (math.cos(theta1), math.sin(theta1)))

    def _angle_at(self, d: float) -> float:
        if self.counterclockwise:
            return self.theta0 + d / self.r
        return self.theta0 - d / self.r

    def first_point(self) -> np.ndarray:
        cx, cy = self.center
        return np.array([cx + self.r * self.v0[0], cy + self.r * self.v0[1]])

    def last_point(self) -> np.ndarray:
        return self.point_at(self.length)

    def point_at(self, d: float) -> np.ndarray:
        a = self._angle_at(d)
        cx, cy = self.center
        return np.array([cx + self.r * math.cos(a), cy + self.r * math.sin(a)])

    def tangent_at(self, d: float) -> np.ndarray:
        a = self._angle_at(d)
        t = np.array([-math.sin(a), math.cos(a)])
        return t if self.counterclockwise else -t

    def _swept_angle(self, p: Sequence[float]) -> float:
        """Angle from the first radius to ``p`` in the arc's sense, in ``[0, 2*pi)``."""
        phi = math.atan2(p[1] - self.center[1], p[0] - self.center[0])
        swept = phi - self.theta0 if self.counterclockwise else self.theta0 - phi
        return swept % (2.0 * math.pi)

    def within_bounds(self, p: Sequence[float]) -> bool:
        """Whether ``p`` lies inside the angular wedge swept by the arc."""
        return self._swept_angle(p) <= abs(self.theta1 - self.theta0)

    def signed_distance(self, p: Sequence[float]) -> float:
        """Signed radial distance, or ``inf`` outside the arc's wedge."""
        if not self.within_bounds(p):
            return math.inf
        dist = math.hypot(p[0] - self.center[0], p[1] - self.center[1]) - self.r
        return dist if self.counterclockwise else -dist

    def projection_distance(self, p: Sequence[float]) -> float:
        """Arc length from the first point to the radius through ``p``.

        The angle is measured in the direction of travel, so points outside
        the wedge map beyond ``length``.
        """
        return self.r * self._swept_angle(p)

    def projection_tangent(self, p: Sequence[float]) -> np.ndarray:
        return self.tangent_at(self.projection_distance(p))

    def to_record(self) -> dict:
        return {
            "type": self.kind,
            "center": list(self.center),
            "radius": self.r,
            "theta0": self.theta0,
            "theta1": self.theta1,
        }


Segment = Union[LineSegment, ArcSegment]


def _joint_gap(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.hypot(*(a - b)))


def _first_bad_joint(segments: Sequence[Segment], tol: float) -> int | None:
    """Index of the segment whose start does not meet the previous end."""
    n = len(segments)
    for i in range(1, n + 1):
        prev_end = segments[i - 1].last_point()
        start = segments[i % n].first_point()
        if _joint_gap(prev_end, start) > tol:
            return i % n
    return None


def is_valid_closed_path(segments: Sequence[Segment], tol: float = CLOSURE_TOL) -> bool:
    """Return ``True`` if ``segments`` join end to start and close the loop."""
    if len(segments) < 2:
        return False
    return _first_bad_joint(segments, tol) is None


class ClosedTrack:
    """Closed loop of segments parameterised by arc length.

    Parameters
    ----------
    segments:
        Segments in travel order.  At least two are required and each must
        start where the previous one ends, with the last ending at the start
        of the first, within :data:`CLOSURE_TOL`.

    Raises
    ------
    InvalidTrackError
        If the segments do not form a closed loop.
    """

    def __init__(self, segments: Iterable[Segment]) -> None:
        segments = tuple(segments)
        if len(segments) < 2:
            raise InvalidTrackError("a closed track needs at least two segments")
        bad = _first_bad_joint(segments, CLOSURE_TOL)
        if bad is not None:
            if bad == 0:
                raise InvalidTrackError("the last segment does not end at the first point")
            raise InvalidTrackError(f"segment {bad} does not start where segment {bad - 1} ends")

        starts = []
        total = 0.0
        for seg in segments:
            starts.append(total)
            total += seg.length
        self._segments = segments
        self._starts = tuple(starts)
        self._length = total
        self._p0 = segments[0].first_point()

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __repr__(self) -> str:
        return f"ClosedTrack({len(self._segments)} segments, length={self._length:.6g})"

    @property
    def segments(self) -> Tuple[Segment, ...]:
        return self._segments

    @property
    def starts(self) -> Tuple[float, ...]:
        """Arc length at which each segment begins."""
        return self._starts

    @property
    def length(self) -> float:
        return self._length

    def first_point(self) -> np.ndarray:
        return self._p0.copy()

    def last_point(self) -> np.ndarray:
        return self._segments[-1].last_point()

    def _locate(self, d: float) -> Tuple[float, Segment]:
        d = d % self._length
        i = max(bisect_left(self._starts, d) - 1, 0)
        return d - self._starts[i], self._segments[i]

    def point_at(self, d: float) -> np.ndarray:
        """Point at arc length ``d`` from the start, wrapping around the loop."""
        local, seg = self._locate(d)
        return seg.point_at(local)

    def tangent_at(self, d: float) -> np.ndarray:
        local, seg = self._locate(d)
        return seg.tangent_at(local)

    def signed_distance(self, p: Sequence[float]) -> float:
        """Segment signed distance with the smallest magnitude.

        Exact ties resolve to the earlier segment in travel order.
        """
        return min((seg.signed_distance(p) for seg in self._segments), key=abs)

    def closest_segment(self, p: Sequence[float]) -> Segment:
        return min(self._segments, key=lambda seg: abs(seg.signed_distance(p)))

    def projection_tangent(self, p: Sequence[float]) -> np.ndarray:
        """Approximate track direction near ``p``."""
        return self.closest_segment(p).projection_tangent(p)

    def sample_points(self, n: int) -> np.ndarray:
        """Return ``n + 1`` points evenly spaced in arc length, both ends included."""
        if n < 1:
            raise ValueError("n must be positive")
        d = np.linspace(0.0, self._length, n + 1)
        return np.array([seg.point_at(local) for local, seg in self._unwrapped(d)])

    def sample_tangents(self, n: int) -> np.ndarray:
        if n < 1:
            raise ValueError("n must be positive")
        d = np.linspace(0.0, self._length, n + 1)
        return np.array([seg.tangent_at(local) for local, seg in self._unwrapped(d)])

    def sample_points_spaced(self, dx: float) -> np.ndarray:
        """Points every ``dx`` of arc length in ``(0, length]``."""
        if dx <= 0:
            raise ValueError("dx must be positive")
        d = np.arange(1, int(self._length // dx) + 1) * dx
        points = [seg.point_at(local) for local, seg in self._unwrapped(d)]
        return np.array(points).reshape(-1, 2)

    def _unwrapped(self, d: Iterable[float]) -> Iterator[Tuple[float, Segment]]:
        # No modulo here so that ``d == length`` stays on the last segment.
        for di in d:
            i = max(bisect_left(self._starts, di) - 1, 0)
            yield float(di) - self._starts[i], self._segments[i]


def reference_track() -> ClosedTrack:
    """Return the predefined 11-segment test loop."""
    pi = math.pi
    return ClosedTrack(
        [
            LineSegment((0.0, -4.0), (8.0, -4.0)),
            LineSegment((8.0, -4.0), (8.0, -9.0)),
            ArcSegment((7.0, -9.0), 1.0, 0.0, -pi / 2.0),
            LineSegment((7.0, -10.0), (3.0, -10.0)),
            ArcSegment((3.0, -11.0), 1.0, pi / 2.0, 3.0 * pi / 2.0),
            LineSegment((3.0, -12.0), (8.0, -12.0)),
            ArcSegment((8.0, -10.0), 2.0, -pi / 2.0, 0.0),
            LineSegment((10.0, -10.0), (10.0, -2.0)),
            ArcSegment((8.0, -2.0), 2.0, 0.0, pi / 2.0),
            LineSegment((8.0, 0.0), (0.0, 0.0)),
            ArcSegment((0.0, -2.0), 2.0, pi / 2.0, 3.0 * pi / 2.0),
        ]
    )
