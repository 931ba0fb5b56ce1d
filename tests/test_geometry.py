import math
import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure package directory on path for test discovery when pytest runs directly
sys.path.append(str(Path(__file__).resolve().parents[1] / "linefollower"))

from geometry import (
    CLOSURE_TOL,
    ArcSegment,
    ClosedTrack,
    DegenerateSegmentError,
    InvalidTrackError,
    LineSegment,
    TrackError,
    is_valid_closed_path,
    reference_track,
)


def _d_shape() -> ClosedTrack:
    """Straight base from (-1, 0) to (1, 0) closed by the upper unit half circle."""
    return ClosedTrack(
        [
            LineSegment((-1.0, 0.0), (1.0, 0.0)),
            ArcSegment((0.0, 0.0), 1.0, 0.0, math.pi),
        ]
    )


def test_line_signed_distance_sides() -> None:
    line = LineSegment((0.0, 0.0), (10.0, 0.0))
    # Left of the direction of travel is negative, right is positive, the
    # same sides as the arcs. See "Line sign convention" in DESIGN.md.
    assert np.isclose(line.signed_distance((5.0, 2.0)), -2.0)
    assert np.isclose(line.signed_distance((5.0, -2.0)), 2.0)
    assert abs(line.signed_distance((5.0, 2.0))) == abs(line.signed_distance((5.0, -2.0)))


def test_line_signed_distance_beyond_endpoints() -> None:
    line = LineSegment((0.0, 0.0), (10.0, 0.0))
    # On the supporting line the offset is a negative zero, giving -1.
    assert line.signed_distance((-1.0, 0.0)) == -1.0
    d = line.signed_distance((13.0, -4.0))
    assert np.isclose(d, 5.0)
    d = line.signed_distance((-3.0, 4.0))
    assert np.isclose(d, -5.0)


def test_line_point_tangent_projection() -> None:
    line = LineSegment((1.0, 1.0), (4.0, 5.0))
    assert np.isclose(line.length, 5.0)
    assert np.allclose(line.first_point(), [1.0, 1.0])
    assert np.allclose(line.last_point(), [4.0, 5.0])
    assert np.allclose(line.point_at(2.5), [2.5, 3.0])
    assert np.allclose(line.tangent_at(1.0), [0.6, 0.8])
    assert np.isclose(line.projection_distance((2.5, 3.0)), 2.5)
    assert np.allclose(line.projection_tangent((100.0, -3.0)), [0.6, 0.8])
    assert line.within_bounds((2.5, 3.0))
    assert not line.within_bounds((0.0, 0.0))


def test_arc_counterclockwise_quarter() -> None:
    arc = ArcSegment((0.0, 0.0), 1.0, 0.0, math.pi / 2)
    assert arc.counterclockwise
    assert np.isclose(arc.length, math.pi / 2)
    assert np.allclose(arc.point_at(0.0), [1.0, 0.0])
    assert np.allclose(arc.point_at(arc.length), [0.0, 1.0], atol=CLOSURE_TOL)
    assert np.allclose(arc.tangent_at(0.0), [0.0, 1.0])
    assert np.isclose(arc.signed_distance((2.0, 0.0)), 1.0)
    assert np.isclose(arc.signed_distance((0.5, 0.5)), math.hypot(0.5, 0.5) - 1.0)
    assert arc.signed_distance((-1.0, -1.0)) == math.inf


def test_arc_clockwise() -> None:
    arc = ArcSegment((7.0, -9.0), 1.0, 0.0, -math.pi / 2)
    assert not arc.counterclockwise
    assert np.allclose(arc.first_point(), [8.0, -9.0])
    assert np.allclose(arc.last_point(), [7.0, -10.0])
    assert np.allclose(arc.tangent_at(0.0), [0.0, -1.0])
    # Outside the circle is on the left of a clockwise arc.
    p = (7.0 + 1.5 * math.cos(-math.pi / 4), -9.0 + 1.5 * math.sin(-math.pi / 4))
    assert np.isclose(arc.signed_distance(p), -0.5)
    assert arc.signed_distance((6.0, -8.0)) == math.inf


def test_arc_projection_distance_on_curve() -> None:
    arc = ArcSegment((3.0, -11.0), 1.0, math.pi / 2, 3 * math.pi / 2)
    d = 1.2
    p = arc.point_at(d)
    assert np.isclose(arc.projection_distance(p), d)
    assert np.allclose(arc.projection_tangent(p), arc.tangent_at(d))


def test_arc_sweep_beyond_half_turn() -> None:
    arc = ArcSegment((0.0, 0.0), 1.0, 0.0, 1.5 * math.pi)
    on_arc = arc.point_at(1.25 * math.pi)
    assert arc.within_bounds(on_arc)
    assert np.isclose(arc.signed_distance(on_arc), 0.0)
    a = math.radians(225.0)
    outside = (1.5 * math.cos(a), 1.5 * math.sin(a))
    assert np.isclose(arc.signed_distance(outside), 0.5)
    assert np.isclose(arc.projection_distance(outside), 1.25 * math.pi)
    # The quarter turn between 270 and 360 degrees is not swept.
    a = math.radians(315.0)
    assert arc.signed_distance((2.0 * math.cos(a), 2.0 * math.sin(a))) == math.inf


def test_clockwise_arc_sweep_beyond_half_turn() -> None:
    arc = ArcSegment((0.0, 0.0), 2.0, math.pi / 2, -math.pi)
    assert not arc.counterclockwise
    # Sweeps clockwise from 90 degrees through 0 down to -180 degrees.
    a = math.radians(-120.0)
    p = (2.5 * math.cos(a), 2.5 * math.sin(a))
    assert np.isclose(arc.signed_distance(p), -0.5)
    assert np.isclose(arc.projection_distance(p), 2.0 * math.radians(210.0))
    a = math.radians(135.0)
    assert arc.signed_distance((math.cos(a), math.sin(a))) == math.inf


def test_track_with_three_quarter_arc() -> None:
    # Keyhole loop: a 270 degree arc closed by two radii through the centre.
    track = ClosedTrack(
        [
            LineSegment((0.0, 0.0), (1.0, 0.0)),
            ArcSegment((0.0, 0.0), 1.0, 0.0, 1.5 * math.pi),
            LineSegment((0.0, -1.0), (0.0, 0.0)),
        ]
    )
    a = math.radians(200.0)
    p = (1.2 * math.cos(a), 1.2 * math.sin(a))
    assert track.closest_segment(p) is track.segments[1]
    assert np.isclose(track.signed_distance(p), 0.2)
    assert np.allclose(track.projection_tangent(p), [-math.sin(a), math.cos(a)])


@pytest.mark.parametrize(
    "segment",
    [
        LineSegment((0.0, 0.0), (3.0, -4.0)),
        ArcSegment((1.0, 2.0), 0.5, 0.3, 2.9),
        ArcSegment((1.0, 2.0), 2.0, 1.0, -1.5),
    ],
)
def test_unit_tangents(segment) -> None:
    for d in np.linspace(0.0, segment.length, 25):
        assert np.isclose(np.linalg.norm(segment.tangent_at(d)), 1.0)


def test_degenerate_segments_rejected() -> None:
    with pytest.raises(DegenerateSegmentError):
        LineSegment((1.0, 1.0), (1.0, 1.0))
    with pytest.raises(DegenerateSegmentError):
        ArcSegment((0.0, 0.0), 1.0, 0.5, 0.5)
    with pytest.raises(DegenerateSegmentError):
        ArcSegment((0.0, 0.0), 0.0, 0.0, 1.0)
    with pytest.raises(ValueError):
        LineSegment((0.0, 0.0), (0.0, 0.0))


def test_track_requires_two_segments() -> None:
    with pytest.raises(InvalidTrackError):
        ClosedTrack([LineSegment((0.0, 0.0), (1.0, 0.0))])
    with pytest.raises(InvalidTrackError):
        ClosedTrack([])


def test_track_rejects_gaps_and_open_loops() -> None:
    gap = [
        LineSegment((0.0, 0.0), (1.0, 0.0)),
        LineSegment((1.0, 0.1), (0.0, 0.0)),
    ]
    with pytest.raises(InvalidTrackError, match="segment 1"):
        ClosedTrack(gap)
    assert not is_valid_closed_path(gap)

    open_path = [
        LineSegment((0.0, 0.0), (1.0, 0.0)),
        LineSegment((1.0, 0.0), (1.0, 1.0)),
    ]
    with pytest.raises(TrackError, match="first point"):
        ClosedTrack(open_path)


def test_reference_track_layout() -> None:
    track = reference_track()
    assert len(track) == 11
    assert is_valid_closed_path(track.segments)
    assert np.isclose(track.length, 38.0 + 5.5 * math.pi)
    assert np.isclose(track.starts[2], 13.0)
    assert np.isclose(track.starts[-1], 38.0 + 3.5 * math.pi)


def test_track_closed_loop_property() -> None:
    track = reference_track()
    p0 = track.point_at(0.0)
    assert np.allclose(p0, track.segments[0].first_point())
    assert np.allclose(p0, track.first_point())
    assert np.linalg.norm(track.point_at(track.length) - p0) <= CLOSURE_TOL
    assert np.linalg.norm(track.last_point() - p0) <= CLOSURE_TOL


def test_track_arclength_lookup() -> None:
    track = reference_track()
    # Joints belong to the earlier segment.
    assert np.allclose(track.point_at(8.0), [8.0, -4.0])
    assert np.allclose(track.tangent_at(8.0), [1.0, 0.0])
    assert np.allclose(track.point_at(10.0), [8.0, -6.0])
    assert np.allclose(track.tangent_at(10.0), [0.0, -1.0])
    q = math.pi / 4
    expected = [7.0 + math.cos(-q), -9.0 + math.sin(-q)]
    assert np.allclose(track.point_at(13.0 + q), expected)
    # Arc lengths wrap around the loop in both directions.
    assert np.allclose(track.point_at(track.length + 2.0), [2.0, -4.0])
    assert np.allclose(track.point_at(-1.0), track.point_at(track.length - 1.0))


def test_track_signed_distance_is_min_by_magnitude() -> None:
    track = _d_shape()
    line, arc = track.segments
    for p in [(0.0, -0.5), (0.0, 1.5), (0.0, 0.2), (0.3, 0.1), (-2.0, -1.0), (0.5, 0.5)]:
        values = [line.signed_distance(p), arc.signed_distance(p)]
        expected = min(values, key=abs)
        assert np.isclose(track.signed_distance(p), expected)

    assert np.isclose(track.signed_distance((0.0, -0.5)), 0.5)
    assert np.isclose(track.signed_distance((0.0, 1.5)), 0.5)
    assert np.isclose(track.signed_distance((0.0, 0.2)), -0.2)


def test_track_signed_distance_equidistant_point() -> None:
    track = _d_shape()
    line, arc = track.segments
    p = (0.0, 0.5)
    candidates = [line.signed_distance(p), arc.signed_distance(p)]
    assert np.isclose(abs(candidates[0]), abs(candidates[1]))
    assert any(np.isclose(track.signed_distance(p), c) for c in candidates)


def test_closest_segment_and_projection_tangent() -> None:
    track = reference_track()
    assert track.closest_segment((4.0, -3.9)) is track.segments[0]
    assert np.allclose(track.projection_tangent((4.0, -3.9)), [1.0, 0.0])

    q = math.pi / 4
    p = (8.0 + 2.1 * math.cos(q), -2.0 + 2.1 * math.sin(q))
    assert track.closest_segment(p) is track.segments[8]
    assert np.allclose(track.projection_tangent(p), [-math.sin(q), math.cos(q)])


def test_sampling_helpers() -> None:
    track = reference_track()
    pts = track.sample_points(100)
    assert pts.shape == (101, 2)
    assert np.allclose(pts[0], track.first_point())
    assert np.linalg.norm(pts[-1] - pts[0]) <= CLOSURE_TOL
    tangents = track.sample_tangents(100)
    assert np.allclose(np.linalg.norm(tangents, axis=1), 1.0)

    spaced = track.sample_points_spaced(1.0)
    assert spaced.shape == (int(track.length), 2)
    assert np.allclose(spaced[0], [1.0, -4.0])

    with pytest.raises(ValueError):
        track.sample_points(0)
    with pytest.raises(ValueError):
        track.sample_points_spaced(0.0)
