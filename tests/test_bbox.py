# tests/test_bbox.py

import pytest

from pipe_extractor.core.bbox import (
    AffineTransform,
    Box3D,
    ONE_MM_FT,
    box_from_points,
    box_from_revit,
    contains,
    corners,
    degenerate_box,
    intersects,
    normalized,
    transform_box,
)
from tests.fakes import FakeBBox


def _approx_box(b, mn, mx, tol=1e-9):
    return all(abs(a - c) <= tol for a, c in zip(b.min + b.max, tuple(mn) + tuple(mx)))


def test_corners_are_min_max_product():
    pts = corners(Box3D((0, 0, 0), (1, 2, 3)))
    assert len(pts) == 8
    assert len(set(pts)) == 8
    assert (0, 0, 0) in pts and (1, 2, 3) in pts and (1, 0, 3) in pts


@pytest.mark.parametrize(
    "a,b,expected",
    [
        (((0, 0, 0), (1, 1, 1)), ((0.5, 0.5, 0.5), (2, 2, 2)), True),
        (((0, 0, 0), (1, 1, 1)), ((2, 2, 2), (3, 3, 3)), False),
        (((0, 0, 0), (1, 1, 1)), ((1, 0, 0), (2, 1, 1)), True),   # shared face
        (((0, 0, 0), (1, 1, 1)), ((1, 1, 0), (2, 2, 1)), True),   # shared edge
        (((0, 0, 0), (1, 1, 1)), ((1, 1, 1), (2, 2, 2)), True),   # shared corner
        (((0, 0, 0), (1, 1, 1)), ((0, 0, 5), (1, 1, 6)), False),  # apart on z only
    ],
)
def test_intersects_is_commutative_and_boundary_inclusive(a, b, expected):
    A = Box3D(*a)
    B = Box3D(*b)
    assert intersects(A, B) is expected
    assert intersects(B, A) is expected


def test_intersects_is_reflexive_for_zero_width_box():
    flat = Box3D((1, 1, 1), (1, 1, 1))
    assert intersects(flat, flat)


def test_swapped_min_max_gives_same_result():
    a = Box3D((0, 0, 0), (1, 1, 1))
    swapped = Box3D((1, 1, 1), (0, 0, 0))
    other = Box3D((0.5, -1, 0.2), (3, 0.1, 0.3))
    far = Box3D((5, 5, 5), (6, 6, 6))
    assert intersects(a, other) == intersects(swapped, other)
    assert intersects(a, far) == intersects(swapped, far)
    assert normalized(swapped) == ((0, 0, 0), (1, 1, 1))


def test_intersects_none_is_false():
    assert intersects(None, Box3D((0, 0, 0), (1, 1, 1))) is False


def test_contains_uses_epsilon():
    b = Box3D((0, 0, 0), (1, 1, 1))
    assert contains(b, (1.0 + 1e-12, 0.5, 0.5))
    assert not contains(b, (1.001, 0.5, 0.5))
    assert contains(b, (1.001, 0.5, 0.5), epsilon=0.01)


def test_identity_transform_round_trip():
    b = Box3D((-1.5, 2, 3), (4, 5.25, 6))
    out = transform_box(AffineTransform.identity(), b)
    assert _approx_box(out, b.min, b.max)


def test_rotated_transform_uses_corner_cloud():
    # 45 degrees about z: a unit square's AABB grows to the rotated diamond extents
    b = Box3D((0, 0, 0), (1, 1, 1))
    out = transform_box(AffineTransform.rotation_z(45.0), b)
    h = 2 ** 0.5
    assert _approx_box(out, (-h / 2, 0, 0), (h / 2, h, 1))


def test_rotation_90_with_translation():
    b = Box3D((0, 0, 0), (2, 1, 0))
    out = transform_box(AffineTransform.rotation_z(90.0, translation=(10, 0, 0)), b)
    assert _approx_box(out, (9, 0, 0), (10, 2, 0))


def test_transform_box_without_transform_is_none():
    assert transform_box(None, Box3D((0, 0, 0), (1, 1, 1))) is None


def test_degenerate_box_is_one_mm_half_width():
    d = degenerate_box((1, 2, 3))
    assert d.min == pytest.approx((1 - ONE_MM_FT, 2 - ONE_MM_FT, 3 - ONE_MM_FT))
    assert d.max == pytest.approx((1 + ONE_MM_FT, 2 + ONE_MM_FT, 3 + ONE_MM_FT))
    assert ONE_MM_FT == pytest.approx(0.0032808, rel=1e-4)


def test_box_from_revit_and_points():
    b = box_from_revit(FakeBBox((0, 1, 2), (3, 4, 5)))
    assert b == Box3D((0, 1, 2), (3, 4, 5))
    assert box_from_revit(None) is None
    assert box_from_points([]) is None
    assert box_from_points([(1, 5, 0), (-1, 2, 3)]) == Box3D((-1, 2, 0), (1, 5, 3))
