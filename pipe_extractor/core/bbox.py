"""
Axis-aligned bounding-box utilities for pipe visibility resolution.

Pure functions over 3D boxes and points. Points may be plain (x, y, z)
tuples or any object exposing X/Y/Z (Revit XYZ); boxes may be Box3D or any
object exposing Min/Max (Revit BoundingBoxXYZ).

Box min/max are never trusted to be sorted: every comparison normalizes
per axis first.
"""

import math

# Optional Revit API binding (allow pytest outside Revit)
try:
    from Autodesk.Revit.DB import XYZ
except Exception:
    XYZ = None


# 1 millimetre expressed in Revit internal units (feet)
ONE_MM_FT = 1.0 / 304.8

DEFAULT_POINT_EPSILON = 1e-9


class Box3D(object):
    """3D axis-aligned box with Revit-like Min/Max accessors.

    Example:
        >>> b = Box3D((0, 0, 0), (2, 4, 6))
        >>> b.center()
        (1.0, 2.0, 3.0)
    """

    __slots__ = ("min", "max")

    def __init__(self, mn, mx):
        self.min = as_point(mn)
        self.max = as_point(mx)

    @property
    def Min(self):
        return self.min

    @property
    def Max(self):
        return self.max

    def center(self):
        return box_center(self)

    def __eq__(self, other):
        if not isinstance(other, Box3D):
            return NotImplemented
        return self.min == other.min and self.max == other.max

    def __ne__(self, other):
        eq = self.__eq__(other)
        if eq is NotImplemented:
            return eq
        return not eq

    def __hash__(self):
        return hash((self.min, self.max))

    def __repr__(self):
        return "Box3D(min={0}, max={1})".format(self.min, self.max)


def as_point(p):
    """Return p as an (x, y, z) float tuple.

    Accepts tuples/lists or objects with X/Y/Z attributes.
    """
    if p is None:
        raise ValueError("point is None")
    try:
        return (float(p.X), float(p.Y), float(p.Z))
    except AttributeError:
        return (float(p[0]), float(p[1]), float(p[2]))


def box_from_revit(bb):
    """Convert a BoundingBoxXYZ-like object to Box3D (None when unusable)."""
    if bb is None:
        return None
    if isinstance(bb, Box3D):
        return bb
    mn = getattr(bb, "Min", None)
    mx = getattr(bb, "Max", None)
    if mn is None or mx is None:
        return None
    return Box3D(mn, mx)


def normalized(box):
    """Return ((xmin, ymin, zmin), (xmax, ymax, zmax)) with min <= max per axis."""
    b = box_from_revit(box)
    if b is None:
        raise ValueError("box is None")
    lo = tuple(min(a, c) for a, c in zip(b.min, b.max))
    hi = tuple(max(a, c) for a, c in zip(b.min, b.max))
    return lo, hi


def corners(box):
    """Return the 8 corners of a box (product of min/max per axis)."""
    b = box_from_revit(box)
    if b is None:
        return []
    (x0, y0, z0), (x1, y1, z1) = b.min, b.max
    return [
        (x0, y0, z0), (x0, y0, z1),
        (x0, y1, z0), (x0, y1, z1),
        (x1, y0, z0), (x1, y0, z1),
        (x1, y1, z0), (x1, y1, z1),
    ]


def intersects(a, b):
    """Boundary-inclusive overlap test between two boxes.

    Commutative and reflexive; touching faces, edges, corners and
    zero-width boxes count as intersecting. Returns False if either box
    is missing.
    """
    if a is None or b is None:
        return False
    a_lo, a_hi = normalized(a)
    b_lo, b_hi = normalized(b)
    for i in range(3):
        if a_hi[i] < b_lo[i] or a_lo[i] > b_hi[i]:
            return False
    return True


def contains(box, point, epsilon=DEFAULT_POINT_EPSILON):
    """Inclusive point-in-box test with a small tolerance."""
    if box is None or point is None:
        return False
    lo, hi = normalized(box)
    p = as_point(point)
    for i in range(3):
        if p[i] < lo[i] - epsilon or p[i] > hi[i] + epsilon:
            return False
    return True


def box_center(box):
    lo, hi = normalized(box)
    return tuple((lo[i] + hi[i]) * 0.5 for i in range(3))


def box_from_points(points):
    """Axis-aligned box enclosing a point cloud (None for an empty cloud)."""
    pts = [as_point(p) for p in points]
    if not pts:
        return None
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    zs = [p[2] for p in pts]
    return Box3D((min(xs), min(ys), min(zs)), (max(xs), max(ys), max(zs)))


def degenerate_box(point, half_width=ONE_MM_FT):
    """Tiny cube centred on point, used when real geometry is unavailable."""
    x, y, z = as_point(point)
    h = abs(float(half_width))
    return Box3D((x - h, y - h, z - h), (x + h, y + h, z + h))


def transform_point(transform, point):
    """Apply an affine transform (anything with OfPoint) to a point.

    Inside Revit the point is handed over as XYZ; outside Revit as a tuple.
    """
    x, y, z = as_point(point)
    arg = XYZ(x, y, z) if XYZ is not None else (x, y, z)
    return as_point(transform.OfPoint(arg))


def transform_box(transform, box):
    """Transform a box into another space and re-derive its axis-aligned box.

    Corners are transformed individually; transforming min/max directly is
    wrong under rotation.
    """
    b = box_from_revit(box)
    if b is None or transform is None:
        return None
    return box_from_points([transform_point(transform, c) for c in corners(b)])


class AffineTransform(object):
    """Pure-Python affine transform with Revit Transform semantics.

    OfPoint(p) = Origin + p.x * BasisX + p.y * BasisY + p.z * BasisZ

    Example:
        >>> t = AffineTransform.rotation_z(90.0, translation=(10, 0, 0))
        >>> [round(v, 9) for v in t.OfPoint((1, 0, 0))]
        [10.0, 1.0, 0.0]
    """

    def __init__(self, origin=(0.0, 0.0, 0.0), basis_x=(1.0, 0.0, 0.0),
                 basis_y=(0.0, 1.0, 0.0), basis_z=(0.0, 0.0, 1.0)):
        self.Origin = as_point(origin)
        self.BasisX = as_point(basis_x)
        self.BasisY = as_point(basis_y)
        self.BasisZ = as_point(basis_z)

    @classmethod
    def identity(cls):
        return cls()

    @classmethod
    def translation(cls, offset):
        return cls(origin=offset)

    @classmethod
    def rotation_z(cls, angle_deg, translation=(0.0, 0.0, 0.0)):
        ang = math.radians(angle_deg)
        c = math.cos(ang)
        s = math.sin(ang)
        return cls(
            origin=translation,
            basis_x=(c, s, 0.0),
            basis_y=(-s, c, 0.0),
            basis_z=(0.0, 0.0, 1.0),
        )

    @property
    def IsIdentity(self):
        return (
            self.Origin == (0.0, 0.0, 0.0)
            and self.BasisX == (1.0, 0.0, 0.0)
            and self.BasisY == (0.0, 1.0, 0.0)
            and self.BasisZ == (0.0, 0.0, 1.0)
        )

    def OfPoint(self, p):
        x, y, z = as_point(p)
        o, bx, by, bz = self.Origin, self.BasisX, self.BasisY, self.BasisZ
        return tuple(o[i] + x * bx[i] + y * by[i] + z * bz[i] for i in range(3))

    def __repr__(self):
        return "AffineTransform(origin={0}, x={1}, y={2}, z={3})".format(
            self.Origin, self.BasisX, self.BasisY, self.BasisZ
        )
