"""
Revit-independent building blocks for the pipe extractor.

Modules:
- bbox: Box3D, overlap/containment tests, corner-cloud transforms
- results: SpecPositionSet and SheetResult
- progress: ProgressChannel, CancellationToken, sheet progress scaling
- diagnostics: bounded structured event recorder
- log: timestamped run logger
"""

from .bbox import Box3D, AffineTransform, intersects, contains, transform_box
from .results import SpecPositionSet, SheetResult

__all__ = [
    "Box3D",
    "AffineTransform",
    "intersects",
    "contains",
    "transform_box",
    "SpecPositionSet",
    "SheetResult",
]
