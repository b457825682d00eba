"""
Pipe spec position extractor for Revit drawing sheets.

Walks selected sheets, resolves which pipes (host and linked) are visible
in each viewport, reads their spec position identifiers and writes one
report row per sheet.

Modules:
- config: Configuration for attribute lookup, link handling and reporting
- core.bbox: Axis-aligned box, point and transform utilities
- core.results: SpecPositionSet and SheetResult containers
- revit.bbox_cache: One-pass host + link pipe bounding-box cache
- revit.candidates: Per-view candidate resolution (precise / cache / tags)
- revit.spec_position: Ordered parameter fallback chain
- revit.tags: Spec positions from pipe tags
- revit.sheets: Sheet discovery and discipline filtering
- pipeline: Extraction run (state machine, progress, cancellation)
- report_export: Excel / CSV report writers
- entry_dynamo: Dynamo / RevitPythonShell entry point
"""

__version__ = "1.0.0"

from .config import Config

__all__ = ["Config"]
