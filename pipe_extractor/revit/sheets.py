"""
Drawing sheet discovery and selection.

Enumerates ViewSheets (placeholders skipped), resolves a discipline label
per sheet and normalizes whatever the caller hands in as a "selection".
"""

from ..config import require_config
from .safe_api import element_id_int
from .spec_position import read_parameter_value

# Optional Revit API bindings (allow pytest outside Revit)
try:
    from Autodesk.Revit.DB import FilteredElementCollector, ViewSheet
except Exception:
    FilteredElementCollector = None
    ViewSheet = None


ALL_DISCIPLINES = "All Disciplines"
UNKNOWN_DISCIPLINE = "Unknown"


def _log(level, msg):
    print("[{0}] pipe_extractor.sheets: {1}".format(level, msg))


class DrawingSheet(object):
    """A selectable drawing sheet."""

    __slots__ = ("sheet", "id", "number", "name", "title", "discipline")

    def __init__(self, sheet, id=None, number="", name="", title="", discipline=UNKNOWN_DISCIPLINE):
        self.sheet = sheet
        self.id = id
        self.number = number or ""
        self.name = name or ""
        self.title = title or ""
        self.discipline = discipline or UNKNOWN_DISCIPLINE

    @property
    def display_name(self):
        return "{0} - {1}".format(self.number, self.name)

    @classmethod
    def from_sheet(cls, sheet, cfg=None):
        cfg = require_config(cfg)
        return cls(
            sheet,
            id=element_id_int(sheet),
            number=str(getattr(sheet, "SheetNumber", "") or ""),
            name=str(getattr(sheet, "Name", "") or ""),
            title=str(getattr(sheet, "Title", "") or ""),
            discipline=sheet_discipline(sheet, cfg.discipline_parameter_names),
        )

    def __str__(self):
        return self.display_name

    def __repr__(self):
        return "DrawingSheet({0!r}, discipline={1!r})".format(self.display_name, self.discipline)


def sheet_display_name(sheet):
    return "{0} - {1}".format(getattr(sheet, "SheetNumber", ""), getattr(sheet, "Name", ""))


def is_placeholder(sheet):
    try:
        return bool(getattr(sheet, "IsPlaceholder", False))
    except Exception:
        return False


def sheet_discipline(sheet, parameter_names):
    """First non-empty discipline parameter value, else "Unknown"."""
    doc = getattr(sheet, "Document", None)
    for name in parameter_names:
        try:
            v = read_parameter_value(sheet.LookupParameter(name), doc)
        except Exception as e:
            _log("DEBUG", "Discipline read failed on '{0}' ({1}): {2}".format(
                sheet_display_name(sheet), name, e))
            v = None
        if v:
            return v
    return UNKNOWN_DISCIPLINE


def collect_drawing_sheets(doc, cfg=None):
    """All non-placeholder sheets of doc as DrawingSheet records, sorted by number.

    Raises when sheets cannot be enumerated at all.
    """
    if FilteredElementCollector is None or ViewSheet is None:
        raise RuntimeError("Revit API not available (FilteredElementCollector/ViewSheet)")
    cfg = require_config(cfg)
    out = []
    for sheet in FilteredElementCollector(doc).OfClass(ViewSheet):
        if is_placeholder(sheet):
            continue
        out.append(DrawingSheet.from_sheet(sheet, cfg))
    out.sort(key=lambda s: (s.number, s.name))
    return out


def list_disciplines(sheets):
    """Distinct disciplines, sorted, with "All Disciplines" first."""
    found = sorted(set(s.discipline for s in sheets if s.discipline))
    return [ALL_DISCIPLINES] + found


def filter_sheets_by_discipline(sheets, discipline):
    if not discipline or discipline == ALL_DISCIPLINES:
        return list(sheets)
    return [s for s in sheets if s.discipline == discipline]


def normalize_selected_sheets(selection, cfg=None):
    """Turn a caller's selection into [(display name, ViewSheet)].

    Accepts DrawingSheet records, (display name, sheet) pairs or bare
    ViewSheet objects; input order is kept.
    """
    if selection is None:
        return []
    if not isinstance(selection, (list, tuple)):
        selection = [selection]
    out = []
    for item in selection:
        if item is None:
            continue
        if isinstance(item, DrawingSheet):
            out.append((item.display_name, item.sheet))
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            out.append((str(item[0]), item[1]))
        else:
            out.append((sheet_display_name(item), item))
    return out
