# pipe_extractor/revit/safe_api.py

from typing import Any, Callable, Dict, Optional, TypeVar

T = TypeVar("T")


def safe_call(
    diag: Any,
    *,
    phase: str,
    callsite: str,
    fn: Callable[[], T],
    default: T,
    context: Optional[Dict[str, Any]] = None,
    policy: str = "default",  # "default" | "raise"
) -> T:
    """
    Execute fn() and handle exceptions in a controlled, observable way.

    Used for every Revit read whose failure is recoverable (bbox reads,
    link document resolution, parameter reads).

    policy:
      - "default": record error, return default
      - "raise":   record error, then re-raise
    """
    try:
        return fn()
    except Exception as e:
        ctx = context or {}

        if diag is not None:
            try:
                diag.error(
                    phase=phase,
                    callsite=callsite,
                    message="Exception in safe_call",
                    exc=e,
                    sheet=ctx.get("sheet"),
                    view_id=ctx.get("view_id"),
                    elem_id=ctx.get("elem_id"),
                    doc_key=ctx.get("doc_key"),
                    extra=ctx,
                )
            except Exception:
                # Diagnostics must never crash the run
                pass

        if policy == "raise":
            raise

        return default


def element_id_int(elem_or_id):
    """Best-effort integer value of an element (or ElementId); None if unknown."""
    if elem_or_id is None:
        return None
    eid = getattr(elem_or_id, "Id", elem_or_id)
    for attr in ("Value", "IntegerValue"):
        v = getattr(eid, attr, None)
        if v is not None:
            try:
                return int(v)
            except Exception:
                continue
    try:
        return int(eid)
    except Exception:
        return None


def is_invalid_id(elem_id):
    """True for None or Revit's InvalidElementId (-1)."""
    v = element_id_int(elem_id)
    return v is None or v < 0


def document_key(doc):
    """Stable per-run document marker: PathName, else Title, else 'host'."""
    if doc is None:
        return "host"
    for attr in ("PathName", "Title"):
        try:
            v = getattr(doc, attr, None)
        except Exception:
            v = None
        if v:
            return str(v)
    return "host"
