"""
Spec position lookup on a single element.

An ordered chain of lookup steps, each a plain function
(element, ctx) -> str | None. The first non-empty value wins; a step that
raises is recorded and skipped.

Chain:
    1. exact            LookupParameter(<configured name>) on the instance
    2. case_insensitive same name, any casing, across instance parameters
    3. alternate        known alternate display names (any casing)
    4. heuristic        name contains a "spec" token and a "position" token
    5. shared           heuristic restricted to shared parameters
    6. type             steps 1-4 on the element type
    7. piping_system    piping system type name (pipes only)
"""

from ..core.results import clean_value
from ..config import require_config
from .safe_api import safe_call, element_id_int, is_invalid_id

# Optional Revit API bindings (allow pytest outside Revit)
try:
    from Autodesk.Revit.DB import BuiltInParameter
except Exception:
    BuiltInParameter = None

try:
    from Autodesk.Revit.DB.Plumbing import Pipe
except Exception:
    Pipe = None


PIPING_SYSTEM_PARAM = "RBS_PIPING_SYSTEM_TYPE_PARAM"


class LocatorContext(object):
    """Per-lookup context handed to every step.

    `matched_parameter` is filled in by the step that produced the value.
    """

    __slots__ = ("doc", "cfg", "diag", "matched_parameter")

    def __init__(self, doc, cfg=None, diag=None):
        self.doc = doc
        self.cfg = require_config(cfg)
        self.diag = diag
        self.matched_parameter = None


class LocatedValue(object):
    __slots__ = ("value", "step", "parameter")

    def __init__(self, value, step, parameter=None):
        self.value = value
        self.step = step
        self.parameter = parameter

    def __repr__(self):
        return "LocatedValue({0!r}, step={1}, parameter={2!r})".format(self.value, self.step, self.parameter)


# --- parameter reading ----------------------------------------------------

def storage_kind(param):
    """Storage type name: 'String' | 'Integer' | 'Double' | 'ElementId' | 'None'."""
    st = getattr(param, "StorageType", None)
    if st is None:
        return "None"
    s = str(st)
    # Revit enums stringify as "String" or "StorageType.String"
    return s.rsplit(".", 1)[-1]


def parameter_name(param):
    try:
        return str(param.Definition.Name)
    except Exception:
        return ""


def is_shared(param):
    """True when the parameter is backed by a shared (GUID) definition."""
    try:
        if bool(getattr(param, "IsShared", False)):
            return True
    except Exception:
        pass
    try:
        return getattr(param.Definition, "GUID", None) is not None
    except Exception:
        return False


def _format_number(v):
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return "{0}".format(v)


def read_parameter_value(param, doc=None):
    """Read a parameter as a cleaned string, dispatching on storage kind.

    String verbatim; Integer/Double formatted; ElementId resolved to the
    referenced element's Name. None for missing or empty values.
    """
    if param is None:
        return None
    if getattr(param, "HasValue", True) is False:
        return None

    kind = storage_kind(param)
    if kind == "String":
        return clean_value(param.AsString())
    if kind == "Integer":
        return clean_value(_format_number(param.AsInteger()))
    if kind == "Double":
        # Raw number, without display units
        return clean_value(_format_number(param.AsDouble()))
    if kind == "ElementId":
        eid = param.AsElementId()
        if is_invalid_id(eid):
            return None
        if doc is None:
            doc = getattr(getattr(param, "Element", None), "Document", None)
        if doc is None:
            return None
        ref = doc.GetElement(eid)
        return clean_value(getattr(ref, "Name", None)) if ref is not None else None

    # Unknown storage: whatever string form exists
    for reader in ("AsString", "AsValueString"):
        fn = getattr(param, reader, None)
        if fn is None:
            continue
        try:
            v = clean_value(fn())
        except Exception:
            v = None
        if v:
            return v
    return None


def iter_parameters(element):
    params = getattr(element, "Parameters", None)
    if params is None:
        return []
    return list(params)


def _element_doc(element, ctx):
    return getattr(element, "Document", None) or ctx.doc


def _first_matching(element, ctx, predicate):
    doc = _element_doc(element, ctx)
    for p in iter_parameters(element):
        name = parameter_name(p)
        if not name or not predicate(p, name):
            continue
        v = read_parameter_value(p, doc)
        if v:
            ctx.matched_parameter = name
            return v
    return None


def _has_spec_and_position(name, cfg):
    up = name.upper()
    return (
        any(t in up for t in cfg.spec_name_tokens)
        and any(t in up for t in cfg.position_name_tokens)
    )


# --- chain steps ----------------------------------------------------------

def by_exact_name(element, ctx):
    name = ctx.cfg.spec_position_parameter
    p = element.LookupParameter(name)
    v = read_parameter_value(p, _element_doc(element, ctx))
    if v:
        ctx.matched_parameter = name
    return v


def by_case_insensitive_name(element, ctx):
    target = ctx.cfg.spec_position_parameter.casefold()
    return _first_matching(element, ctx, lambda p, name: name.casefold() == target)


def by_alternate_name(element, ctx):
    """First alternate name (in configured order) with a non-empty value."""
    doc = _element_doc(element, ctx)
    named = [(parameter_name(p), p) for p in iter_parameters(element)]
    for alt in ctx.cfg.alternate_parameter_names:
        target = alt.casefold()
        for name, p in named:
            if not name or name.casefold() != target:
                continue
            v = read_parameter_value(p, doc)
            if v:
                ctx.matched_parameter = name
                return v
    return None


def by_name_heuristic(element, ctx):
    return _first_matching(element, ctx, lambda p, name: _has_spec_and_position(name, ctx.cfg))


def by_shared_heuristic(element, ctx):
    return _first_matching(
        element, ctx, lambda p, name: is_shared(p) and _has_spec_and_position(name, ctx.cfg)
    )


INSTANCE_STEPS = (
    ("exact", by_exact_name),
    ("case_insensitive", by_case_insensitive_name),
    ("alternate", by_alternate_name),
    ("heuristic", by_name_heuristic),
)


def by_type(element, ctx):
    doc = _element_doc(element, ctx)
    if doc is None:
        return None
    type_id = element.GetTypeId()
    if is_invalid_id(type_id):
        return None
    type_elem = doc.GetElement(type_id)
    if type_elem is None:
        return None
    for _name, step in INSTANCE_STEPS:
        v = _run_step(step, type_elem, ctx, "type." + _name)
        if v:
            return v
    return None


def is_pipe(element):
    if Pipe is not None and isinstance(element, Pipe):
        return True
    cat = getattr(element, "Category", None)
    return getattr(cat, "Name", None) == "Pipes"


def by_piping_system(element, ctx):
    if not ctx.cfg.use_piping_system_fallback or not is_pipe(element):
        return None
    if BuiltInParameter is not None:
        bip = getattr(BuiltInParameter, PIPING_SYSTEM_PARAM)
    else:
        bip = PIPING_SYSTEM_PARAM
    p = element.get_Parameter(bip)
    v = read_parameter_value(p, _element_doc(element, ctx))
    if v:
        ctx.matched_parameter = parameter_name(p) or PIPING_SYSTEM_PARAM
    return v


SPEC_POSITION_CHAIN = INSTANCE_STEPS + (
    ("shared", by_shared_heuristic),
    ("type", by_type),
    ("piping_system", by_piping_system),
)


def _run_step(step, element, ctx, step_name):
    return safe_call(
        ctx.diag,
        phase="spec_position",
        callsite=step_name,
        fn=lambda: step(element, ctx),
        default=None,
        context={"elem_id": element_id_int(element)},
    )


def locate_spec_position(element, doc=None, cfg=None, diag=None, chain=SPEC_POSITION_CHAIN):
    """Run the lookup chain on one element.

    Returns:
        LocatedValue or None when no step yields a non-empty value.

    Example:
        >>> located = locate_spec_position(pipe, doc, cfg)   # doctest: +SKIP
        >>> located.value, located.step
        ('474-90', 'exact')
    """
    if element is None:
        return None
    ctx = LocatorContext(doc, cfg, diag)
    for step_name, step in chain:
        ctx.matched_parameter = None
        v = _run_step(step, element, ctx, step_name)
        if v:
            return LocatedValue(v, step_name, ctx.matched_parameter)
    return None


def dump_parameters(element, doc=None):
    """'name = value [Storage]' lines for every parameter (verbose diagnostics)."""
    lines = []
    for p in iter_parameters(element):
        try:
            v = read_parameter_value(p, doc)
        except Exception as e:
            v = "<error: {0}>".format(e)
        lines.append("{0} = {1} [{2}]".format(
            parameter_name(p) or "?", v if v is not None else "(no value)", storage_kind(p)
        ))
    return lines
