"""
Spec positions read through pipe tags.

A tag is first resolved to the model elements it references (local or
through a link) and the parameter chain runs on those. Only when no
referenced element yields a value is the tag's own text searched for
spec-position-shaped tokens ("474-90").
"""

import re

from ..core.results import clean_value
from ..config import require_config
from .safe_api import safe_call, element_id_int, is_invalid_id, document_key
from .spec_position import locate_spec_position, iter_parameters, storage_kind

# Optional Revit API bindings (allow pytest outside Revit)
try:
    from Autodesk.Revit.DB import FilteredElementCollector, BuiltInCategory
except Exception:
    FilteredElementCollector = None
    BuiltInCategory = None


TOKEN_SPLIT_RE = re.compile(r"[,;/|\r\n]+")
PREFIX_RE = re.compile(r"\b(?:No|Nr)\.\s*", re.IGNORECASE)
HYPHEN_RE = re.compile(r"\s*-\s*")


def collect_view_tags(doc, view):
    """Pipe tags placed in a view (raises if the query is unavailable)."""
    if FilteredElementCollector is None or BuiltInCategory is None:
        raise RuntimeError("Revit API not available (FilteredElementCollector/BuiltInCategory)")
    col = FilteredElementCollector(doc, view.Id)
    return list(col.OfCategory(BuiltInCategory.OST_PipeTags).WhereElementIsNotElementType())


def split_tokens(raw):
    """Split a raw value on , ; / | and newlines; cleaned, empty parts dropped."""
    if raw is None:
        return []
    out = []
    for part in TOKEN_SPLIT_RE.split(str(raw)):
        v = clean_value(part)
        if v:
            out.append(v)
    return out


def extract_pattern_tokens(text, pattern=r"\d{1,4}-\d{1,4}"):
    """Spec-position-shaped tokens from free text.

    "No."/"Nr." prefixes are stripped and whitespace around hyphens is
    collapsed before matching.

    Example:
        >>> extract_pattern_tokens("No. 474 - 90 / Nr.12-3")
        ['474-90', '12-3']
    """
    if not text:
        return []
    rx = re.compile(pattern) if isinstance(pattern, str) else pattern
    out = []
    seen = set()
    for part in split_tokens(text):
        s = PREFIX_RE.sub("", part)
        s = HYPHEN_RE.sub("-", s)
        for m in rx.findall(s):
            if m not in seen:
                seen.add(m)
                out.append(m)
    return out


def _get_element(doc, eid):
    if doc is None or is_invalid_id(eid):
        return None
    return doc.GetElement(eid)


def resolve_tagged_elements(tag, doc, diag=None):
    """Model elements referenced by a tag as (element, owning document) pairs.

    Tries, and merges:
        - GetTaggedLocalElementIds()            (Revit 2022+, local)
        - GetTaggedReferences()                 (local and linked references)
        - TaggedLocalElementId / TaggedElementId (older API)
    """
    ctx = {"elem_id": element_id_int(tag)}
    found = []
    seen = set()

    def _add(elem, owner):
        if elem is None:
            return
        key = (document_key(owner), element_id_int(elem))
        if key in seen:
            return
        seen.add(key)
        found.append((elem, owner))

    local_ids = safe_call(diag, phase="tags", callsite="tag.GetTaggedLocalElementIds",
                          fn=lambda: list(tag.GetTaggedLocalElementIds()), default=[], context=ctx)
    for eid in local_ids or []:
        _add(_get_element(doc, eid), doc)

    refs = safe_call(diag, phase="tags", callsite="tag.GetTaggedReferences",
                     fn=lambda: list(tag.GetTaggedReferences()), default=[], context=ctx)
    for ref in refs or []:
        linked_id = getattr(ref, "LinkedElementId", None)
        host_id = getattr(ref, "ElementId", None)
        if linked_id is not None and not is_invalid_id(linked_id):
            # Reference into a link: ElementId is the link instance
            link_inst = _get_element(doc, host_id)
            link_doc = safe_call(diag, phase="tags", callsite="link.GetLinkDocument",
                                 fn=lambda: link_inst.GetLinkDocument(), default=None,
                                 context=ctx) if link_inst is not None else None
            _add(_get_element(link_doc, linked_id), link_doc)
        else:
            _add(_get_element(doc, host_id), doc)

    if not found:
        legacy = getattr(tag, "TaggedLocalElementId", None)
        _add(_get_element(doc, legacy), doc)

    if not found:
        link_eid = getattr(tag, "TaggedElementId", None)
        if link_eid is not None:
            linked_id = getattr(link_eid, "LinkedElementId", None)
            inst_id = getattr(link_eid, "LinkInstanceId", None)
            if linked_id is not None and not is_invalid_id(linked_id) and not is_invalid_id(inst_id):
                link_inst = _get_element(doc, inst_id)
                link_doc = link_inst.GetLinkDocument() if link_inst is not None else None
                _add(_get_element(link_doc, linked_id), link_doc)
            else:
                _add(_get_element(doc, getattr(link_eid, "HostElementId", None)), doc)

    return found


def _text_candidates(tag):
    texts = []
    t = getattr(tag, "TagText", None)
    if t:
        texts.append(t)
    for p in iter_parameters(tag):
        if storage_kind(p) != "String":
            continue
        try:
            v = p.AsString()
        except Exception:
            v = None
        if v:
            texts.append(v)
    return texts


def tag_spec_positions(tag, doc, cfg=None, diag=None, logger=None):
    """Spec positions contributed by one tag (zero or more tokens)."""
    cfg = require_config(cfg)
    values = []
    for elem, owner in resolve_tagged_elements(tag, doc, diag=diag):
        located = locate_spec_position(elem, owner, cfg, diag)
        if located is None:
            continue
        for tok in split_tokens(located.value):
            if tok not in values:
                values.append(tok)
    if values:
        return values

    for text in _text_candidates(tag):
        for tok in extract_pattern_tokens(text, cfg.tag_value_pattern):
            if tok not in values:
                values.append(tok)
        if values:
            break
    if values and logger is not None:
        logger.debug("Tag {0}: values from tag text {1}".format(element_id_int(tag), values))
    return values
