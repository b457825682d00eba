"""
Cross-document pipe bounding-box cache.

Scans host pipes and the pipes of every loaded RVT link once per run and
stores host-space boxes for them. Linked boxes are derived by transforming
the 8 native corners through the link transform and re-deriving the
axis-aligned box. Pipes without readable geometry get a degenerate box
around a representative point.

The cache is a plain object owned by one extraction run; nothing here is
module-global state.
"""

from ..core.bbox import (
    box_from_revit,
    box_center,
    degenerate_box,
    transform_box,
    transform_point,
)
from ..core.log import ensure_logger
from ..config import require_config
from .safe_api import safe_call, element_id_int, document_key

# Optional Revit API bindings (allow pytest outside Revit)
try:
    from Autodesk.Revit.DB import FilteredElementCollector, RevitLinkInstance
except Exception:
    FilteredElementCollector = None
    RevitLinkInstance = None

try:
    from Autodesk.Revit.DB.Plumbing import Pipe
except Exception:
    Pipe = None


def _require_api():
    if FilteredElementCollector is None or Pipe is None:
        raise RuntimeError("Revit API not available (FilteredElementCollector/Pipe)")


def collect_pipes(doc, view_id=None):
    """All pipe instances in doc, optionally scoped to a view.

    Raises when the API is unavailable or the collector fails; callers
    decide whether that is a fallback or a skip.
    """
    _require_api()
    if view_id is None:
        col = FilteredElementCollector(doc)
    else:
        col = FilteredElementCollector(doc, view_id)
    return list(col.OfClass(Pipe).WhereElementIsNotElementType())


def collect_link_instances(doc, view_id=None):
    """All RevitLinkInstance elements in doc, optionally scoped to a view."""
    if FilteredElementCollector is None or RevitLinkInstance is None:
        raise RuntimeError("Revit API not available (FilteredElementCollector/RevitLinkInstance)")
    if view_id is None:
        col = FilteredElementCollector(doc)
    else:
        col = FilteredElementCollector(doc, view_id)
    return list(col.OfClass(RevitLinkInstance))


def representative_point(elem, diag=None, context=None):
    """A point standing in for an element without a usable box.

    Midpoint of a curve location, else a point location, else the centre of
    the model bbox. None when nothing is readable.
    """
    ctx = context or {}
    loc = safe_call(diag, phase="bbox_cache", callsite="elem.Location",
                    fn=lambda: elem.Location, default=None, context=ctx)
    if loc is not None:
        curve = getattr(loc, "Curve", None)
        if curve is not None:
            mid = safe_call(
                diag, phase="bbox_cache", callsite="LocationCurve.midpoint",
                fn=lambda: _curve_midpoint(curve), default=None, context=ctx,
            )
            if mid is not None:
                return mid
        pt = getattr(loc, "Point", None)
        if pt is not None:
            return (float(pt.X), float(pt.Y), float(pt.Z))

    bb = safe_call(diag, phase="bbox_cache", callsite="elem.get_BoundingBox(None)",
                   fn=lambda: elem.get_BoundingBox(None), default=None, context=ctx)
    box = box_from_revit(bb)
    if box is not None:
        return box_center(box)
    return None


def _curve_midpoint(curve):
    p0 = curve.GetEndPoint(0)
    p1 = curve.GetEndPoint(1)
    return (
        (float(p0.X) + float(p1.X)) * 0.5,
        (float(p0.Y) + float(p1.Y)) * 0.5,
        (float(p0.Z) + float(p1.Z)) * 0.5,
    )


def model_box(elem, diag=None, context=None, half_width=None):
    """Model-space box of elem, with degenerate fallback.

    Returns:
        (Box3D|None, source) where source is "model" | "point" | "none"
    """
    ctx = context or {}
    bb = safe_call(diag, phase="bbox_cache", callsite="elem.get_BoundingBox(None)",
                   fn=lambda: elem.get_BoundingBox(None), default=None, context=ctx)
    box = box_from_revit(bb)
    if box is not None:
        return box, "model"

    pt = representative_point(elem, diag=diag, context=ctx)
    if pt is not None:
        if half_width is None:
            return degenerate_box(pt), "point"
        return degenerate_box(pt, half_width), "point"
    return None, "none"


def link_transform(link_inst, diag=None, context=None):
    """Link -> host transform. GetTotalTransform first, then GetTransform.

    None means "unavailable", never identity.
    """
    ctx = context or {}
    trf = safe_call(diag, phase="bbox_cache", callsite="link.GetTotalTransform",
                    fn=lambda: link_inst.GetTotalTransform(), default=None, context=ctx)
    if trf is not None:
        return trf
    return safe_call(diag, phase="bbox_cache", callsite="link.GetTransform",
                     fn=lambda: link_inst.GetTransform(), default=None, context=ctx)


def link_document(link_inst, diag=None, context=None):
    """Linked Document, or None when the link is unloaded."""
    return safe_call(diag, phase="bbox_cache", callsite="link.GetLinkDocument",
                     fn=lambda: link_inst.GetLinkDocument(), default=None,
                     context=context or {})


def linked_host_box(elem, trf, diag=None, context=None, half_width=None):
    """Host-space box of a linked element.

    Returns:
        (link_box, host_box, source); host_box is None without a transform.
    """
    ctx = context or {}
    bb = safe_call(diag, phase="bbox_cache", callsite="link_elem.get_BoundingBox(None)",
                   fn=lambda: elem.get_BoundingBox(None), default=None, context=ctx)
    link_box = box_from_revit(bb)
    if link_box is not None:
        if trf is None:
            return link_box, None, "model"
        host_box = safe_call(diag, phase="bbox_cache", callsite="transform_box",
                             fn=lambda: transform_box(trf, link_box), default=None, context=ctx)
        return link_box, host_box, "model"

    pt = representative_point(elem, diag=diag, context=ctx)
    if pt is None or trf is None:
        return None, None, "none"
    host_pt = safe_call(diag, phase="bbox_cache", callsite="transform_point",
                        fn=lambda: transform_point(trf, pt), default=None, context=ctx)
    if host_pt is None:
        return None, None, "none"
    if half_width is None:
        return None, degenerate_box(host_pt), "point"
    return None, degenerate_box(host_pt, half_width), "point"


class LinkedPipeInfo(object):
    """Cache entry for one pipe of a linked document."""

    __slots__ = ("element", "link_box", "host_box", "link_instance_id", "doc_key", "doc")

    def __init__(self, element, link_box, host_box, link_instance_id=None, doc_key=None, doc=None):
        self.element = element
        self.link_box = link_box
        self.host_box = host_box
        self.link_instance_id = link_instance_id
        self.doc_key = doc_key
        self.doc = doc

    def __repr__(self):
        return "LinkedPipeInfo(id={0}, link={1}, host_box={2})".format(
            element_id_int(self.element), self.link_instance_id, self.host_box
        )


class PipeBBoxCache(object):
    """Per-run bbox cache for host pipes and linked pipes.

    Attributes:
        host_doc_key: document marker of the host document
        host_elements: host pipe elements in collector order
        host_boxes: host element id -> Box3D (host space)
        links: link instance id -> [LinkedPipeInfo]
        link_instances: link instance id -> RevitLinkInstance
        link_transforms: link instance id -> transform (or None)
    """

    def __init__(self, host_doc_key="host"):
        self.host_doc_key = host_doc_key
        self.host_elements = []
        self.host_boxes = {}
        self.links = {}
        self.link_instances = {}
        self.link_transforms = {}
        self.skipped_links = []

    def host_box(self, elem_id):
        return self.host_boxes.get(elem_id)

    def has_link(self, link_id):
        return link_id in self.links

    def linked(self, link_id):
        """Cached entries for a link instance, or None if the link is absent."""
        return self.links.get(link_id)

    def num_linked(self):
        return sum(len(v) for v in self.links.values())

    def stats(self):
        return {
            "host_pipes": len(self.host_elements),
            "host_boxes": len(self.host_boxes),
            "links": len(self.links),
            "linked_pipes": self.num_linked(),
            "skipped_links": list(self.skipped_links),
        }


def _cancelled(token):
    return token is not None and token.cancelled


def build_pipe_bbox_cache(doc, cfg=None, diag=None, logger=None, token=None):
    """Scan host and linked pipes once and cache their host-space boxes.

    Args:
        doc: host Revit Document
        cfg: Config (half-width, link toggle)
        diag: Diagnostics (optional)
        logger: Logger (optional)
        token: CancellationToken (optional); polled per link and per element

    Returns:
        PipeBBoxCache (possibly partial when cancelled)

    Commentary:
        ✔ Pipes without readable geometry are kept with a None box
        ✔ Per-element read failures never abort the build
        ✔ Per-link failures leave that link absent from the cache
        ✔ Unloaded links are skipped with a log line
        ✘ Nested links are not expanded
    """
    cfg = require_config(cfg)
    log = ensure_logger(logger)
    half = cfg.degenerate_half_width_ft
    cache = PipeBBoxCache(host_doc_key=document_key(doc))

    # 1) Host pipes
    try:
        host_pipes = collect_pipes(doc)
    except Exception as e:
        log.warn("Host pipe collection failed: {0}".format(e))
        if diag is not None:
            diag.error("bbox_cache", "collect_pipes(host)", "Host pipe collection failed", exc=e)
        host_pipes = []

    degenerate = 0
    unknown = 0
    for elem in host_pipes:
        if _cancelled(token):
            log.info("Cache build cancelled during host scan")
            return cache
        eid = element_id_int(elem)
        if eid is None:
            continue
        ctx = {"elem_id": eid, "doc_key": cache.host_doc_key}
        box, src = model_box(elem, diag=diag, context=ctx, half_width=half)
        cache.host_elements.append(elem)
        if box is None:
            # No geometry and no location: listed without a box
            unknown += 1
            continue
        if src == "point":
            degenerate += 1
        cache.host_boxes[eid] = box

    log.info("Cached {0} host pipes ({1} degenerate, {2} without geometry)".format(
        len(cache.host_elements), degenerate, unknown))

    if not cfg.include_linked_documents:
        log.debug("Linked document caching disabled in config")
        return cache

    # 2) Linked pipes
    try:
        link_insts = collect_link_instances(doc)
    except Exception as e:
        log.warn("Link instance collection failed: {0}".format(e))
        if diag is not None:
            diag.error("bbox_cache", "collect_link_instances", "Link instance collection failed", exc=e)
        link_insts = []

    for link_inst in link_insts:
        if _cancelled(token):
            log.info("Cache build cancelled during link scan")
            return cache
        lid = element_id_int(link_inst)
        try:
            infos = _cache_link(link_inst, lid, cfg, diag, log, token)
        except Exception as e:
            # Per-link failure leaves the link absent
            log.warn("Link {0} cache failed: {1}".format(lid, e))
            if diag is not None:
                diag.error("bbox_cache", "cache_link", "Link cache failed", exc=e,
                           extra={"link_id": lid})
            continue
        if infos is None:
            cache.skipped_links.append(lid)
            continue
        cache.links[lid], cache.link_transforms[lid] = infos
        cache.link_instances[lid] = link_inst

    log.info("Cached {0} linked pipes across {1} links".format(cache.num_linked(), len(cache.links)))
    return cache


def _cache_link(link_inst, lid, cfg, diag, log, token):
    """(entries, transform) for one link instance, or None if its document is unavailable."""
    name = getattr(link_inst, "Name", None) or lid
    ctx = {"elem_id": lid}
    link_doc = link_document(link_inst, diag=None, context=ctx)
    if link_doc is None:
        log.info("Link '{0}' not loaded; skipped".format(name))
        return None

    trf = link_transform(link_inst, diag=diag, context=ctx)
    if trf is None:
        log.warn("Link '{0}' has no transform; host boxes unavailable".format(name))

    doc_key = document_key(link_doc)
    pipes = collect_pipes(link_doc)
    infos = []
    for elem in pipes:
        if token is not None and token.cancelled:
            break
        eid = element_id_int(elem)
        if eid is None:
            continue
        ectx = {"elem_id": eid, "doc_key": doc_key, "link_id": lid}
        try:
            link_box, host_box, _src = linked_host_box(
                elem, trf, diag=diag, context=ectx, half_width=cfg.degenerate_half_width_ft
            )
        except Exception as e:
            if diag is not None:
                diag.debug_dedupe(("bbox_cache.linked_host_box", lid), "bbox_cache", "linked_host_box",
                                  "Linked element box failed; kept without box", extra={"err": str(e)})
            link_box, host_box = None, None
        # host_box None: consumers fall back to the element test and include when unknown
        infos.append(LinkedPipeInfo(elem, link_box, host_box, link_instance_id=lid,
                                    doc_key=doc_key, doc=link_doc))

    log.debug("Link '{0}': {1} pipes cached".format(name, len(infos)))
    return infos, trf
