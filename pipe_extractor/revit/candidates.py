"""
View-scoped candidate resolution.

For one view, decide which pipes (host and linked) and pipe tags are
potentially visible:

    precise  view-scoped collectors, then a bbox test against the crop
    cache    used for the whole view when the view-scoped query fails
    adhoc    link instances missing from the cache are re-collected inline

Unknown geometry is always included: an extra row in a report is
harmless, a silently missing pipe is not.
"""

from ..core.bbox import Box3D, box_from_revit, intersects, contains, transform_box, transform_point
from ..core.log import ensure_logger
from ..config import require_config
from .safe_api import safe_call, element_id_int, document_key
from .bbox_cache import (
    collect_pipes,
    collect_link_instances,
    representative_point,
    link_document,
    link_transform,
)
from .tags import collect_view_tags


SOURCE_HOST = "HOST"
SOURCE_LINK = "LINK"

KIND_PIPE = "PIPE"
KIND_TAG = "TAG"

PATH_PRECISE = "precise"
PATH_CACHE = "cache"
PATH_ADHOC = "adhoc"


class Candidate(object):
    """One element that may be visible in a view."""

    __slots__ = ("element", "source", "kind", "doc_key", "doc", "link_instance_id", "host_box", "path")

    def __init__(self, element, source=SOURCE_HOST, kind=KIND_PIPE, doc_key="host", doc=None,
                 link_instance_id=None, host_box=None, path=PATH_PRECISE):
        self.element = element
        self.source = source
        self.kind = kind
        self.doc_key = doc_key
        self.doc = doc
        self.link_instance_id = link_instance_id
        self.host_box = host_box
        self.path = path

    @property
    def elem_id(self):
        return element_id_int(self.element)

    @property
    def key(self):
        """Cross-document identity: (document marker, element id)."""
        return (self.doc_key, self.elem_id)

    def __repr__(self):
        return "Candidate({0}:{1} {2} via {3})".format(self.doc_key, self.elem_id, self.kind, self.path)


def dedupe_candidates(candidates):
    """Drop repeated (document, id) pairs; first occurrence wins, order kept."""
    seen = set()
    out = []
    for c in candidates:
        k = c.key
        if k in seen:
            continue
        seen.add(k)
        out.append(c)
    return out


def view_crop_box(view, diag=None):
    """Active crop region of a view in model coordinates, or None.

    None means "no spatial filtering". The crop box's own Transform (view
    space -> model space) is applied when present.
    """
    ctx = {"view_id": element_id_int(view)}
    active = safe_call(diag, phase="candidates", callsite="view.CropBoxActive",
                       fn=lambda: bool(view.CropBoxActive), default=False, context=ctx)
    if not active:
        return None
    cb = safe_call(diag, phase="candidates", callsite="view.CropBox",
                   fn=lambda: view.CropBox, default=None, context=ctx)
    box = box_from_revit(cb)
    if box is None:
        return None
    trf = getattr(cb, "Transform", None)
    if trf is not None and not getattr(trf, "IsIdentity", False):
        moved = safe_call(diag, phase="candidates", callsite="transform_box(crop)",
                          fn=lambda: transform_box(trf, box), default=None, context=ctx)
        if moved is not None:
            return moved
    return box


def element_intersects_view_crop(elem, view, crop, cfg=None, diag=None, context=None):
    """Conservative host element crop test.

    View bbox, then model bbox, then representative point; include when
    nothing is readable or the crop is inactive.
    """
    if crop is None:
        return True
    cfg = require_config(cfg)
    ctx = context or {}
    for callsite, arg in (("elem.get_BoundingBox(view)", view), ("elem.get_BoundingBox(None)", None)):
        bb = safe_call(diag, phase="candidates", callsite=callsite,
                       fn=lambda: elem.get_BoundingBox(arg), default=None, context=ctx)
        box = box_from_revit(bb)
        if box is not None:
            return intersects(box, crop)
    pt = representative_point(elem, diag=diag, context=ctx)
    if pt is not None:
        return contains(crop, pt, cfg.point_epsilon)
    return True


def linked_element_intersects_crop(elem, trf, crop, cfg=None, diag=None, context=None):
    """Crop test for an element read directly from a linked document."""
    if crop is None:
        return True
    cfg = require_config(cfg)
    if trf is None:
        # Host-space position unknown
        return True
    ctx = context or {}
    bb = safe_call(diag, phase="candidates", callsite="link_elem.get_BoundingBox(None)",
                   fn=lambda: elem.get_BoundingBox(None), default=None, context=ctx)
    box = box_from_revit(bb)
    if box is not None:
        host_box = safe_call(diag, phase="candidates", callsite="transform_box",
                             fn=lambda: transform_box(trf, box), default=None, context=ctx)
        if host_box is not None:
            return intersects(host_box, crop)
        return True
    pt = representative_point(elem, diag=diag, context=ctx)
    if pt is None:
        return True
    host_pt = safe_call(diag, phase="candidates", callsite="transform_point",
                        fn=lambda: transform_point(trf, pt), default=None, context=ctx)
    if host_pt is None:
        return True
    return contains(crop, host_pt, cfg.point_epsilon)


def _cancelled(token):
    return token is not None and token.cancelled


def _link_candidates_from_cache(infos, lid, trf, crop, cfg, diag, path, token):
    out = []
    for info in infos:
        if _cancelled(token):
            break
        if crop is None:
            keep = True
        elif info.host_box is not None:
            keep = intersects(info.host_box, crop)
        else:
            keep = linked_element_intersects_crop(
                info.element, trf, crop, cfg=cfg, diag=diag,
                context={"elem_id": element_id_int(info.element), "doc_key": info.doc_key},
            )
        if keep:
            out.append(Candidate(info.element, SOURCE_LINK, KIND_PIPE, info.doc_key, info.doc,
                                 link_instance_id=lid, host_box=info.host_box, path=path))
    return out


def adhoc_link_candidates(link_inst, crop, cfg=None, diag=None, logger=None, token=None):
    """Re-collect pipes from a link that is missing from the cache.

    Unloaded links contribute nothing and raise nothing.
    """
    cfg = require_config(cfg)
    log = ensure_logger(logger)
    lid = element_id_int(link_inst)
    link_doc = link_document(link_inst, context={"elem_id": lid})
    if link_doc is None:
        log.debug("Link {0} not loaded; no candidates".format(lid))
        return []
    trf = link_transform(link_inst, diag=diag, context={"elem_id": lid})
    doc_key = document_key(link_doc)
    pipes = safe_call(diag, phase="candidates", callsite="collect_pipes(link adhoc)",
                      fn=lambda: collect_pipes(link_doc), default=[], context={"elem_id": lid})
    out = []
    for elem in pipes:
        if _cancelled(token):
            break
        ctx = {"elem_id": element_id_int(elem), "doc_key": doc_key}
        if linked_element_intersects_crop(elem, trf, crop, cfg=cfg, diag=diag, context=ctx):
            out.append(Candidate(elem, SOURCE_LINK, KIND_PIPE, doc_key, link_doc,
                                 link_instance_id=lid, path=PATH_ADHOC))
    log.debug("Link {0}: {1} ad-hoc candidates".format(lid, len(out)))
    return out


def precise_candidates(doc, view, cache, crop, cfg=None, diag=None, logger=None, token=None):
    """Candidates from view-scoped collectors. Raises if the collectors fail."""
    cfg = require_config(cfg)
    host_key = cache.host_doc_key if cache is not None else document_key(doc)

    host_pipes = collect_pipes(doc, view.Id)
    link_insts = collect_link_instances(doc, view.Id) if cfg.include_linked_documents else []

    out = []
    for elem in host_pipes:
        if _cancelled(token):
            return out
        eid = element_id_int(elem)
        ctx = {"elem_id": eid, "view_id": element_id_int(view), "doc_key": host_key}
        if element_intersects_view_crop(elem, view, crop, cfg=cfg, diag=diag, context=ctx):
            host_box = cache.host_box(eid) if cache is not None else None
            out.append(Candidate(elem, SOURCE_HOST, KIND_PIPE, host_key, doc,
                                 host_box=host_box, path=PATH_PRECISE))

    for link_inst in link_insts:
        if _cancelled(token):
            return out
        lid = element_id_int(link_inst)
        infos = cache.linked(lid) if cache is not None else None
        if infos is None:
            out.extend(adhoc_link_candidates(link_inst, crop, cfg=cfg, diag=diag,
                                             logger=logger, token=token))
            continue
        out.extend(_link_candidates_from_cache(infos, lid, cache.link_transforms.get(lid), crop,
                                               cfg, diag, PATH_PRECISE, token))
    return out


def cache_candidates(view, cache, crop, cfg=None, diag=None, token=None):
    """Candidates from the run cache alone (precise query unavailable)."""
    cfg = require_config(cfg)
    out = []
    if cache is None:
        return out
    for elem in cache.host_elements:
        if _cancelled(token):
            return out
        eid = element_id_int(elem)
        box = cache.host_box(eid)
        if crop is None:
            keep = True
        elif box is not None:
            keep = intersects(box, crop)
        else:
            keep = element_intersects_view_crop(elem, view, crop, cfg=cfg, diag=diag,
                                                context={"elem_id": eid})
        if keep:
            out.append(Candidate(elem, SOURCE_HOST, KIND_PIPE, cache.host_doc_key, None,
                                 host_box=box, path=PATH_CACHE))

    if cfg.include_linked_documents:
        for lid, infos in cache.links.items():
            if _cancelled(token):
                return out
            out.extend(_link_candidates_from_cache(infos, lid, cache.link_transforms.get(lid), crop,
                                                   cfg, diag, PATH_CACHE, token))
    return out


def tag_candidates(doc, view, host_key="host", diag=None, logger=None):
    """Pipe tags in the view; a failing tag query yields no tags."""
    log = ensure_logger(logger)
    try:
        tags = collect_view_tags(doc, view)
    except Exception as e:
        log.debug("Tag query failed for view {0}: {1}".format(element_id_int(view), e))
        if diag is not None:
            diag.warn("candidates", "collect_view_tags", "Tag query failed",
                      view_id=element_id_int(view), extra={"err": str(e)})
        return []
    return [Candidate(t, SOURCE_HOST, KIND_TAG, host_key, doc, path=PATH_PRECISE) for t in tags]


def resolve_view_candidates(doc, view, cache, cfg=None, diag=None, logger=None, token=None):
    """All candidates for one view (not yet deduplicated).

    Args:
        doc: host Document
        view: View placed in a viewport
        cache: PipeBBoxCache for this run
        cfg: Config (detection mode, link toggle, epsilon)
        token: CancellationToken (optional)

    Returns:
        List[Candidate]
    """
    cfg = require_config(cfg)
    log = ensure_logger(logger)
    crop = view_crop_box(view, diag=diag)
    host_key = cache.host_doc_key if cache is not None else document_key(doc)
    view_id = element_id_int(view)

    out = []
    if cfg.detect_geometry:
        try:
            out.extend(precise_candidates(doc, view, cache, crop, cfg=cfg, diag=diag,
                                          logger=logger, token=token))
        except Exception as e:
            log.warn("View {0}: view-scoped query failed ({1}); using cache".format(view_id, e))
            if diag is not None:
                diag.warn("candidates", "precise_candidates", "Falling back to cache",
                          view_id=view_id, extra={"err": str(e)})
            out.extend(cache_candidates(view, cache, crop, cfg=cfg, diag=diag, token=token))

    if cfg.detect_tags and not _cancelled(token):
        out.extend(tag_candidates(doc, view, host_key=host_key, diag=diag, logger=logger))

    log.debug("View {0}: {1} candidates (crop {2})".format(
        view_id, len(out), "active" if isinstance(crop, Box3D) else "inactive"))
    return out
