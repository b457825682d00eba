"""
Extraction run: cache build, then sheet by sheet spec position harvesting.

State machine:
    NotStarted -> BuildingCache -> ProcessingSheets -> Completed
                                                    -> Cancelled (sealed sheets kept)
                                                    -> Failed    (ExtractionError)
"""

import time

from .config import require_config
from .core.diagnostics import Diagnostics
from .core.log import Logger
from .core.progress import CancellationToken, report_progress, sheet_progress_percent
from .core.results import SpecPositionSet, SheetResult
from .revit.safe_api import safe_call, element_id_int, is_invalid_id
from .revit.bbox_cache import build_pipe_bbox_cache
from .revit.candidates import resolve_view_candidates, dedupe_candidates, KIND_TAG
from .revit.spec_position import locate_spec_position, dump_parameters
from .revit.tags import tag_spec_positions
from .revit.sheets import collect_drawing_sheets, filter_sheets_by_discipline, normalize_selected_sheets


class RunState(object):
    NOT_STARTED = "NotStarted"
    BUILDING_CACHE = "BuildingCache"
    PROCESSING_SHEETS = "ProcessingSheets"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


class ExtractionError(Exception):
    """Fatal extraction failure (no document, sheets not enumerable)."""


def _perf_now():
    return time.perf_counter()


class ExtractionRun(object):
    """One extraction over a list of sheets.

    The run owns its cache, diagnostics and results; nothing survives it.

    Example:
        >>> run = ExtractionRun(doc, selected_sheets, Config())   # doctest: +SKIP
        >>> results = run.run()
        >>> run.state
        'Completed'
    """

    def __init__(self, doc, sheets=None, cfg=None, observer=None, token=None, logger=None, diag=None,
                 discipline=None):
        self.doc = doc
        self.discipline = discipline
        self.cfg = require_config(cfg)
        self.observer = observer
        self.token = token if token is not None else CancellationToken.from_observer(observer)
        self.logger = logger if logger is not None else Logger(enabled=True, verbose=self.cfg.verbose)
        self.diag = diag if diag is not None else Diagnostics(max_events=self.cfg.max_diag_events)
        self._selection = sheets

        self.state = RunState.NOT_STARTED
        self.results = []
        self.cache = None
        self.error = None
        self.stats = {
            "sheets_total": 0,
            "sheets_processed": 0,
            "sheets_failed": 0,
            "views": 0,
            "candidates": 0,
            "unique_candidates": 0,
            "values_found": 0,
            "elements_without_value": 0,
        }
        self.timings = {}

    # -- helpers ---------------------------------------------------------

    def _progress(self, percent, message):
        report_progress(self.observer, percent, message)

    def _fail(self, message, exc=None):
        self.state = RunState.FAILED
        self.error = message
        self.logger.error(message)
        self.diag.error("pipeline", "ExtractionRun.run", message, exc=exc)
        if exc is not None:
            raise ExtractionError(message) from exc
        raise ExtractionError(message)

    def _resolve_sheets(self):
        if self._selection is None:
            try:
                found = collect_drawing_sheets(self.doc, self.cfg)
                if self.discipline:
                    found = filter_sheets_by_discipline(found, self.discipline)
                return normalize_selected_sheets(found)
            except Exception as e:
                self._fail("Cannot enumerate sheets: {0}".format(e), exc=e)
        return normalize_selected_sheets(self._selection)

    # -- run -------------------------------------------------------------

    def run(self):
        """Execute the run and return the sealed SheetResults.

        Raises:
            ExtractionError: fatal failure; state is Failed
        """
        if self.state != RunState.NOT_STARTED:
            raise ExtractionError("ExtractionRun can only be run once (state={0})".format(self.state))
        t0 = _perf_now()
        if self.doc is None:
            self._fail("No active Revit document")

        sheets = self._resolve_sheets()
        self.stats["sheets_total"] = len(sheets)
        self.logger.info("Extraction started: {0} sheets, detection={1}, links={2}".format(
            len(sheets), self.cfg.detection_mode, self.cfg.include_linked_documents))

        # Cache build
        self.state = RunState.BUILDING_CACHE
        self._progress(0, "Building pipe cache...")
        t_cache = _perf_now()
        try:
            self.cache = build_pipe_bbox_cache(self.doc, self.cfg, diag=self.diag,
                                               logger=self.logger, token=self.token)
        except Exception as e:
            self._fail("Pipe cache build failed: {0}".format(e), exc=e)
        self.timings["cache_ms"] = (_perf_now() - t_cache) * 1000.0

        if self.token.cancelled:
            return self._finish_cancelled(t0)

        # Sheets
        self.state = RunState.PROCESSING_SHEETS
        total = len(sheets)
        share = self.cfg.sheet_progress_share
        for i, (name, sheet) in enumerate(sheets):
            if self.token.cancelled:
                return self._finish_cancelled(t0)
            self._progress(sheet_progress_percent(i, total, share),
                           "Processing sheet {0} of {1}: {2}".format(i + 1, total, name))

            result = self._process_sheet(name, sheet)
            if result is None:
                # Cancelled mid-sheet: the partial sheet is discarded
                return self._finish_cancelled(t0)
            self.results.append(result)

        self._progress(sheet_progress_percent(total, total, share), "Sheet processing complete")
        self.state = RunState.COMPLETED
        self.timings["total_ms"] = (_perf_now() - t0) * 1000.0
        self.logger.info("Extraction completed: {0} sheets, {1} values".format(
            len(self.results), self.stats["values_found"]))
        return list(self.results)

    def _finish_cancelled(self, t0):
        self.state = RunState.CANCELLED
        self.timings["total_ms"] = (_perf_now() - t0) * 1000.0
        self.logger.warn("Extraction cancelled after {0} sheets".format(len(self.results)))
        return list(self.results)

    def _process_sheet(self, name, sheet):
        """SheetResult for one sheet, or None if cancellation interrupted it."""
        values = SpecPositionSet()
        error = None
        if self.token.cancelled:
            return None
        try:
            for view in self._sheet_views(sheet, name):
                if self.token.cancelled:
                    return None
                if not self._process_view(view, values, name):
                    return None
        except Exception as e:
            # Per-sheet failure: the sheet still gets a result
            error = "{0}: {1}".format(type(e).__name__, e)
            self.stats["sheets_failed"] += 1
            self.logger.error("Sheet '{0}' failed: {1}".format(name, error))
            self.diag.error("pipeline", "_process_sheet", "Sheet failed", exc=e, sheet=name)

        self.stats["sheets_processed"] += 1
        result = SheetResult.seal(name, values, error=error)
        self.logger.info("Sheet '{0}': {1} spec positions".format(name, len(result.spec_positions)))
        return result

    def _sheet_views(self, sheet, name):
        """Views of a sheet's viewports in document order."""
        vp_ids = list(sheet.GetAllViewports())
        for vp_id in vp_ids:
            vp = self.doc.GetElement(vp_id)
            if vp is None:
                continue
            view_id = getattr(vp, "ViewId", None)
            if is_invalid_id(view_id):
                continue
            view = self.doc.GetElement(view_id)
            if view is None:
                self.logger.debug("Sheet '{0}': viewport {1} has no view".format(name, element_id_int(vp)))
                continue
            yield view

    def _process_view(self, view, values, sheet_name):
        """Merge one view's spec positions into values. False when cancelled."""
        self.stats["views"] += 1
        candidates = resolve_view_candidates(self.doc, view, self.cache, cfg=self.cfg, diag=self.diag,
                                             logger=self.logger, token=self.token)
        if self.token.cancelled:
            return False
        unique = dedupe_candidates(candidates)
        self.stats["candidates"] += len(candidates)
        self.stats["unique_candidates"] += len(unique)

        for cand in unique:
            if self.token.cancelled:
                return False
            found = safe_call(
                self.diag,
                phase="pipeline",
                callsite="candidate_values",
                fn=lambda: self._candidate_values(cand),
                default=[],
                context={"sheet": sheet_name, "view_id": element_id_int(view),
                         "elem_id": cand.elem_id, "doc_key": cand.doc_key},
            )
            if not found:
                self.stats["elements_without_value"] += 1
            for v in found:
                if values.add(v):
                    self.stats["values_found"] += 1
        return True

    def _candidate_values(self, cand):
        owner = cand.doc if cand.doc is not None else getattr(cand.element, "Document", None) or self.doc
        if cand.kind == KIND_TAG:
            return tag_spec_positions(cand.element, owner, self.cfg, diag=self.diag, logger=self.logger)

        located = locate_spec_position(cand.element, owner, self.cfg, self.diag)
        if located is None:
            if self.cfg.verbose:
                self.logger.debug("No spec position on {0}; parameters:\n  {1}".format(
                    cand, "\n  ".join(dump_parameters(cand.element, owner))))
            return []
        self.logger.debug("{0}: '{1}' via {2} ({3})".format(cand, located.value, located.step, located.parameter))
        return [located.value]

    def to_dict(self):
        return {
            "state": self.state,
            "error": self.error,
            "results": [r.to_dict() for r in self.results],
            "stats": dict(self.stats),
            "cache": self.cache.stats() if self.cache is not None else None,
            "timings": dict(self.timings),
            "diagnostics": self.diag.to_dict(),
        }


def extract_spec_positions(doc, sheets=None, cfg=None, observer=None, token=None, logger=None, diag=None):
    """Run one extraction and return its SheetResults.

    Args:
        doc: host Revit Document
        sheets: DrawingSheets, (name, sheet) pairs or ViewSheets; None means all sheets
        cfg: Config
        observer: progress observer with report(percent, message) / cancel_requested
        token: CancellationToken (defaults to one following the observer)

    Returns:
        List[SheetResult] in input order (partial on cancellation)

    Raises:
        ExtractionError: no document, or sheets cannot be enumerated
    """
    run = ExtractionRun(doc, sheets, cfg=cfg, observer=observer, token=token, logger=logger, diag=diag)
    return run.run()
