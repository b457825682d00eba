"""
Dynamo / RevitPythonShell entry point for the pipe spec position extractor.

Compatible with CPython3 (Dynamo 3.3+) and pyRevit/RevitPythonShell hosts.

Usage in a Dynamo CPython3 node:
    import sys
    sys.path.append(r'C:\\path\\to\\pipe_extractor_repo')

    from pipe_extractor.entry_dynamo import run_extraction, get_current_document
    from pipe_extractor.config import Config

    doc = get_current_document()
    cfg = Config(detection_mode="both", detailed_report=True)

    # IN[0]: list of ViewSheets (or None for every sheet)
    result = run_extraction(doc, IN[0], cfg, output_dir=r'C:\\temp\\reports')

    OUT = result
"""

import os

try:
    from .config import Config, require_config
    from .core.diagnostics import Diagnostics
    from .core.log import Logger
    from .core.progress import report_progress
    from .pipeline import ExtractionRun, ExtractionError, RunState
    from .report_export import write_report, default_report_filename, build_summary, ReportExportError
except ImportError:
    # Dynamo sometimes imports modules without package context; fall back to absolute.
    from pipe_extractor.config import Config, require_config
    from pipe_extractor.core.diagnostics import Diagnostics
    from pipe_extractor.core.log import Logger
    from pipe_extractor.core.progress import report_progress
    from pipe_extractor.pipeline import ExtractionRun, ExtractionError, RunState
    from pipe_extractor.report_export import write_report, default_report_filename, build_summary, ReportExportError


def get_current_document():
    """Get current Revit document (Dynamo CPython3 first, then pyRevit/RPS globals).

    Raises:
        RuntimeError: If not running in a Revit context
    """
    try:
        from RevitServices.Persistence import DocumentManager

        doc = DocumentManager.Instance.CurrentDBDocument
        if doc is not None:
            return doc
    except ImportError:
        pass  # Fall through to __revit__

    try:
        return __revit__.ActiveUIDocument.Document  # noqa: F821
    except NameError:
        pass

    raise RuntimeError(
        "Not running in Revit/Dynamo context. "
        "Pass the Document directly to run_extraction()."
    )


def _resolve_output_path(output_path, output_dir):
    if output_path:
        return output_path
    if not output_dir:
        return None
    return os.path.join(output_dir, default_report_filename())


def run_extraction(doc, sheets=None, cfg=None, output_path=None, output_dir=None,
                   observer=None, discipline=None, logger=None):
    """Extract spec positions for sheets and (optionally) write the report.

    Args:
        doc: Revit Document
        sheets: DrawingSheets, (name, sheet) pairs, ViewSheets, or None for all sheets
        cfg: Config (defaults if None)
        output_path: explicit report path (.xlsx or .csv)
        output_dir: folder for a default-named .xlsx report (used if output_path is None)
        observer: progress observer (report(percent, message), cancel_requested)
        discipline: only with sheets=None; keep sheets of this discipline

    Returns:
        {
            'success': bool,
            'state': run state,
            'sheets': [SheetResult.to_dict()],
            'report_path': str | None,
            'config': config dict,
            'errors': [str],
            'summary': dict,
            'stats': dict,
            'diagnostics': dict,
        }
    """
    cfg = require_config(cfg)
    logger = logger if logger is not None else Logger(enabled=True, verbose=cfg.verbose)
    diag = Diagnostics(max_events=cfg.max_diag_events)
    errors = []
    report_path = None

    if doc is None:
        return {"success": False, "state": RunState.FAILED, "sheets": [], "report_path": None,
                "config": cfg.to_dict(), "errors": ["doc is None"], "summary": {}, "stats": {},
                "diagnostics": diag.to_dict()}

    run = ExtractionRun(doc, sheets, cfg=cfg, observer=observer, logger=logger, diag=diag,
                        discipline=discipline if sheets is None else None)
    results = []
    try:
        results = run.run()
    except ExtractionError as e:
        errors.append(str(e))

    path = _resolve_output_path(output_path, output_dir)
    if path and run.state in (RunState.COMPLETED, RunState.CANCELLED):
        report_progress(observer, 90, "Generating report...")
        try:
            report_path = write_report(results, path, cfg=cfg)
            logger.info("Report written: {0}".format(report_path))
        except ReportExportError as e:
            errors.append(str(e))
            logger.error(str(e))
    if run.state == RunState.COMPLETED and not errors:
        report_progress(observer, 100, "Done")

    if cfg.log_path:
        logger.write_to(cfg.log_path)

    summary = build_summary(results)
    summary["state"] = run.state
    summary["num_errors"] = len(errors)
    return {
        "success": run.state == RunState.COMPLETED and not errors,
        "state": run.state,
        "sheets": [r.to_dict() for r in results],
        "report_path": report_path,
        "config": cfg.to_dict(),
        "errors": errors,
        "summary": summary,
        "stats": dict(run.stats),
        "diagnostics": diag.to_dict(),
    }


def quick_export_all_sheets(output_dir=None):
    """Run on every sheet of the current document with default config.

    Usage in a Dynamo Python console:
        >>> from pipe_extractor.entry_dynamo import quick_export_all_sheets
        >>> result = quick_export_all_sheets(r'C:\\temp')
        >>> print(result['summary'])
    """
    try:
        doc = get_current_document()
        return run_extraction(doc, None, Config(), output_dir=output_dir)
    except Exception as e:
        return {"success": False, "errors": [str(e)], "summary": {}}


if __name__ == "__main__":
    # When run as script in Dynamo, export every sheet next to the model
    OUT = quick_export_all_sheets()
