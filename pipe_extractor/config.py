"""
Configuration for the pipe spec position extractor.

Defines the Config class with all parameters for cache building, view
candidate resolution, attribute lookup and report export.
"""

from .core.bbox import ONE_MM_FT, DEFAULT_POINT_EPSILON


DETECTION_GEOMETRY = "geometry"
DETECTION_TAGS = "tags"
DETECTION_BOTH = "both"

_DETECTION_MODES = (DETECTION_GEOMETRY, DETECTION_TAGS, DETECTION_BOTH)

DEFAULT_ALTERNATE_NAMES = (
    "Spec Position",
    "SpecPosition",
    "SPEC_POS",
    "Specification Position",
)

DEFAULT_DISCIPLINE_PARAMETERS = (
    "000_000_150_Discipline",
    "000_000_152_Discipline",
    "Discipline",
    "DISCIPLINE",
    "Sheet Discipline",
    "Sheet_Discipline",
)


class Config:
    """Configuration for one extraction run.

    Attributes:
        spec_position_parameter (str): Exact parameter name holding the value (default: "SPEC_POSITION")
        alternate_parameter_names (tuple): Known alternate display names, matched case-insensitively
        spec_name_tokens (tuple): Substrings meaning "specification" in a parameter name
        position_name_tokens (tuple): Substrings meaning "position" in a parameter name
        use_piping_system_fallback (bool): Use the piping system name when nothing else matches (default: True)
        include_linked_documents (bool): Cache and resolve pipes from loaded RVT links (default: True)
        detection_mode (str): "geometry" (pipes), "tags" (pipe tags) or "both" (default: "both")
        degenerate_half_width_ft (float): Half-width of synthesized boxes for geometry-less pipes (default: 1 mm)
        point_epsilon (float): Tolerance for point-in-crop tests (default: 1e-9)
        sheet_progress_share (float): Fraction of the progress bar used by sheet processing (default: 0.8)
        tag_value_pattern (str): Regex for spec positions found in tag text (default: digits-dash-digits)
        discipline_parameter_names (tuple): Sheet parameters tried in order for the discipline
        report_title (str): Worksheet title of the simple report
        detailed_report (bool): Write Summary/Detailed/Unique worksheets instead of one sheet
        verbose (bool): Record DEBUG log lines and dump parameters of elements without a value
        log_path (str|None): Append the run log to this file at the end of the run
        max_diag_events (int): Bound on stored diagnostics events

    Commentary:
        ✔ Linked pipes are boxed in host space through the link transform (8 corners, re-derived AABB)
        ✔ Unknown geometry is included, never dropped (false positives over false negatives)
        ⚠ Crop testing is a bbox approximation; it does not see view filters or hidden elements

    Example:
        >>> cfg = Config()
        >>> cfg.spec_position_parameter
        'SPEC_POSITION'
        >>> cfg.detection_mode
        'both'
    """

    def __init__(
        self,
        spec_position_parameter="SPEC_POSITION",
        alternate_parameter_names=DEFAULT_ALTERNATE_NAMES,
        spec_name_tokens=("SPEC", "SPECIFICATION"),
        position_name_tokens=("POS", "POSITION"),
        use_piping_system_fallback=True,
        include_linked_documents=True,
        detection_mode=DETECTION_BOTH,
        degenerate_half_width_ft=ONE_MM_FT,
        point_epsilon=DEFAULT_POINT_EPSILON,
        sheet_progress_share=0.8,
        tag_value_pattern=r"\d{1,4}-\d{1,4}",
        discipline_parameter_names=DEFAULT_DISCIPLINE_PARAMETERS,
        report_title="Pipe Report",
        detailed_report=False,
        verbose=False,
        log_path=None,
        max_diag_events=200,
    ):
        self.spec_position_parameter = str(spec_position_parameter)
        self.alternate_parameter_names = tuple(str(n) for n in (alternate_parameter_names or ()))
        self.spec_name_tokens = tuple(str(t).upper() for t in (spec_name_tokens or ()))
        self.position_name_tokens = tuple(str(t).upper() for t in (position_name_tokens or ()))
        self.use_piping_system_fallback = bool(use_piping_system_fallback)
        self.include_linked_documents = bool(include_linked_documents)
        self.detection_mode = str(detection_mode).lower()
        self.degenerate_half_width_ft = float(degenerate_half_width_ft)
        self.point_epsilon = float(point_epsilon)
        self.sheet_progress_share = float(sheet_progress_share)
        self.tag_value_pattern = str(tag_value_pattern)
        self.discipline_parameter_names = tuple(str(n) for n in (discipline_parameter_names or ()))
        self.report_title = str(report_title)
        self.detailed_report = bool(detailed_report)
        self.verbose = bool(verbose)
        self.log_path = log_path
        self.max_diag_events = int(max_diag_events)

        # Validate
        if not self.spec_position_parameter:
            raise ValueError("spec_position_parameter must be non-empty")
        if self.detection_mode not in _DETECTION_MODES:
            raise ValueError("detection_mode must be one of {0}".format(", ".join(_DETECTION_MODES)))
        if self.degenerate_half_width_ft <= 0:
            raise ValueError("degenerate_half_width_ft must be positive")
        if self.point_epsilon < 0:
            raise ValueError("point_epsilon must be non-negative")
        if not (0.0 < self.sheet_progress_share <= 1.0):
            raise ValueError("sheet_progress_share must be in (0, 1]")
        if not self.spec_name_tokens or not self.position_name_tokens:
            raise ValueError("spec_name_tokens and position_name_tokens must be non-empty")
        if self.max_diag_events < 0:
            raise ValueError("max_diag_events must be non-negative")
        if not self.report_title or len(self.report_title) > 31:
            # Excel worksheet titles are limited to 31 characters
            raise ValueError("report_title must be 1..31 characters")

    @property
    def detect_geometry(self):
        return self.detection_mode in (DETECTION_GEOMETRY, DETECTION_BOTH)

    @property
    def detect_tags(self):
        return self.detection_mode in (DETECTION_TAGS, DETECTION_BOTH)

    def to_dict(self):
        """Export configuration as dictionary for JSON serialization."""
        return {
            "spec_position_parameter": self.spec_position_parameter,
            "alternate_parameter_names": list(self.alternate_parameter_names),
            "spec_name_tokens": list(self.spec_name_tokens),
            "position_name_tokens": list(self.position_name_tokens),
            "use_piping_system_fallback": self.use_piping_system_fallback,
            "include_linked_documents": self.include_linked_documents,
            "detection_mode": self.detection_mode,
            "degenerate_half_width_ft": self.degenerate_half_width_ft,
            "point_epsilon": self.point_epsilon,
            "sheet_progress_share": self.sheet_progress_share,
            "tag_value_pattern": self.tag_value_pattern,
            "discipline_parameter_names": list(self.discipline_parameter_names),
            "report_title": self.report_title,
            "detailed_report": self.detailed_report,
            "verbose": self.verbose,
            "log_path": self.log_path,
            "max_diag_events": self.max_diag_events,
        }

    @classmethod
    def from_dict(cls, d):
        """Create Config from dictionary (e.g., from JSON)."""
        return cls(
            spec_position_parameter=d.get("spec_position_parameter", "SPEC_POSITION"),
            alternate_parameter_names=d.get("alternate_parameter_names", DEFAULT_ALTERNATE_NAMES),
            spec_name_tokens=d.get("spec_name_tokens", ("SPEC", "SPECIFICATION")),
            position_name_tokens=d.get("position_name_tokens", ("POS", "POSITION")),
            use_piping_system_fallback=d.get("use_piping_system_fallback", True),
            include_linked_documents=d.get("include_linked_documents", True),
            detection_mode=d.get("detection_mode", DETECTION_BOTH),
            degenerate_half_width_ft=d.get("degenerate_half_width_ft", ONE_MM_FT),
            point_epsilon=d.get("point_epsilon", DEFAULT_POINT_EPSILON),
            sheet_progress_share=d.get("sheet_progress_share", 0.8),
            tag_value_pattern=d.get("tag_value_pattern", r"\d{1,4}-\d{1,4}"),
            discipline_parameter_names=d.get("discipline_parameter_names", DEFAULT_DISCIPLINE_PARAMETERS),
            report_title=d.get("report_title", "Pipe Report"),
            detailed_report=d.get("detailed_report", False),
            verbose=d.get("verbose", False),
            log_path=d.get("log_path"),
            max_diag_events=d.get("max_diag_events", 200),
        )

    def __repr__(self):
        return "Config(detection_mode={0!r}, parameter={1!r}, links={2})".format(
            self.detection_mode, self.spec_position_parameter, self.include_linked_documents
        )


def require_config(cfg):
    """Return cfg or a default Config; reject dicts.

    cfg must be attribute based; a dict here usually means a caller forgot
    Config.from_dict().
    """
    if cfg is None:
        return Config()
    if isinstance(cfg, dict):
        raise TypeError("cfg must be pipe_extractor.config.Config (not dict)")
    return cfg
