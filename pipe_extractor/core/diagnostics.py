# pipe_extractor/core/diagnostics.py

def _exc_to_str(e):
    try:
        return str(e)
    except Exception:
        return "<unstringifiable exception>"


class Diagnostics(object):
    """
    Structured diagnostics recorder for one extraction run.

    - Bounded event storage (max_events); overflow only bumps counters
    - Aggregated counts per level|phase|callsite|exc_type
    - JSON-safe output via to_dict()
    - Never raises: recording problems must not break the run
    """

    LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")

    def __init__(self, max_events=200):
        self.max_events = int(max_events)
        self.events = []
        self.counts = {}
        self.dropped_events = 0

        # dedupe_key -> {"index": int|None, "suppressed": int}
        self._dedupe = {}

    def _count_key(self, level, phase, callsite, exc_type):
        return "{}|{}|{}|{}".format(level, phase, callsite, exc_type or "")

    def _payload(self, level, phase, callsite, message, exc, sheet, view_id, elem_id, doc_key, extra):
        return {
            "level": level,
            "phase": phase,
            "callsite": callsite,
            "message": message,
            "exc_type": type(exc).__name__ if exc is not None else None,
            "exc_message": _exc_to_str(exc) if exc is not None else None,
            "sheet": sheet,
            "view_id": view_id,
            "elem_id": elem_id,
            "doc_key": doc_key,
            "extra": dict(extra or {}),
        }

    def _record(self, payload):
        try:
            key = self._count_key(
                payload.get("level"),
                payload.get("phase"),
                payload.get("callsite"),
                payload.get("exc_type"),
            )
            self.counts[key] = self.counts.get(key, 0) + 1

            if len(self.events) >= self.max_events:
                self.dropped_events += 1
                return None

            self.events.append(payload)
            return len(self.events) - 1
        except Exception:
            return None

    def _emit(self, level, phase, callsite, message, exc=None, sheet=None,
              view_id=None, elem_id=None, doc_key=None, extra=None):
        return self._record(
            self._payload(level, phase, callsite, message, exc, sheet, view_id, elem_id, doc_key, extra)
        )

    def debug(self, phase, callsite, message, **kwargs):
        self._emit("DEBUG", phase, callsite, message, **kwargs)

    def info(self, phase, callsite, message, **kwargs):
        self._emit("INFO", phase, callsite, message, **kwargs)

    def warn(self, phase, callsite, message, **kwargs):
        self._emit("WARN", phase, callsite, message, **kwargs)

    def error(self, phase, callsite, message, exc=None, **kwargs):
        self._emit("ERROR", phase, callsite, message, exc=exc, **kwargs)

    def debug_dedupe(self, dedupe_key, phase, callsite, message, **kwargs):
        """Record at most one DEBUG event per dedupe_key, with a suppressed_count.

        Intended for per-element "fell back; continuing" paths that would
        otherwise flood the event list on large models.
        """
        entry = self._dedupe.get(dedupe_key)
        if entry is None:
            extra = dict(kwargs.pop("extra", None) or {})
            extra.setdefault("suppressed_count", 0)
            idx = self._emit("DEBUG", phase, callsite, message, extra=extra, **kwargs)
            self._dedupe[dedupe_key] = {"index": idx, "suppressed": 0}
            return

        entry["suppressed"] += 1
        idx = entry.get("index")
        if idx is not None and 0 <= idx < len(self.events):
            try:
                self.events[idx]["extra"]["suppressed_count"] = entry["suppressed"]
            except Exception:
                pass

    def count(self, level):
        """Total recorded events for a level (including dropped ones)."""
        prefix = "{}|".format(level)
        return sum(n for k, n in self.counts.items() if k.startswith(prefix))

    def to_dict(self):
        return {
            "max_events": self.max_events,
            "num_events": len(self.events),
            "dropped_events": self.dropped_events,
            "counts": dict(self.counts),
            "events": list(self.events),
        }
