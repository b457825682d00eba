"""
Progress reporting and cooperative cancellation.

The extraction runs on a single worker. It pushes (percent, message) pairs
one way into an observer and polls a cancellation flag at loop boundaries
(per sheet, per viewport, per element). Nothing is interrupted mid-call.
"""


class CancellationToken(object):
    """Cooperative cancellation flag.

    Either cancelled directly via cancel(), or driven by a poll callable
    (typically an observer's cancel_requested).

    Example:
        >>> t = CancellationToken()
        >>> t.cancelled
        False
        >>> t.cancel()
        >>> t.cancelled
        True
    """

    def __init__(self, poll=None):
        self._flag = False
        self._poll = poll

    def cancel(self):
        self._flag = True

    @property
    def cancelled(self):
        if self._flag:
            return True
        if self._poll is None:
            return False
        try:
            if self._poll():
                self._flag = True
        except Exception as e:
            print("[WARN] pipe_extractor.progress: cancellation poll failed ({0}: {1})".format(type(e).__name__, e))
        return self._flag

    @classmethod
    def from_observer(cls, observer):
        """Token that follows observer.cancel_requested (None -> never cancelled)."""
        if observer is None:
            return cls()
        return cls(poll=lambda: bool(getattr(observer, "cancel_requested", False)))


class ProgressChannel(object):
    """Latest-value progress sink.

    report() never blocks; readers only look at `latest`. An optional
    callback is invoked fire-and-forget on every report.
    """

    def __init__(self, callback=None):
        self.callback = callback
        self.latest = (0, "")
        self.cancel_requested = False

    def report(self, percent, message=""):
        pct = int(max(0, min(100, int(percent))))
        self.latest = (pct, message or "")
        if self.callback is not None:
            try:
                self.callback(pct, message or "")
            except Exception as e:
                print("[WARN] pipe_extractor.progress: progress callback failed ({0}: {1})".format(type(e).__name__, e))

    def request_cancel(self):
        self.cancel_requested = True


def report_progress(observer, percent, message):
    """Push progress to an optional observer; observer failures are ignored."""
    if observer is None:
        return
    try:
        observer.report(percent, message)
    except Exception as e:
        print("[WARN] pipe_extractor.progress: observer.report failed ({0}: {1})".format(type(e).__name__, e))


def sheet_progress_percent(done, total, share=0.8):
    """Percentage for `done` of `total` sheets, scaled into the first `share` of the bar.

    The remainder is reserved for report generation.
    """
    if not total:
        return int(round(100 * share))
    frac = max(0.0, min(1.0, float(done) / float(total)))
    # round first: 0.7 * 100 is 69.999... in binary floating point
    return int(round(frac * share * 100.0, 6))
