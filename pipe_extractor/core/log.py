"""
Logging utilities for the pipe extractor.

Provides a simple Logger class that:
- Timestamps all messages
- Accumulates log lines in memory
- Optionally prints to console
- Supports debug/info/warn/error levels (debug only when verbose)
"""

import datetime
import os


class Logger(object):
    """
    Run logger.

    Accumulates log messages with timestamps and optional console output.
    All messages are stored in memory (self.lines) for later export.
    """

    def __init__(self, enabled=True, verbose=False, prefix="pipe_extractor"):
        """
        Args:
            enabled (bool): If True, print messages to console. If False, only store in memory.
            verbose (bool): If True, DEBUG lines are recorded; otherwise they are dropped.
            prefix (str): Source label written after the level.
        """
        self.enabled = bool(enabled)
        self.verbose = bool(verbose)
        self.prefix = prefix
        self.lines = []

    def _write(self, level, msg):
        ts = datetime.datetime.now().strftime("%H:%M:%S")
        line = "[{0}] {1}: {2}: {3}".format(ts, level, self.prefix, msg)
        self.lines.append(line)
        if self.enabled:
            try:
                print(line)
            except Exception:
                pass

    def debug(self, msg):
        if self.verbose:
            self._write("DEBUG", msg)

    def info(self, msg):
        self._write("INFO", msg)

    def warn(self, msg):
        self._write("WARN", msg)

    def error(self, msg):
        self._write("ERROR", msg)

    def dump(self):
        """Return a copy of all accumulated log lines."""
        return list(self.lines)

    def write_to(self, path):
        """Append accumulated lines to a text file. Returns True on success.

        Best effort: a log file must never fail the run.
        """
        if not path:
            return False
        try:
            folder = os.path.dirname(path)
            if folder and not os.path.isdir(folder):
                os.makedirs(folder)
            with open(path, "a", encoding="utf-8") as f:
                for line in self.lines:
                    f.write(line + "\n")
            return True
        except Exception as e:
            print("[WARN] pipe_extractor.log: could not write log file '{0}': {1}".format(path, e))
            return False


class NullLogger(Logger):
    """Logger that records nothing (used when callers pass no logger)."""

    def __init__(self):
        Logger.__init__(self, enabled=False, verbose=False)

    def _write(self, level, msg):
        return None


def ensure_logger(logger):
    return logger if logger is not None else NullLogger()
