"""
Per-sheet result containers.

SpecPositionSet collects values case-insensitively (first-seen casing is
kept) and seals into a SheetResult whose values are sorted
case-insensitively and immutable.
"""


def _fold(value):
    return value.casefold()


def clean_value(value):
    """Strip a raw attribute value; returns None for empty/non-string input."""
    if value is None:
        return None
    try:
        s = str(value).strip()
    except Exception:
        return None
    return s or None


def sort_key(value):
    # Ties on the folded form cannot happen inside one set; the raw value
    # keeps ordering deterministic across sets anyway.
    return (_fold(value), value)


class SpecPositionSet(object):
    """Ordered set of spec position strings with case-insensitive identity.

    Example:
        >>> s = SpecPositionSet()
        >>> s.add("b-2"); s.add("A-1"); s.add("a-1")
        True
        True
        False
        >>> s.sorted()
        ['A-1', 'b-2']
    """

    def __init__(self, values=None):
        self._by_key = {}
        for v in values or ():
            self.add(v)

    def add(self, value):
        """Add one value. Returns True if it was new (case-insensitively)."""
        v = clean_value(value)
        if v is None:
            return False
        k = _fold(v)
        if k in self._by_key:
            return False
        self._by_key[k] = v
        return True

    def update(self, values):
        added = 0
        for v in values or ():
            if self.add(v):
                added += 1
        return added

    def __contains__(self, value):
        v = clean_value(value)
        return v is not None and _fold(v) in self._by_key

    def __len__(self):
        return len(self._by_key)

    def __iter__(self):
        return iter(self._by_key.values())

    def sorted(self):
        return sorted(self._by_key.values(), key=sort_key)


class SheetResult(object):
    """Sealed outcome for one sheet: display name plus sorted distinct values."""

    __slots__ = ("sheet_name", "spec_positions", "error")

    def __init__(self, sheet_name, spec_positions=(), error=None):
        object.__setattr__(self, "sheet_name", str(sheet_name))
        values = SpecPositionSet(spec_positions).sorted()
        object.__setattr__(self, "spec_positions", tuple(values))
        object.__setattr__(self, "error", error)

    def __setattr__(self, name, value):
        raise AttributeError("SheetResult is immutable")

    @classmethod
    def seal(cls, sheet_name, value_set, error=None):
        return cls(sheet_name, value_set.sorted() if value_set is not None else (), error=error)

    @property
    def spec_positions_string(self):
        return ", ".join(self.spec_positions)

    def to_dict(self):
        return {
            "sheet_name": self.sheet_name,
            "spec_positions": list(self.spec_positions),
            "error": self.error,
        }

    def __eq__(self, other):
        if not isinstance(other, SheetResult):
            return NotImplemented
        return (self.sheet_name, self.spec_positions) == (other.sheet_name, other.spec_positions)

    def __hash__(self):
        return hash((self.sheet_name, self.spec_positions))

    def __repr__(self):
        return "SheetResult({0!r}, {1!r})".format(self.sheet_name, list(self.spec_positions))
