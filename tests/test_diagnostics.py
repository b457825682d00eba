# tests/test_diagnostics.py

import json

from pipe_extractor.core.diagnostics import Diagnostics


def test_error_records_event_and_counts():
    diag = Diagnostics(max_events=10)

    try:
        raise ValueError("boom")
    except Exception as e:
        diag.error(
            phase="unit",
            callsite="test_error_records_event_and_counts",
            message="failed",
            exc=e,
            view_id=123,
            elem_id=456,
            doc_key="docA",
            extra={"k": "v"},
        )

    d = diag.to_dict()
    assert d["num_events"] == 1
    assert d["dropped_events"] == 0
    ev = d["events"][0]
    assert ev["level"] == "ERROR"
    assert ev["phase"] == "unit"
    assert ev["exc_type"] == "ValueError"
    assert "boom" in (ev["exc_message"] or "")
    assert ev["doc_key"] == "docA"
    json.dumps(d)


def test_event_cap_drops_but_counts_continue():
    diag = Diagnostics(max_events=2)

    for i in range(7):
        diag.error(phase="unit", callsite="cap", message="err", exc=RuntimeError(i))

    d = diag.to_dict()
    assert d["num_events"] == 2
    assert d["dropped_events"] == 5
    assert sum(d["counts"].values()) == 7
    assert diag.count("ERROR") == 7


def test_debug_dedupe_keeps_one_event_with_suppressed_count():
    diag = Diagnostics(max_events=10)
    for _ in range(4):
        diag.debug_dedupe(("link", 5), "bbox_cache", "linked_host_box", "omitted")

    d = diag.to_dict()
    assert d["num_events"] == 1
    assert d["events"][0]["extra"]["suppressed_count"] == 3
