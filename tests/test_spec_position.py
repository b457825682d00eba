# tests/test_spec_position.py

import pytest

from pipe_extractor.config import Config
from pipe_extractor.core.diagnostics import Diagnostics
from pipe_extractor.revit.spec_position import (
    PIPING_SYSTEM_PARAM,
    by_alternate_name,
    by_case_insensitive_name,
    by_exact_name,
    by_name_heuristic,
    by_shared_heuristic,
    LocatorContext,
    dump_parameters,
    locate_spec_position,
    read_parameter_value,
)
from tests.fakes import BrokenParam, FakeDocument, FakeElement, FakeParam, FakePipe


def _ctx(doc=None, **cfg):
    return LocatorContext(doc, Config(**cfg))


def test_exact_name_wins_over_case_insensitive():
    pipe = FakePipe(1, params=[FakeParam("spec_position", "lower"), FakeParam("SPEC_POSITION", "exact")])

    located = locate_spec_position(pipe)

    assert located.value == "exact"
    assert located.step == "exact"
    assert located.parameter == "SPEC_POSITION"


def test_case_insensitive_match():
    pipe = FakePipe(1, params=[FakeParam("Spec_Position", "10-20")])
    assert by_exact_name(pipe, _ctx()) is None
    assert by_case_insensitive_name(pipe, _ctx()) == "10-20"
    assert locate_spec_position(pipe).step == "case_insensitive"


def test_alternate_names():
    pipe = FakePipe(1, params=[FakeParam("specification position", "474-90")])
    assert by_alternate_name(pipe, _ctx()) == "474-90"
    assert locate_spec_position(pipe).step == "alternate"


def test_alternates_follow_configured_order_not_parameter_order():
    pipe = FakePipe(1, params=[FakeParam("SPEC_POS", "short"), FakeParam("Spec Position", "long")])

    assert by_alternate_name(pipe, _ctx()) == "long"
    assert by_alternate_name(pipe, _ctx(alternate_parameter_names=("SPEC_POS", "Spec Position"))) == "short"


def test_heuristic_finds_value_but_never_beats_exact():
    heuristic_only = FakePipe(1, params=[FakeParam("MEP_Pos_Spec_Code", "30-40")])
    both = FakePipe(2, params=[FakeParam("MEP_Pos_Spec_Code", "30-40"), FakeParam("SPEC_POSITION", "10-20")])

    assert by_name_heuristic(heuristic_only, _ctx()) == "30-40"
    assert locate_spec_position(heuristic_only).step == "heuristic"
    assert locate_spec_position(both).value == "10-20"


def test_shared_heuristic_requires_shared_definition():
    local = FakePipe(1, params=[FakeParam("PosSpec", "1-1", shared=False)])
    shared = FakePipe(2, params=[FakeParam("PosSpec", "2-2", shared=True)])
    assert by_shared_heuristic(local, _ctx()) is None
    assert by_shared_heuristic(shared, _ctx()) == "2-2"


def test_empty_values_are_skipped():
    pipe = FakePipe(1, params=[FakeParam("SPEC_POSITION", "   "), FakeParam("Spec Position", "5-6")])
    assert locate_spec_position(pipe).value == "5-6"


def test_type_parameters_are_searched_after_instance():
    doc = FakeDocument()
    pipe_type = doc.add(FakeElement(50, params=[FakeParam("SPEC_POSITION", "TYPE-1")]))
    pipe = doc.add(FakePipe(1, type_id=50))

    located = locate_spec_position(pipe, doc)

    assert located.value == "TYPE-1"
    assert located.step == "type"


def test_piping_system_fallback_and_toggle():
    doc = FakeDocument()
    doc.add(FakeElement(70, name="Domestic Cold Water"))
    pipe = doc.add(FakePipe(1, builtin_params={
        PIPING_SYSTEM_PARAM: FakeParam("System Type", 70, storage="ElementId"),
    }))

    assert locate_spec_position(pipe, doc).value == "Domestic Cold Water"
    assert locate_spec_position(pipe, doc).step == "piping_system"
    assert locate_spec_position(pipe, doc, Config(use_piping_system_fallback=False)) is None


def test_failing_step_is_skipped_and_recorded():
    diag = Diagnostics()
    pipe = FakePipe(1, params=[BrokenParam("SPEC_POSITION", "x"), FakeParam("Spec Position", "7-8")])

    located = locate_spec_position(pipe, cfg=Config(), diag=diag)

    assert located.value == "7-8"
    assert diag.count("ERROR") >= 1


@pytest.mark.parametrize(
    "param,expected",
    [
        (FakeParam("p", "abc"), "abc"),
        (FakeParam("p", 12, storage="Integer"), "12"),
        (FakeParam("p", 2.0, storage="Double"), "2"),
        (FakeParam("p", 2.5, storage="Double"), "2.5"),
        (FakeParam("p", 150.0, storage="Double", value_string="150 mm"), "150"),
        (FakeParam("p", None), None),
    ],
)
def test_read_parameter_value_by_storage(param, expected):
    assert read_parameter_value(param) == expected


def test_element_id_parameter_resolves_name():
    doc = FakeDocument()
    doc.add(FakeElement(9, name="Spec A"))
    assert read_parameter_value(FakeParam("p", 9, storage="ElementId"), doc) == "Spec A"
    assert read_parameter_value(FakeParam("p", -1, storage="ElementId"), doc) is None


def test_dump_parameters_lists_every_parameter():
    lines = dump_parameters(FakePipe(1, params=[FakeParam("A", "x"), FakeParam("B", None)]))
    assert lines == ["A = x [String]", "B = (no value) [String]"]
