# tests/test_bbox_cache.py

import pytest

from pipe_extractor.config import Config
from pipe_extractor.core.bbox import AffineTransform, ONE_MM_FT
from pipe_extractor.core.diagnostics import Diagnostics
from pipe_extractor.core.progress import CancellationToken
from pipe_extractor.revit import bbox_cache
from pipe_extractor.revit.bbox_cache import build_pipe_bbox_cache, representative_point
from tests.fakes import (
    FakeDocument,
    FakeLinkInstance,
    FakeLocationCurve,
    FakeLocationPoint,
    FakePipe,
    box,
    install_fake_revit,
)


@pytest.fixture(autouse=True)
def fake_revit(monkeypatch):
    install_fake_revit(monkeypatch)


def test_host_pipes_cached_by_id():
    doc = FakeDocument()
    doc.add(FakePipe(1, bbox=box((0, 0, 0), (1, 1, 1))), FakePipe(2, bbox=box((5, 5, 5), (6, 6, 6))))

    cache = build_pipe_bbox_cache(doc, Config())

    assert sorted(cache.host_boxes) == [1, 2]
    assert cache.host_box(2).min == (5.0, 5.0, 5.0)
    assert cache.links == {}


def test_pipe_without_bbox_gets_degenerate_box_at_curve_midpoint():
    doc = FakeDocument()
    doc.add(FakePipe(1, location=FakeLocationCurve((0, 0, 0), (10, 0, 0))))

    cache = build_pipe_bbox_cache(doc, Config())

    b = cache.host_box(1)
    assert b.center() == pytest.approx((5.0, 0.0, 0.0))
    assert b.max[0] - b.min[0] == pytest.approx(2 * ONE_MM_FT)


def test_pipe_without_any_geometry_is_listed_without_box():
    doc = FakeDocument()
    doc.add(FakePipe(1), FakePipe(2, raise_bbox=True, location=FakeLocationPoint((1, 1, 1))))

    cache = build_pipe_bbox_cache(doc, Config(), diag=Diagnostics())

    assert cache.host_box(1) is None
    assert cache.host_box(2) is not None
    assert [e.Id.Value for e in cache.host_elements] == [1, 2]
    assert cache.stats()["host_pipes"] == 2
    assert cache.stats()["host_boxes"] == 1


def test_linked_boxes_are_transformed_to_host_space():
    link_doc = FakeDocument(title="Linked", path="C:/links/mep.rvt")
    link_doc.add(FakePipe(1, bbox=box((0, 0, 0), (2, 1, 0))))
    doc = FakeDocument()
    doc.add(FakeLinkInstance(100, link_doc, AffineTransform.rotation_z(90.0, translation=(10, 0, 0))))

    cache = build_pipe_bbox_cache(doc, Config())

    infos = cache.linked(100)
    assert len(infos) == 1
    hb = infos[0].host_box
    assert hb.min == pytest.approx((9.0, 0.0, 0.0))
    assert hb.max == pytest.approx((10.0, 2.0, 0.0))
    assert infos[0].link_box.min == (0.0, 0.0, 0.0)
    assert infos[0].doc_key == "C:/links/mep.rvt"


def test_linked_pipe_without_bbox_uses_transformed_point():
    link_doc = FakeDocument(title="Linked")
    link_doc.add(FakePipe(1, location=FakeLocationPoint((1, 0, 0))))
    doc = FakeDocument()
    doc.add(FakeLinkInstance(100, link_doc, AffineTransform.translation((100, 0, 0))))

    cache = build_pipe_bbox_cache(doc, Config())

    hb = cache.linked(100)[0].host_box
    assert hb.center() == pytest.approx((101.0, 0.0, 0.0))


def test_link_without_transform_keeps_entry_without_host_box():
    class NoTransformLink(FakeLinkInstance):
        def GetTotalTransform(self):
            raise RuntimeError("no transform")

        def GetTransform(self):
            return None

    link_doc = FakeDocument(title="Linked")
    link_doc.add(FakePipe(1, bbox=box((0, 0, 0), (1, 1, 1))))
    doc = FakeDocument()
    doc.add(NoTransformLink(100, link_doc))

    cache = build_pipe_bbox_cache(doc, Config())

    assert cache.linked(100)[0].host_box is None
    assert cache.link_transforms[100] is None


def test_unloaded_link_is_skipped_silently():
    doc = FakeDocument()
    doc.add(FakeLinkInstance(100, link_doc=None))
    diag = Diagnostics()

    cache = build_pipe_bbox_cache(doc, Config(), diag=diag)

    assert not cache.has_link(100)
    assert cache.skipped_links == [100]
    assert diag.count("ERROR") == 0


def test_failing_link_leaves_other_links_cached(monkeypatch):
    good_doc = FakeDocument(title="Good")
    good_doc.add(FakePipe(1, bbox=box((0, 0, 0), (1, 1, 1))))
    bad_doc = FakeDocument(title="Bad")
    doc = FakeDocument()
    doc.add(FakeLinkInstance(100, bad_doc), FakeLinkInstance(200, good_doc))

    real = bbox_cache.collect_pipes

    def flaky(d, view_id=None):
        if d is bad_doc:
            raise RuntimeError("link read failed")
        return real(d, view_id)

    monkeypatch.setattr(bbox_cache, "collect_pipes", flaky)
    cache = build_pipe_bbox_cache(doc, Config())

    assert not cache.has_link(100)
    assert len(cache.linked(200)) == 1


def test_links_disabled_in_config():
    link_doc = FakeDocument(title="Linked")
    link_doc.add(FakePipe(1, bbox=box((0, 0, 0), (1, 1, 1))))
    doc = FakeDocument()
    doc.add(FakeLinkInstance(100, link_doc))

    cache = build_pipe_bbox_cache(doc, Config(include_linked_documents=False))

    assert cache.links == {}


def test_cancelled_token_stops_build():
    doc = FakeDocument()
    doc.add(FakePipe(1, bbox=box((0, 0, 0), (1, 1, 1))))
    token = CancellationToken()
    token.cancel()

    cache = build_pipe_bbox_cache(doc, Config(), token=token)

    assert cache.host_boxes == {}


def test_representative_point_prefers_curve_then_point_then_bbox():
    assert representative_point(FakePipe(1, location=FakeLocationCurve((0, 0, 0), (2, 2, 2)))) == (1.0, 1.0, 1.0)
    assert representative_point(FakePipe(2, location=FakeLocationPoint((3, 4, 5)))) == (3.0, 4.0, 5.0)
    assert representative_point(FakePipe(3, bbox=box((0, 0, 0), (4, 4, 4)))) == (2.0, 2.0, 2.0)
    assert representative_point(FakePipe(4)) is None
