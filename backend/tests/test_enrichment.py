"""Tests for tag discovery and enrichment in maphub.services.enrichment.

Coverage:
    - Only accepted, unenriched tags are looked up and saved,
    - Failed lookups and failed saves never raise,
    - Parallel lookups still save every tag on the calling thread,
    - Map notification after save and destroy, even when it fails,
    - Footprint discovery through the control-point transform,
    - Candidate to proposed tag conversion.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import httpx
import pytest

from maphub.core import config, errors
from maphub.db import database
from maphub.db import models as db_models
from maphub.geometry import georeference, shapes
from maphub.services import enrichment, knowledge

if TYPE_CHECKING:
    from collections.abc import Iterable

CONTROL_POINTS = [
    db_models.ControlPoint(x=0, y=0, lat=48.0, lng=16.0),
    db_models.ControlPoint(x=1000, y=0, lat=48.0, lng=17.0),
    db_models.ControlPoint(x=0, y=1000, lat=47.0, lng=16.0),
]


class FakeKnowledgeClient:
    """Returns canned enrichments and records every lookup."""

    def __init__(
        self,
        enrichments: dict[str, str],
        nearby: Iterable[db_models.TagCandidate] = (),
        workers: int = 1,
    ) -> None:
        self.settings = config.Settings(enrichment_workers=workers)
        self.enrichments = enrichments
        self.nearby = list(nearby)
        self.looked_up: list[str] = []
        self.boxes: list[georeference.GeoBox] = []
        self.threads: set[int] = set()

    def fetch_enrichment(self, dbpedia_uri: str) -> str:
        self.looked_up.append(dbpedia_uri)
        self.threads.add(threading.get_ident())
        return self.enrichments.get(dbpedia_uri, "")

    def find_nearby(
        self, box: georeference.GeoBox, max_rows: int | None = None
    ) -> list[db_models.TagCandidate]:
        self.boxes.append(box)
        return self.nearby

    def extract_entities(self, text: str) -> list[db_models.TagCandidate]:
        return [db_models.TagCandidate(label=text, dbpedia_uri="urn:x")]


class FailingTagRepository:
    def save(self, tag: db_models.Tag) -> db_models.Tag:
        raise RuntimeError("database is gone")


class FailingMapNotifier(database.InMemoryMapNotifier):
    def touch(self, annotated_map: db_models.Map) -> None:
        raise RuntimeError("search index is down")


def _annotation(
    tags: list[db_models.Tag],
    control_points: list[db_models.ControlPoint] | None = None,
) -> db_models.Annotation:
    return db_models.Annotation(
        body="A church on the main square",
        wkt_data="POLYGON((100 100,300 100,300 400,100 100))",
        map=db_models.Map(
            id="map-1",
            width=1000,
            height=1000,
            raw_image_uri="http://example.org/map.jpg",
            control_points=list(control_points or []),
        ),
        id="annotation-1",
        tags=tags,
    )


def _tag(name: str, accepted: bool, enrichment: str | None = None) -> db_models.Tag:
    return db_models.Tag(
        label=name,
        dbpedia_uri=f"http://dbpedia.org/resource/{name}",
        enrichment=enrichment,
        accepted=accepted,
    )


def test_enrich_tags_only_accepted_and_unenriched() -> None:
    """Test that proposed and already enriched tags are not looked up."""
    accepted = _tag("Vienna", accepted=True)
    proposed = _tag("Graz", accepted=False)
    done = _tag("Linz", accepted=True, enrichment="Linz")
    annotation = _annotation([accepted, proposed, done])
    client = FakeKnowledgeClient({accepted.dbpedia_uri: "Vienna Wien Vienne"})
    repo = database.InMemoryTagRepository()

    enriched = enrichment.enrich_tags(annotation, client, repo)

    assert enriched == [accepted]
    assert client.looked_up == [accepted.dbpedia_uri]
    assert accepted.enrichment == "Vienna Wien Vienne"
    assert proposed.enrichment is None
    assert repo.get(accepted.dbpedia_uri) is accepted
    assert repo.save_count == 1


def test_enrich_tags_empty_result_leaves_tag_unchanged() -> None:
    tag = _tag("Atlantis", accepted=True)
    repo = database.InMemoryTagRepository()
    enriched = enrichment.enrich_tags(
        _annotation([tag]), FakeKnowledgeClient({}), repo
    )
    assert enriched == []
    assert tag.enrichment is None
    assert repo.save_count == 0


def test_enrich_tags_failed_save_does_not_raise() -> None:
    tag = _tag("Vienna", accepted=True)
    client = FakeKnowledgeClient({tag.dbpedia_uri: "Wien"})
    enriched = enrichment.enrich_tags(
        _annotation([tag]), client, FailingTagRepository()
    )
    assert enriched == []
    assert tag.enrichment is None


def test_enrich_tags_timeout_does_not_raise() -> None:
    """Test that a timing-out SPARQL endpoint leaves tags unenriched."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = knowledge.KnowledgeBaseClient(
        config.Settings(remote_timeout=0.01),
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    tag = _tag("Vienna", accepted=True)
    repo = database.InMemoryTagRepository()
    assert enrichment.enrich_tags(_annotation([tag]), client, repo) == []
    assert tag.enrichment is None


def test_enrich_tags_parallel_lookups() -> None:
    tags = [_tag(f"Place{i}", accepted=True) for i in range(6)]
    client = FakeKnowledgeClient(
        {tag.dbpedia_uri: tag.label.upper() for tag in tags}, workers=3
    )
    repo = database.InMemoryTagRepository()

    enriched = enrichment.enrich_tags(_annotation(tags), client, repo)

    assert enriched == tags
    assert [tag.enrichment for tag in tags] == [
        f"PLACE{i}" for i in range(6)
    ]
    assert repo.save_count == 6
    assert threading.get_ident() not in client.threads


def test_enrich_and_link_notifies_map() -> None:
    tag = _tag("Vienna", accepted=True)
    annotation = _annotation([tag])
    notifier = database.InMemoryMapNotifier()
    enrichment.enrich_and_link(
        annotation,
        FakeKnowledgeClient({tag.dbpedia_uri: "Wien"}),
        database.InMemoryTagRepository(),
        notifier,
    )
    assert tag.enrichment == "Wien"
    assert notifier.events == [("touch", "map-1"), ("reindex", "map-1")]


def test_enrich_and_link_failed_notification_does_not_raise() -> None:
    """Test that tags stay enriched when the map cannot be notified."""
    tag = _tag("Vienna", accepted=True)
    notifier = FailingMapNotifier()
    enriched = enrichment.enrich_and_link(
        _annotation([tag]),
        FakeKnowledgeClient({tag.dbpedia_uri: "Wien"}),
        database.InMemoryTagRepository(),
        notifier,
    )
    assert enriched == [tag]
    assert tag.enrichment == "Wien"
    assert notifier.events == [("reindex", "map-1")]


def test_notify_annotation_destroyed() -> None:
    notifier = database.InMemoryMapNotifier()
    enrichment.notify_annotation_destroyed(_annotation([]), notifier)
    assert notifier.events == [("touch", "map-1"), ("reindex", "map-1")]


def test_derive_shape() -> None:
    shape = enrichment.derive_shape(_annotation([]))
    assert isinstance(shape, shapes.Polygon)
    assert len(shape.points) == 4


def test_geo_coordinates_requires_control_points() -> None:
    assert enrichment.geo_coordinates(_annotation([])) == ""
    listing = enrichment.geo_coordinates(_annotation([], CONTROL_POINTS))
    first = [float(v) for v in listing.split(",")[0].split()]
    assert first == pytest.approx([47.9, 16.1])
    assert len(listing.split(",")) == 4


def test_discover_tags_from_footprint_uses_geo_box() -> None:
    """Test that the pixel footprint is converted before the lookup."""
    candidate = db_models.TagCandidate(label="Stephansdom",
                                       dbpedia_uri="urn:stephansdom")
    client = FakeKnowledgeClient({}, nearby=[candidate])
    annotated_map = _annotation([], CONTROL_POINTS).map
    boundary = db_models.Boundary(ne_x=800, ne_y=100, sw_x=200, sw_y=600)

    result = enrichment.discover_tags_from_footprint(
        annotated_map, boundary, client
    )

    assert result == [candidate]
    (box,) = client.boxes
    assert box.north == pytest.approx(47.9)
    assert box.west == pytest.approx(16.2)


def test_discover_tags_from_footprint_without_control_points() -> None:
    client = FakeKnowledgeClient({})
    annotated_map = _annotation([], CONTROL_POINTS[:2]).map
    boundary = db_models.Boundary(ne_x=1, ne_y=1, sw_x=0, sw_y=0)
    assert enrichment.discover_tags_from_footprint(
        annotated_map, boundary, client
    ) == []
    assert client.boxes == []


def test_discover_tags_from_footprint_collinear_raises() -> None:
    collinear = [
        db_models.ControlPoint(x=0, y=0, lat=48.0, lng=16.0),
        db_models.ControlPoint(x=1, y=1, lat=47.0, lng=17.0),
        db_models.ControlPoint(x=2, y=2, lat=46.0, lng=16.5),
    ]
    annotated_map = _annotation([], collinear).map
    boundary = db_models.Boundary(ne_x=1, ne_y=1, sw_x=0, sw_y=0)
    with pytest.raises(errors.DegenerateControlPoints):
        enrichment.discover_tags_from_footprint(
            annotated_map, boundary, FakeKnowledgeClient({})
        )


def test_discover_tags_from_text_delegates() -> None:
    result = enrichment.discover_tags_from_text(
        "Some text", FakeKnowledgeClient({})
    )
    assert result[0].label == "Some text"


def test_propose_tags_skips_known_resources() -> None:
    existing = _tag("Vienna", accepted=True)
    annotation = _annotation([existing])
    candidates = [
        db_models.TagCandidate(label="Vienna", dbpedia_uri=existing.dbpedia_uri),
        db_models.TagCandidate(label="Danube", dbpedia_uri="urn:danube",
                               description="River"),
        db_models.TagCandidate(label="Danube", dbpedia_uri="urn:danube"),
    ]
    added = enrichment.propose_tags(annotation, candidates)
    assert [tag.label for tag in added] == ["Danube"]
    assert added[0].accepted is False
    assert added[0].description == "River"
    assert len(annotation.tags) == 2
