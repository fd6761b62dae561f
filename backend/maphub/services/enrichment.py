"""Tag discovery and enrichment for annotations.

After an annotation is saved, :func:`enrich_and_link` looks up the labels
of every accepted tag that has no enrichment yet, stores the non-empty
results and asks the map notifier to touch and reindex the parent map.
Enrichment is best effort: a failing lookup or a failing tag save leaves
that tag unenriched and never fails the save that triggered it. A failing
map notification is only logged.

Tag discovery is on demand. :func:`discover_tags_from_text` and
:func:`discover_tags_from_footprint` return candidates; the caller decides
which of them to keep, for example through :func:`propose_tags`.

Example:
    Enrich tags after saving an annotation:
        >>> from maphub.services import enrichment, knowledge
        >>> client = knowledge.KnowledgeBaseClient(settings)
        >>> enrichment.enrich_and_link(annotation, client, tag_repo, notifier)
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import TYPE_CHECKING

from maphub.db import models as db_models
from maphub.geometry import georeference, shapes

if TYPE_CHECKING:
    from collections.abc import Iterable

    from maphub.db import database
    from maphub.services import knowledge

logger = logging.getLogger(__name__)


def derive_shape(annotation: db_models.Annotation) -> shapes.Shape:
    """Parse the annotation's shape text.

    Raises:
        MalformedGeometry: If the shape text is not valid.
    """
    return shapes.parse(annotation.wkt_data)


def geo_coordinates(annotation: db_models.Annotation) -> str:
    """Return the annotation's points as ``"lat lng,lat lng,..."``.

    Returns ``""`` when the map has fewer than three control points.
    """
    if not georeference.can_georeference(annotation.map):
        return ""
    transform = georeference.transform_for_map(annotation.map)
    return georeference.latlng_listing(derive_shape(annotation), transform)


def _lookup_enrichments(
    tags: list[db_models.Tag],
    client: knowledge.KnowledgeBaseClient,
    workers: int,
) -> list[str]:
    uris = [tag.dbpedia_uri for tag in tags]
    if workers <= 1 or len(uris) <= 1:
        return [client.fetch_enrichment(uri) for uri in uris]
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(client.fetch_enrichment, uris))


def enrich_tags(
    annotation: db_models.Annotation,
    client: knowledge.KnowledgeBaseClient,
    tag_repo: database.TagRepositoryProtocol,
) -> list[db_models.Tag]:
    """Store label enrichments on accepted, not yet enriched tags.

    Lookups may run on a thread pool (``enrichment_workers``); tags are
    always updated and saved one at a time on the calling thread.

    Returns:
        The tags that were enriched by this call.
    """
    pending = [tag for tag in annotation.accepted_tags if not tag.enrichment]
    if not pending:
        return []

    try:
        results = _lookup_enrichments(
            pending, client, client.settings.enrichment_workers
        )
    except Exception:  # noqa: BLE001
        logger.exception("Enrichment lookups failed for annotation %s",
                         annotation.id)
        return []

    enriched = []
    for tag, enrichment in zip(pending, results, strict=True):
        if not enrichment:
            continue
        logger.debug("Enriching tag: %s", tag.dbpedia_uri)
        previous = tag.enrichment
        tag.enrichment = enrichment
        try:
            tag_repo.save(tag)
        except Exception:  # noqa: BLE001
            tag.enrichment = previous
            logger.exception("Could not save enrichment of %s", tag.dbpedia_uri)
            continue
        enriched.append(tag)
    return enriched


def update_map(
    annotation: db_models.Annotation,
    notifier: database.MapNotifierProtocol,
) -> None:
    """Ask the map to refresh its timestamp and search index.

    A failing notifier is logged and never reaches the caller's save.
    """
    logger.debug("Informing map %s about annotation %s",
                 annotation.map.id, annotation.id)
    for notify in (notifier.touch, notifier.reindex):
        try:
            notify(annotation.map)
        except Exception:  # noqa: BLE001
            logger.exception("Could not notify map %s", annotation.map.id)


def enrich_and_link(
    annotation: db_models.Annotation,
    client: knowledge.KnowledgeBaseClient,
    tag_repo: database.TagRepositoryProtocol,
    notifier: database.MapNotifierProtocol,
) -> list[db_models.Tag]:
    """Run the post-save hook: enrich accepted tags, then refresh the map.

    Returns:
        The tags that were enriched.
    """
    enriched = enrich_tags(annotation, client, tag_repo)
    update_map(annotation, notifier)
    return enriched


def notify_annotation_destroyed(
    annotation: db_models.Annotation,
    notifier: database.MapNotifierProtocol,
) -> None:
    """Run the post-destroy hook: refresh the map that lost an annotation."""
    update_map(annotation, notifier)


def discover_tags_from_text(
    text: str,
    client: knowledge.KnowledgeBaseClient,
) -> list[db_models.TagCandidate]:
    return client.extract_entities(text)


def discover_tags_from_footprint(
    annotated_map: db_models.Map,
    boundary: db_models.Boundary,
    client: knowledge.KnowledgeBaseClient,
) -> list[db_models.TagCandidate]:
    """Find tags for places inside an annotation's pixel footprint.

    Maps with fewer than three control points cannot be located, so no
    lookup is made for them.

    Raises:
        DegenerateControlPoints: If the map's control points are collinear.
    """
    if not georeference.can_georeference(annotated_map):
        logger.debug("Map %s is not georeferenced, skipping nearby lookup",
                     annotated_map.id)
        return []

    transform = georeference.transform_for_map(annotated_map)
    box = georeference.pixel_box_to_geo(transform, boundary)
    return client.find_nearby(box)


def propose_tags(
    annotation: db_models.Annotation,
    candidates: Iterable[db_models.TagCandidate],
) -> list[db_models.Tag]:
    """Attach candidates as unaccepted tags, skipping known resources."""
    known = {tag.dbpedia_uri for tag in annotation.tags}
    added = []
    for candidate in candidates:
        if candidate.dbpedia_uri in known:
            continue
        known.add(candidate.dbpedia_uri)
        tag = db_models.Tag(
            label=candidate.label,
            dbpedia_uri=candidate.dbpedia_uri,
            description=candidate.description,
            accepted=False,
        )
        annotation.tags.append(tag)
        added.append(tag)
    return added
