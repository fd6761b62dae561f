"""Open Annotation export of map annotations.

An annotation is written as a small RDF graph:

- the annotation resource with its type, timestamps, generator and an
  annotator node carrying the author's mailbox and name,
- a body node holding the annotation text as ``ct:ContentAsText``,
- a target node (``oa:SpecificResource``) with an SVG selector and a WKT
  selector, whose source is the raw map image,
- one ``oax:hasSemanticTag`` link per accepted tag.

Intermediate nodes get ``urn:uuid:`` identifiers from time-based UUIDs, so
no two nodes of one export share an identifier.

Example:
    Export an annotation as Turtle:
        >>> from maphub.services import linked_data
        >>> data = linked_data.serialize(
        ...     annotation,
        ...     "turtle",
        ...     linked_data.SerializationOptions(
        ...         base_uri="http://maphub.info/annotations/1",
        ...         host="http://maphub.info",
        ...     ),
        ... )
"""

from __future__ import annotations

import dataclasses
import uuid
from typing import TYPE_CHECKING

import rdflib
from rdflib.namespace import DCTERMS, RDF, XSD

from maphub.core import errors
from maphub.geometry import shapes

if TYPE_CHECKING:
    from maphub.core import config
    from maphub.db import models as db_models

OA = rdflib.Namespace("http://www.w3.org/ns/openannotation/core/")
OAX = rdflib.Namespace("http://www.w3.org/ns/openannotation/extensions/")
CT = rdflib.Namespace("http://www.w3.org/2011/content#")
FOAF = rdflib.Namespace("http://xmlns.com/foaf/spec/")

PREFIXES = {
    "dcterms": DCTERMS,
    "oa": OA,
    "ct": CT,
    "rdf": RDF,
    "foaf": FOAF,
    "oax": OAX,
}

# Accepted format names mapped to rdflib serializer plugins.
FORMATS = {
    "turtle": "turtle",
    "ttl": "turtle",
    "n3": "n3",
    "ntriples": "nt",
    "nt": "nt",
    "xml": "xml",
    "rdf": "xml",
    "rdfxml": "xml",
    "json-ld": "json-ld",
    "jsonld": "json-ld",
}

MEDIA_TYPES = {
    "turtle": "text/turtle",
    "n3": "text/n3",
    "nt": "application/n-triples",
    "xml": "application/rdf+xml",
    "json-ld": "application/ld+json",
}


@dataclasses.dataclass(frozen=True)
class SerializationOptions:
    """Where the exported annotation lives and who generated it."""

    base_uri: str = "http://example.com/missingBaseURI"
    host: str = "http://maphub.info"

    @classmethod
    def from_settings(
        cls,
        settings: config.Settings,
        base_uri: str | None = None,
    ) -> SerializationOptions:
        return cls(
            base_uri=base_uri or settings.default_base_uri,
            host=settings.generator_host,
        )


def resolve_format(name: str) -> str:
    """Return the rdflib plugin name for a user-facing format name.

    Raises:
        UnsupportedSerializationFormat: If the name is unknown.
    """
    key = name.strip().lower().replace("_", "-")
    if key not in FORMATS:
        raise errors.UnsupportedSerializationFormat(
            f"Unsupported RDF format: {name!r}"
        )
    return FORMATS[key]


def media_type(name: str) -> str:
    return MEDIA_TYPES[resolve_format(name)]


def _new_node() -> rdflib.URIRef:
    return rdflib.URIRef(uuid.uuid1().urn)


def build_graph(
    annotation: db_models.Annotation,
    options: SerializationOptions,
) -> rdflib.Graph:
    """Assemble the Open Annotation graph of one annotation.

    Raises:
        MalformedGeometry: If the annotation's shape text is invalid.
    """
    base = rdflib.URIRef(options.base_uri)
    graph = rdflib.Graph()
    for prefix, namespace in PREFIXES.items():
        graph.bind(prefix, namespace)

    graph.add((base, RDF.type, OA.Annotation))
    if annotation.created_at is not None:
        graph.add((base, OA.annotated,
                   rdflib.Literal(annotation.created_at, datatype=XSD.dateTime)))
    if annotation.updated_at is not None:
        graph.add((base, OA.generated,
                   rdflib.Literal(annotation.updated_at, datatype=XSD.dateTime)))
    graph.add((base, OA.generator, rdflib.URIRef(options.host)))

    if annotation.user is not None:
        user_node = _new_node()
        graph.add((base, OA.annotator, user_node))
        graph.add((user_node, FOAF.mbox, rdflib.Literal(annotation.user.email)))
        graph.add((user_node, FOAF.name,
                   rdflib.Literal(annotation.user.username)))

    for tag in annotation.accepted_tags:
        graph.add((base, OAX.hasSemanticTag, rdflib.URIRef(tag.dbpedia_uri)))

    body_node = _new_node()
    graph.add((base, OA.hasBody, body_node))
    graph.add((body_node, RDF.type, CT.ContentAsText))
    graph.add((body_node, CT.chars, rdflib.Literal(annotation.body)))
    graph.add((body_node, DCTERMS.format, rdflib.Literal("text/plain")))

    annotated_map = annotation.map
    shape = shapes.parse(annotation.wkt_data)
    target = _new_node()
    graph.add((base, OA.hasTarget, target))
    graph.add((target, RDF.type, OA.SpecificResource))

    # Points have no SVG rendering, so they only get the WKT selector.
    svg = shapes.render_svg_document(
        shape, annotated_map.width, annotated_map.height
    )
    if svg:
        svg_selector = _new_node()
        graph.add((target, OA.hasSelector, svg_selector))
        graph.add((svg_selector, RDF.type, CT.ContentAsText))
        graph.add((svg_selector, DCTERMS.format, rdflib.Literal("image/svg")))
        graph.add((svg_selector, CT.chars, rdflib.Literal(svg)))

    wkt_selector = _new_node()
    graph.add((target, OA.hasSelector, wkt_selector))
    graph.add((wkt_selector, RDF.type, CT.ContentAsText))
    graph.add((wkt_selector, DCTERMS.format, rdflib.Literal("application/wkt")))
    graph.add((wkt_selector, CT.chars, rdflib.Literal(annotation.wkt_data)))

    graph.add((target, OA.hasSource, rdflib.URIRef(annotated_map.raw_image_uri)))
    return graph


def serialize(
    annotation: db_models.Annotation,
    fmt: str,
    options: SerializationOptions | None = None,
) -> bytes:
    """Serialize an annotation in the requested RDF syntax.

    Args:
        annotation: Annotation to export.
        fmt: One of ``turtle``, ``n3``, ``nt``, ``xml`` or ``json-ld``
            (aliases such as ``ttl`` and ``rdfxml`` are accepted).
        options: Annotation URI and generator host.

    Returns:
        The UTF-8 encoded document.

    Raises:
        UnsupportedSerializationFormat: If the format is unknown.
        MalformedGeometry: If the annotation's shape text is invalid.
    """
    plugin = resolve_format(fmt)
    graph = build_graph(annotation, options or SerializationOptions())
    return graph.serialize(format=plugin, encoding="utf-8")
