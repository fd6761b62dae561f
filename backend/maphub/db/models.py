"""Data models for maps, annotations and their semantic tags.

This module defines the core data structures used throughout the
application. A Map owns control points linking image pixels to real-world
coordinates; an Annotation is a shape drawn on a map together with a text
body and a list of Tags pointing at knowledge-base resources.

Example:
    Creating an annotation on a map with three control points:
        >>> from maphub.db import models as db_models
        >>> old_map = db_models.Map(
        ...     id="map-1",
        ...     width=4000,
        ...     height=3000,
        ...     raw_image_uri="http://example.org/maps/1.jpg",
        ...     tileset_url="http://example.org/tiles/1",
        ...     control_points=[
        ...         db_models.ControlPoint(x=0, y=0, lat=48.3, lng=16.2),
        ...         db_models.ControlPoint(x=4000, y=0, lat=48.3, lng=16.6),
        ...         db_models.ControlPoint(x=0, y=3000, lat=48.1, lng=16.2),
        ...     ],
        ... )
        >>> annotation = db_models.Annotation(
        ...     body="Old town hall",
        ...     wkt_data="POINT(2000 1500)",
        ...     map=old_map,
        ... )
"""

from __future__ import annotations

import dataclasses
import datetime

from maphub.core import errors

TRUNCATED_BODY_LENGTH = 30


@dataclasses.dataclass(frozen=True)
class ControlPoint:
    """Known correspondence between an image pixel and a lat/lng pair."""

    x: float
    y: float
    lat: float
    lng: float


@dataclasses.dataclass(frozen=True)
class Boundary:
    """Pixel bounding box of an annotation given by two opposite corners.

    Attributes:
        ne_x: Pixel x of the north-east (top-right) corner.
        ne_y: Pixel y of the north-east (top-right) corner.
        sw_x: Pixel x of the south-west (bottom-left) corner.
        sw_y: Pixel y of the south-west (bottom-left) corner.
    """

    ne_x: float
    ne_y: float
    sw_x: float
    sw_y: float


@dataclasses.dataclass
class User:
    username: str
    email: str


@dataclasses.dataclass
class Map:
    """A scanned, non-georeferenced map image.

    Attributes:
        id: Unique identifier for the map.
        width: Image width in pixels.
        height: Image height in pixels.
        raw_image_uri: URI of the full-resolution image.
        tileset_url: Base URL of the zoomable tile pyramid.
        control_points: Control points in registration order.
        title: Human-readable map title.
    """

    id: str
    width: int
    height: int
    raw_image_uri: str
    tileset_url: str = ""
    control_points: list[ControlPoint] = dataclasses.field(
        default_factory=list
    )
    title: str = ""

    @property
    def thumbnail_url(self) -> str:
        """URL of the lowest-resolution tile, used as a thumbnail."""
        return f"{self.tileset_url}/TileGroup0/0-0-0.jpg"


@dataclasses.dataclass
class Tag:
    """Semantic tag linking an annotation to a knowledge-base resource.

    Tags created by hand are accepted straight away; tags proposed by the
    discovery lookups start out unaccepted until a user confirms them.
    Only accepted tags are enriched and exported.

    Attributes:
        label: Display label of the resource.
        dbpedia_uri: URI identifying the knowledge-base resource.
        description: Short description (usually a truncated abstract).
        enrichment: Space-joined alternative labels, set by enrichment.
        accepted: Whether a user confirmed the tag.
    """

    label: str
    dbpedia_uri: str
    description: str = ""
    enrichment: str | None = None
    accepted: bool = False


@dataclasses.dataclass(frozen=True)
class TagCandidate:
    """A tag proposed by one of the discovery lookups, not yet persisted."""

    label: str
    dbpedia_uri: str
    description: str = ""


@dataclasses.dataclass
class Annotation:
    """A shape drawn on a map with a text body and semantic tags.

    Attributes:
        body: Free text written by the annotator (mandatory).
        wkt_data: Shape text, e.g. ``POLYGON((0 0,10 0,10 10,0 0))``.
        map: The annotated map (mandatory).
        user: Author of the annotation.
        id: Identifier assigned by the persistence layer.
        boundary: Pixel bounding box used for spatial queries.
        tags: Tags owned by this annotation.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.

    Raises:
        InvalidAnnotation: If body is empty or no map is given.
    """

    body: str
    wkt_data: str
    map: Map
    user: User | None = None
    id: str | None = None
    boundary: Boundary | None = None
    tags: list[Tag] = dataclasses.field(default_factory=list)
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    def __post_init__(self) -> None:
        if not self.body:
            raise errors.InvalidAnnotation("Annotation body is required")
        if self.map is None:
            raise errors.InvalidAnnotation("Annotation map is required")

    @property
    def truncated_body(self) -> str:
        if len(self.body) > TRUNCATED_BODY_LENGTH:
            return self.body[:TRUNCATED_BODY_LENGTH] + "..."
        return self.body

    @property
    def accepted_tags(self) -> list[Tag]:
        return [tag for tag in self.tags if tag.accepted]
