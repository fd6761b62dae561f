"""Annotation tagging, georeferencing and export endpoints.

The endpoints are stateless: the client posts the annotation or map data
it works on and receives tag candidates, georeferenced coordinates or an
Open Annotation document back. Durable storage of annotations is handled
elsewhere.

Example:
    Propose tags for a piece of text:
        >>> response = client.post(
        ...     "/api/annotations/tags/text",
        ...     json={"text": "St. Stephen's Cathedral in Vienna"},
        ... )
        >>> response.json()
        >>> # [{"label": "Vienna", "dbpedia_uri": "...", "description": ...}]

    Export an annotation as Turtle:
        >>> response = client.post(
        ...     "/api/annotations/export",
        ...     params={"format": "turtle"},
        ...     json=annotation_payload,
        ... )
"""

from __future__ import annotations

import dataclasses
import datetime

import fastapi
import pydantic
from fastapi import responses

from maphub.core import config, errors
from maphub.db import models as db_models
from maphub.geometry import georeference, shapes
from maphub.services import enrichment, knowledge, linked_data

router = fastapi.APIRouter(prefix="/api/annotations", tags=["annotations"])


class ControlPointPayload(pydantic.BaseModel):
    x: float
    y: float
    lat: float
    lng: float


class BoundaryPayload(pydantic.BaseModel):
    ne_x: float
    ne_y: float
    sw_x: float
    sw_y: float


class MapPayload(pydantic.BaseModel):
    id: str
    width: int
    height: int
    raw_image_uri: str
    tileset_url: str = ""
    control_points: list[ControlPointPayload] = []


class UserPayload(pydantic.BaseModel):
    username: str
    email: str


class TagPayload(pydantic.BaseModel):
    label: str
    dbpedia_uri: str
    description: str = ""
    enrichment: str | None = None
    accepted: bool = False


class AnnotationPayload(pydantic.BaseModel):
    body: str
    wkt_data: str
    map: MapPayload
    user: UserPayload | None = None
    id: str | None = None
    tags: list[TagPayload] = []
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    base_uri: str | None = None


class TextTagsRequest(pydantic.BaseModel):
    text: str


class FootprintTagsRequest(pydantic.BaseModel):
    map: MapPayload
    boundary: BoundaryPayload


class GeoreferenceRequest(pydantic.BaseModel):
    wkt_data: str
    control_points: list[ControlPointPayload]


def _to_map(payload: MapPayload) -> db_models.Map:
    return db_models.Map(
        id=payload.id,
        width=payload.width,
        height=payload.height,
        raw_image_uri=payload.raw_image_uri,
        tileset_url=payload.tileset_url,
        control_points=[
            db_models.ControlPoint(**cp.model_dump())
            for cp in payload.control_points
        ],
    )


def _to_annotation(payload: AnnotationPayload) -> db_models.Annotation:
    """Build an Annotation from its payload.

    Raises:
        HTTPException: If the body is empty (422 status code).
    """
    try:
        return db_models.Annotation(
            body=payload.body,
            wkt_data=payload.wkt_data,
            map=_to_map(payload.map),
            user=(db_models.User(**payload.user.model_dump())
                  if payload.user else None),
            id=payload.id,
            tags=[db_models.Tag(**tag.model_dump()) for tag in payload.tags],
            created_at=payload.created_at,
            updated_at=payload.updated_at,
        )
    except errors.InvalidAnnotation as exc:
        raise fastapi.HTTPException(status_code=422, detail=str(exc)) from exc


def get_knowledge_client(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> knowledge.KnowledgeBaseClient:
    """Resolve the knowledge-base client dependency.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Returns:
        KnowledgeBaseClient talking to the configured services.
    """
    return knowledge.KnowledgeBaseClient(settings)


@router.post("/tags/text")
def tags_from_text(
    request: TextTagsRequest,
    client: knowledge.KnowledgeBaseClient = fastapi.Depends(get_knowledge_client),  # noqa: B008
) -> list[dict[str, str]]:
    """Propose tags for resources mentioned in a text.

    Texts shorter than the configured minimum length yield an empty list.
    Unreachable services also yield an empty list.
    """
    candidates = enrichment.discover_tags_from_text(request.text, client)
    return [dataclasses.asdict(candidate) for candidate in candidates]


@router.post("/tags/footprint")
def tags_from_footprint(
    request: FootprintTagsRequest,
    client: knowledge.KnowledgeBaseClient = fastapi.Depends(get_knowledge_client),  # noqa: B008
) -> list[dict[str, str]]:
    """Propose tags for places inside an annotation's pixel footprint.

    Raises:
        HTTPException: If the map's control points are collinear (422).
    """
    boundary = db_models.Boundary(**request.boundary.model_dump())
    try:
        candidates = enrichment.discover_tags_from_footprint(
            _to_map(request.map), boundary, client
        )
    except errors.GeoreferencingError as exc:
        raise fastapi.HTTPException(status_code=422, detail=str(exc)) from exc
    return [dataclasses.asdict(candidate) for candidate in candidates]


@router.post("/georeference")
def georeference_shape(
    request: GeoreferenceRequest,
) -> dict[str, str]:
    """Convert pixel shape text into lat/lng coordinates.

    The first three control points are used for the transform.

    Returns:
        ``wkt_data`` with every point as ``lat lng`` and ``latlng``, the
        comma-separated coordinate listing.

    Raises:
        HTTPException: If the shape is malformed or the control points are
            insufficient or collinear (422 status code).
    """
    points = [db_models.ControlPoint(**cp.model_dump())
              for cp in request.control_points]
    try:
        shape = shapes.parse(request.wkt_data)
        transform = georeference.fit_transform(
            points[:georeference.REQUIRED_CONTROL_POINTS]
        )
    except (errors.MalformedGeometry, errors.GeoreferencingError) as exc:
        raise fastapi.HTTPException(status_code=422, detail=str(exc)) from exc

    located = georeference.georeference_shape(shape, transform)
    return {
        "wkt_data": shapes.render_wkt(located),
        "latlng": georeference.latlng_listing(shape, transform),
    }


@router.post("/export")
def export_annotation(
    payload: AnnotationPayload,
    fmt: str = fastapi.Query("turtle", alias="format"),
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> responses.Response:
    """Export an annotation as an Open Annotation RDF document.

    Raises:
        HTTPException: If the format is unknown (400) or the shape text is
            malformed (422).
    """
    annotation = _to_annotation(payload)
    options = linked_data.SerializationOptions.from_settings(
        settings, payload.base_uri
    )
    try:
        content = linked_data.serialize(annotation, fmt, options)
    except errors.UnsupportedSerializationFormat as exc:
        raise fastapi.HTTPException(status_code=400, detail=str(exc)) from exc
    except errors.MalformedGeometry as exc:
        raise fastapi.HTTPException(status_code=422, detail=str(exc)) from exc

    return responses.Response(
        content=content,
        media_type=linked_data.media_type(fmt),
    )
