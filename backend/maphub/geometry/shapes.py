"""Parsing and rendering of annotation shapes.

Annotations store their geometry as WKT-like text using exactly three
tags: ``POINT(x y)``, ``LINESTRING(x y,x y,...)`` and
``POLYGON((x y,x y,...))``. This module turns such text into immutable
shape objects and renders them back to shape text or to SVG markup.

Coordinates are plain decimals (an optional sign, digits and an optional
fractional part). Exponents, locale separators and polygon holes are not
part of the grammar and are rejected.

Example:
    Parse a polygon and render it as SVG:
        >>> from maphub.geometry import shapes
        >>> polygon = shapes.parse("POLYGON((0 0,10 0,10 10,0 10,0 0))")
        >>> len(polygon.points)
        5
        >>> shapes.render_vector_markup(polygon)
        '<polygon xmlns="http://www.w3.org/2000/svg" points="0 0 10 0 ..." />'
"""

from __future__ import annotations

import dataclasses
import re
from typing import TYPE_CHECKING

import numpy as np

from maphub.core import errors

if TYPE_CHECKING:
    from collections.abc import Callable

SVG_NAMESPACE = "http://www.w3.org/2000/svg"

_SHAPE_RE = re.compile(
    r"^\s*(?P<tag>[A-Za-z]+)\s*\((?P<body>.*)\)\s*$",
    re.DOTALL,
)
_NUMBER_RE = re.compile(r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)")


@dataclasses.dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclasses.dataclass(frozen=True)
class Linestring:
    """Open path through two or more points."""

    points: tuple[Point, ...]


@dataclasses.dataclass(frozen=True)
class Polygon:
    """Closed ring; the first and last point normally coincide."""

    points: tuple[Point, ...]


Shape = Point | Linestring | Polygon


def format_number(value: float) -> str:
    """Render a coordinate without exponent and without a trailing ``.0``."""
    return np.format_float_positional(float(value), trim="-")


def _parse_number(token: str, text: str) -> float:
    if not _NUMBER_RE.fullmatch(token):
        raise errors.MalformedGeometry(
            f"Invalid coordinate {token!r} in shape: {text}"
        )
    return float(token)


def _parse_pair(pair: str, text: str) -> Point:
    tokens = pair.split()
    if len(tokens) != 2:
        raise errors.MalformedGeometry(
            f"Expected 'x y' coordinate pair, got {pair!r} in shape: {text}"
        )
    return Point(_parse_number(tokens[0], text), _parse_number(tokens[1], text))


def _parse_point_list(body: str, text: str) -> tuple[Point, ...]:
    return tuple(_parse_pair(pair, text) for pair in body.split(","))


def parse(text: str) -> Shape:
    """Parse shape text into a Point, Linestring or Polygon.

    Args:
        text: Shape text such as ``LINESTRING(1 2,3 4)``.

    Returns:
        The parsed shape.

    Raises:
        MalformedGeometry: If the tag is unknown, the parentheses do not
            match the tag, a coordinate is not a decimal number, or the
            shape has too few points.
    """
    match = _SHAPE_RE.match(text or "")
    if match is None:
        raise errors.MalformedGeometry(f"Unknown shape: {text!r}")

    tag = match.group("tag").upper()
    body = match.group("body").strip()

    if tag == "POINT":
        return _parse_pair(body, text)

    if tag == "LINESTRING":
        points = _parse_point_list(body, text)
        if len(points) < 2:
            raise errors.MalformedGeometry(
                f"LINESTRING needs at least two points: {text}"
            )
        return Linestring(points)

    if tag == "POLYGON":
        if not (body.startswith("(") and body.endswith(")")):
            raise errors.MalformedGeometry(
                f"POLYGON ring must be wrapped in parentheses: {text}"
            )
        ring = body[1:-1]
        if "(" in ring or ")" in ring:
            raise errors.MalformedGeometry(
                f"POLYGON with more than one ring is not supported: {text}"
            )
        points = _parse_point_list(ring, text)
        if len(points) < 3:
            raise errors.MalformedGeometry(
                f"POLYGON needs at least three points: {text}"
            )
        return Polygon(points)

    raise errors.MalformedGeometry(f"Unknown shape: {text!r}")


def points_of(shape: Shape) -> tuple[Point, ...]:
    """Return the ordered points of any shape."""
    if isinstance(shape, Point):
        return (shape,)
    return shape.points


def map_points(shape: Shape, func: Callable[[Point], Point]) -> Shape:
    """Return a shape of the same kind with ``func`` applied to each point."""
    if isinstance(shape, Point):
        return func(shape)
    return dataclasses.replace(
        shape, points=tuple(func(point) for point in shape.points)
    )


def _pair_text(point: Point) -> str:
    return f"{format_number(point.x)} {format_number(point.y)}"


def render_wkt(shape: Shape) -> str:
    """Render a shape back to shape text accepted by :func:`parse`."""
    if isinstance(shape, Point):
        return f"POINT({_pair_text(shape)})"

    pairs = ",".join(_pair_text(point) for point in shape.points)
    if isinstance(shape, Polygon):
        return f"POLYGON(({pairs}))"
    return f"LINESTRING({pairs})"


def render_vector_markup(
    shape: Shape,
    transform: Callable[[Point], Point] | None = None,
) -> str:
    """Render a Linestring or Polygon as an SVG element.

    Points are written as space-separated ``x y`` pairs. Points have no
    SVG rendering; an empty string is returned for them.

    Args:
        shape: Shape to render.
        transform: Optional function applied to every point first.

    Returns:
        A ``<polyline>`` or ``<polygon>`` element, or ``""`` for a Point.
    """
    if isinstance(shape, Point):
        return ""

    if transform is not None:
        shape = map_points(shape, transform)

    coordinates = " ".join(_pair_text(point) for point in shape.points)
    element = "polygon" if isinstance(shape, Polygon) else "polyline"
    return f'<{element} xmlns="{SVG_NAMESPACE}" points="{coordinates}" />'


def render_svg_document(shape: Shape, width: int, height: int) -> str:
    """Wrap :func:`render_vector_markup` in an SVG sized like the image.

    Returns:
        A standalone SVG document, or ``""`` when the shape has no
        vector rendering.
    """
    element = render_vector_markup(shape)
    if not element:
        return ""
    return (
        '<?xml version="1.0" standalone="no"?>\n'
        f'<svg xmlns="{SVG_NAMESPACE}" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}">{element}</svg>'
    )
