"""Tests for the shape grammar in maphub.geometry.shapes.

Coverage:
    - Parsing of POINT, LINESTRING and POLYGON text into shapes,
    - Rejection of unknown tags and non-decimal coordinates,
    - WKT rendering that parses back to the same points,
    - SVG rendering of lines and polygons (and none for points).
"""

from __future__ import annotations

import pytest

from maphub.core import errors
from maphub.geometry import shapes


def test_parse_point() -> None:
    """Test that POINT text parses to a single point."""
    shape = shapes.parse("POINT(10 20)")
    assert shape == shapes.Point(10.0, 20.0)


def test_parse_linestring() -> None:
    shape = shapes.parse("LINESTRING(1.5 2,3 -4.25, 5 6)")
    assert isinstance(shape, shapes.Linestring)
    assert shape.points == (
        shapes.Point(1.5, 2.0),
        shapes.Point(3.0, -4.25),
        shapes.Point(5.0, 6.0),
    )


def test_parse_polygon() -> None:
    """Test that a closed ring keeps all five points in order."""
    shape = shapes.parse("POLYGON((0 0,10 0,10 10,0 10,0 0))")
    assert isinstance(shape, shapes.Polygon)
    assert len(shape.points) == 5
    assert shape.points[0] == shape.points[-1]
    assert shape.points[2] == shapes.Point(10.0, 10.0)


def test_parse_is_case_and_whitespace_tolerant() -> None:
    shape = shapes.parse("  linestring ( 0 0 , 1 1 ) ")
    assert shape == shapes.Linestring((shapes.Point(0, 0), shapes.Point(1, 1)))


@pytest.mark.parametrize(
    "text",
    [
        "",
        "CIRCLE(1 2)",
        "MULTIPOINT((1 2))",
        "POINT 1 2",
        "POINT(1)",
        "POINT(1 2 3)",
        "POINT(a b)",
        "POINT(1e5 2)",
        "LINESTRING(1 2)",
        "LINESTRING(1 2,,3 4)",
        "POLYGON(0 0,1 0,1 1,0 0)",
        "POLYGON((0 0,1 0,1 1,0 0),(0 0,1 1,1 0,0 0))",
        "POLYGON((0 0,1 1))",
    ],
)
def test_parse_rejects_malformed_text(text: str) -> None:
    """Test that invalid shape text raises MalformedGeometry."""
    with pytest.raises(errors.MalformedGeometry):
        shapes.parse(text)


@pytest.mark.parametrize(
    "text",
    [
        "POINT(10 20)",
        "POINT(-0.000001 123456.789)",
        "LINESTRING(0.1 0.2,100 200,-3.5 7)",
        "POLYGON((0 0,10 0,10 10,0 10,0 0))",
    ],
)
def test_render_wkt_round_trip(text: str) -> None:
    """Test that rendered WKT parses back to the same points."""
    shape = shapes.parse(text)
    rendered = shapes.render_wkt(shape)
    assert shapes.parse(rendered) == shape


def test_render_wkt_format() -> None:
    shape = shapes.parse("POLYGON((0 0, 10.50 0, 10 10, 0 0))")
    assert shapes.render_wkt(shape) == "POLYGON((0 0,10.5 0,10 10,0 0))"


def test_render_vector_markup_polygon() -> None:
    """Test that polygons render as an SVG polygon with comma-free points."""
    shape = shapes.parse("POLYGON((0 0,10 0,10 10,0 10,0 0))")
    markup = shapes.render_vector_markup(shape)
    assert markup.startswith("<polygon ")
    assert 'points="0 0 10 0 10 10 0 10 0 0"' in markup
    assert shapes.SVG_NAMESPACE in markup


def test_render_vector_markup_linestring_with_transform() -> None:
    shape = shapes.parse("LINESTRING(1 2,3 4)")
    markup = shapes.render_vector_markup(
        shape, lambda p: shapes.Point(p.x * 2, p.y + 1)
    )
    assert markup.startswith("<polyline ")
    assert 'points="2 3 6 5"' in markup


def test_render_vector_markup_point_is_empty() -> None:
    assert shapes.render_vector_markup(shapes.parse("POINT(10 20)")) == ""
    assert shapes.render_svg_document(shapes.Point(1, 2), 10, 10) == ""


def test_render_svg_document_uses_image_size() -> None:
    shape = shapes.parse("LINESTRING(0 0,5 5)")
    document = shapes.render_svg_document(shape, 640, 480)
    assert document.startswith("<?xml")
    assert 'width="640"' in document
    assert 'viewBox="0 0 640 480"' in document
    assert 'points="0 0 5 5"' in document


def test_map_points_keeps_shape_kind() -> None:
    polygon = shapes.parse("POLYGON((0 0,1 0,1 1,0 0))")
    moved = shapes.map_points(polygon, lambda p: shapes.Point(p.x + 1, p.y))
    assert isinstance(moved, shapes.Polygon)
    assert moved.points[0] == shapes.Point(1, 0)
    assert shapes.points_of(shapes.Point(3, 4)) == (shapes.Point(3, 4),)
