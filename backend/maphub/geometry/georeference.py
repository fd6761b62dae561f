"""Control-point georeferencing of map pixels.

A map image is tied to the real world by control points, each pairing a
pixel ``(x, y)`` with a geographic ``(lat, lng)``. From three of them an
affine transform is fitted::

    lat = a * x + b * y + c
    lng = d * x + e * y + f

Three non-collinear points determine the six coefficients exactly, so the
fitted transform reproduces every control point it was built from. When
more points are given the coefficients are a least-squares fit instead.
The model assumes the scan is a linear image of a small area: it covers
scale, rotation and shear, not projection curvature or paper distortion.

Maps use a fixed selection policy: the first three control points in
registration order (see :func:`select_control_points`).

Example:
    Locate an annotation corner on a georeferenced map:
        >>> from maphub.geometry import georeference
        >>> transform = georeference.transform_for_map(old_map)
        >>> lat, lng = transform.apply(120.0, 340.0)
        >>> x, y = transform.apply_inverse(lat, lng)
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

import numpy as np

from maphub.core import errors
from maphub.db import models as db_models
from maphub.geometry import shapes

if TYPE_CHECKING:
    from collections.abc import Sequence

REQUIRED_CONTROL_POINTS = 3


@dataclasses.dataclass(frozen=True)
class GeoBox:
    """Geographic bounding box in decimal degrees."""

    north: float
    south: float
    east: float
    west: float


@dataclasses.dataclass(frozen=True)
class AffineTransform:
    """Affine map from pixel coordinates to ``(lat, lng)``.

    Attributes:
        a, b, c: Coefficients of ``lat = a*x + b*y + c``.
        d, e, f: Coefficients of ``lng = d*x + e*y + f``.
    """

    a: float
    b: float
    c: float
    d: float
    e: float
    f: float

    def apply(self, x: float, y: float) -> tuple[float, float]:
        """Map a pixel coordinate to ``(lat, lng)``."""
        lat = self.a * x + self.b * y + self.c
        lng = self.d * x + self.e * y + self.f
        return lat, lng

    def apply_inverse(self, lat: float, lng: float) -> tuple[float, float]:
        """Map a geographic coordinate back to pixel ``(x, y)``.

        Raises:
            DegenerateControlPoints: If the linear part is not invertible.
        """
        linear = np.array([[self.a, self.b], [self.d, self.e]])
        offset = np.array([lat - self.c, lng - self.f])
        try:
            x, y = np.linalg.solve(linear, offset)
        except np.linalg.LinAlgError as exc:
            raise errors.DegenerateControlPoints(
                "Transform is not invertible"
            ) from exc
        return float(x), float(y)

    def apply_point(self, point: shapes.Point) -> shapes.Point:
        """Map a pixel point to a point holding ``(lat, lng)`` as ``(x, y)``."""
        lat, lng = self.apply(point.x, point.y)
        return shapes.Point(lat, lng)


def _design_matrix(rows: Sequence[tuple[float, float]]) -> np.ndarray:
    return np.array([[u, v, 1.0] for u, v in rows], dtype=float)


def fit_transform(
    control_points: Sequence[db_models.ControlPoint],
) -> AffineTransform:
    """Fit an affine transform to control points.

    Args:
        control_points: At least three control points. Exactly three give
            an exact fit; more give a least-squares fit.

    Returns:
        The fitted transform.

    Raises:
        InsufficientControlPoints: If fewer than three points are given.
        DegenerateControlPoints: If the pixel or the geographic positions
            are collinear (no unique, invertible fit exists).
    """
    if len(control_points) < REQUIRED_CONTROL_POINTS:
        raise errors.InsufficientControlPoints(
            f"Georeferencing needs {REQUIRED_CONTROL_POINTS} control points, "
            f"got {len(control_points)}"
        )

    pixels = _design_matrix([(cp.x, cp.y) for cp in control_points])
    geos = _design_matrix([(cp.lat, cp.lng) for cp in control_points])
    if np.linalg.matrix_rank(pixels) < 3:
        raise errors.DegenerateControlPoints(
            "Control point pixel positions are collinear"
        )
    if np.linalg.matrix_rank(geos) < 3:
        raise errors.DegenerateControlPoints(
            "Control point geographic positions are collinear"
        )

    targets = np.array([[cp.lat, cp.lng] for cp in control_points])
    if len(control_points) == REQUIRED_CONTROL_POINTS:
        coefficients = np.linalg.solve(pixels, targets)
    else:
        coefficients, *_ = np.linalg.lstsq(pixels, targets, rcond=None)

    (a, d), (b, e), (c, f) = coefficients.tolist()
    return AffineTransform(a=a, b=b, c=c, d=d, e=e, f=f)


def can_georeference(annotated_map: db_models.Map) -> bool:
    return len(annotated_map.control_points) >= REQUIRED_CONTROL_POINTS


def select_control_points(
    annotated_map: db_models.Map,
) -> list[db_models.ControlPoint]:
    """Return the control points used to georeference a map.

    The policy is deliberately literal: the first three control points in
    registration order. A better-conditioned choice would change the
    coordinates produced for existing maps.

    Raises:
        InsufficientControlPoints: If the map has fewer than three.
    """
    if not can_georeference(annotated_map):
        raise errors.InsufficientControlPoints(
            f"Map {annotated_map.id} has "
            f"{len(annotated_map.control_points)} control points"
        )
    return list(annotated_map.control_points[:REQUIRED_CONTROL_POINTS])


def transform_for_map(annotated_map: db_models.Map) -> AffineTransform:
    return fit_transform(select_control_points(annotated_map))


def pixel_box_to_geo(
    transform: AffineTransform,
    boundary: db_models.Boundary,
) -> GeoBox:
    """Convert a pixel bounding box into a geographic one.

    All four corners are transformed and the geographic envelope is taken,
    so rotated maps still yield a box that contains the whole footprint.
    """
    corners = [
        (boundary.ne_x, boundary.ne_y),
        (boundary.sw_x, boundary.sw_y),
        (boundary.sw_x, boundary.ne_y),
        (boundary.ne_x, boundary.sw_y),
    ]
    geo = [transform.apply(x, y) for x, y in corners]
    lats = [lat for lat, _ in geo]
    lngs = [lng for _, lng in geo]
    return GeoBox(
        north=max(lats),
        south=min(lats),
        east=max(lngs),
        west=min(lngs),
    )


def geo_box_to_pixel(
    transform: AffineTransform,
    box: GeoBox,
) -> db_models.Boundary:
    """Convert a geographic bounding box into a pixel one.

    Image rows grow downwards, so the north-east pixel corner is the one
    with the largest ``x`` and the smallest ``y``.
    """
    corners = [
        (box.north, box.east),
        (box.south, box.west),
        (box.north, box.west),
        (box.south, box.east),
    ]
    pixels = [transform.apply_inverse(lat, lng) for lat, lng in corners]
    xs = [x for x, _ in pixels]
    ys = [y for _, y in pixels]
    return db_models.Boundary(
        ne_x=max(xs),
        ne_y=min(ys),
        sw_x=min(xs),
        sw_y=max(ys),
    )


def georeference_shape(
    shape: shapes.Shape,
    transform: AffineTransform,
) -> shapes.Shape:
    """Return the shape with every point replaced by its ``(lat, lng)``."""
    return shapes.map_points(shape, transform.apply_point)


def latlng_listing(shape: shapes.Shape, transform: AffineTransform) -> str:
    """Render a shape's points as ``"lat lng,lat lng,..."``."""
    located = shapes.points_of(georeference_shape(shape, transform))
    return ",".join(
        f"{shapes.format_number(point.x)} {shapes.format_number(point.y)}"
        for point in located
    )
