"""Annotation core for scanned historical maps.

Users draw points, lines and polygons on map images that have no
coordinate system of their own. This package turns those pixel shapes
into latitude/longitude using the map's control points, proposes and
enriches semantic tags from external knowledge services, and exports
annotations as Open Annotation linked data.

- Parses and renders the POINT / LINESTRING / POLYGON shape grammar
- Fits affine pixel-to-lat/lng transforms from three control points
- Queries Wikipedia Miner, DBpedia and GeoNames with bounded timeouts,
  degrading to empty results when a service is unavailable
- Serializes annotations to Turtle, RDF/XML, N-Triples or JSON-LD

See module docstrings for details on each component.
"""
