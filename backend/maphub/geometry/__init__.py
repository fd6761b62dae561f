"""Shape grammar and control-point georeferencing.

Submodules:
    - shapes: parse and render POINT / LINESTRING / POLYGON shape text.
    - georeference: fit affine pixel-to-lat/lng transforms from control
      points and apply them to shapes and bounding boxes.
"""
