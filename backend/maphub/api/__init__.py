"""API router subpackage for the annotation backend.

Submodules:
    - annotations: Endpoints for tag discovery from text and footprints,
      shape georeferencing, and Open Annotation export.

Routers are grouped by feature domain to promote clarity and
independent testing.
"""
