"""Exception hierarchy for geometry, georeferencing, lookups and export.

Geometry, georeferencing and serialization errors are raised to callers.
Knowledge-base lookup errors never leave
:class:`maphub.services.knowledge.KnowledgeBaseClient`: every public lookup
converts them into an empty result.
"""


class MapHubError(Exception):
    """Base class for all errors raised by the annotation core."""


class InvalidAnnotation(MapHubError, ValueError):
    """An annotation is missing its body or its map."""


class MalformedGeometry(MapHubError, ValueError):
    """Shape text has an unknown prefix or unparsable coordinates."""


class GeoreferencingError(MapHubError):
    """A pixel/geographic transform cannot be fitted or applied."""


class InsufficientControlPoints(GeoreferencingError):
    """Fewer than three control points are available."""


class DegenerateControlPoints(GeoreferencingError):
    """Control points are collinear, so no unique affine fit exists."""


class KnowledgeLookupError(MapHubError):
    """A request to an external knowledge service did not succeed."""


class LookupTimeout(KnowledgeLookupError):
    """The remote service did not answer within the configured timeout."""


class LookupFailure(KnowledgeLookupError):
    """Network error, non-200 status or an undecodable response body."""


class UnsupportedSerializationFormat(MapHubError, ValueError):
    """The requested linked-data syntax is not known."""
