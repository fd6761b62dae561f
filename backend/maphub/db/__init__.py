"""Domain models and persistence collaborators.

This package holds the dataclasses describing maps, control points,
annotations and tags, together with the protocols the enrichment flow uses
to persist tag updates and to notify maps about changed annotations.

Example:
    Use in a service or FastAPI dependency:
        >>> from maphub.db import database, models
        >>> repo = database.InMemoryTagRepository()
        >>> repo.save(models.Tag(label="Vienna",
        ...                      dbpedia_uri="http://dbpedia.org/resource/Vienna"))
"""
