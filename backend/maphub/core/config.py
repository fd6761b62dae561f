"""Application settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings include
the endpoints of the external knowledge services used for tag discovery
and enrichment, the shared remote timeout, the tuning constants of those
lookups, and the defaults used when exporting annotations as linked data.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from maphub.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.dbpedia_sparql_uri)

    Environment variables can override defaults:
        >>> DBPEDIA_SPARQL_URI=http://localhost:8890/sparql
        >>> REMOTE_TIMEOUT=2.5
        >>> GEONAMES_USERNAME=maphub
"""

import functools

import pydantic
import pydantic_settings


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via environment variables or .env file.
    The knowledge-base client takes an instance of this class at
    construction, so tests can pass a tailored copy without touching the
    process environment.

    Attributes:
        wikipedia_miner_uri: Base URL of the Wikipedia Miner service used
            for entity extraction ("wikify") on free text.
        dbpedia_sparql_uri: SPARQL endpoint used for label enrichment and
            abstract lookups.
        dbpedia_resource_base: Prefix of canonical resource identifiers.
        geonames_uri: GeoNames Wikipedia bounding-box search endpoint.
        geonames_username: Account name sent with every GeoNames query.
        remote_timeout: Timeout in seconds applied to each remote request.
        min_text_length: Texts shorter than this are never sent to the
            entity extraction service.
        min_probability: Minimum topic probability for entity extraction.
        disambiguation_policy: Wikipedia Miner disambiguation policy.
        max_nearby_rows: Maximum number of proximity results requested.
        abstract_max_length: Abstracts are truncated to this many chars.
        abstract_suffix: Marker appended to a truncated abstract.
        abstract_fallback: Description used when no abstract is found.
        enrichment_workers: Threads used for label lookups (1 = serial).
        default_base_uri: Annotation URI used when an export has none.
        generator_host: URI recorded as generator of exported annotations.
        allow_origins: List of allowed CORS origins (["*"] allows all).
        log_level: Root logging level name.

    Example:
        Create settings with custom values:
            >>> settings = Settings(
            ...     dbpedia_sparql_uri="http://localhost:8890/sparql",
            ...     remote_timeout=1.0,
            ...     enrichment_workers=4,
            ... )
    """

    wikipedia_miner_uri: pydantic.AnyHttpUrl | str = (
        "http://wikipedia-miner.cms.waikato.ac.nz"
    )
    dbpedia_sparql_uri: pydantic.AnyHttpUrl | str = "http://dbpedia.org/sparql"
    dbpedia_resource_base: str = "http://dbpedia.org/resource/"
    geonames_uri: pydantic.AnyHttpUrl | str = (
        "http://api.geonames.org/wikipediaBoundingBoxJSON"
    )
    geonames_username: str = "demo"
    remote_timeout: float = 5.0
    min_text_length: int = 5
    min_probability: float = 0.1
    disambiguation_policy: str = "loose"
    max_nearby_rows: int = 5
    abstract_max_length: int = 294
    abstract_suffix: str = " (...)"
    abstract_fallback: str = "Abstract could not be found."
    enrichment_workers: int = 1
    default_base_uri: str = "http://example.com/missingBaseURI"
    generator_host: str = "http://maphub.info"
    allow_origins: list[str] = ["*"]
    log_level: str = "INFO"

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the application. Subsequent calls return the same
    cached instance.

    Returns:
        Settings instance with all configuration values populated.

    Example:
        The settings are cached, so multiple calls return the same instance:
            >>> settings1 = get_settings()
            >>> settings2 = get_settings()
            >>> assert settings1 is settings2  # Same instance
    """
    return Settings()
