"""Lookups against the external knowledge services.

Four remote services feed semantic tags:

- Wikipedia Miner "wikify" extracts topics mentioned in free text.
- DBpedia SPARQL returns the labels of a resource (used as enrichment).
- DBpedia SPARQL returns the English abstract of a resource (used as a
  tag description).
- GeoNames returns Wikipedia articles located inside a bounding box.

Every lookup is a single GET request bounded by ``remote_timeout``. A
timeout, a network error, a non-200 status or a body that cannot be
decoded is logged and turned into an empty result; no lookup retries and
none raises.

Example:
    Look up tags for a piece of text:
        >>> from maphub.core import config
        >>> from maphub.services import knowledge
        >>> client = knowledge.KnowledgeBaseClient(config.get_settings())
        >>> client.extract_entities("The Danube flows through Vienna")
        [TagCandidate(label='Danube', dbpedia_uri='http://dbpedia.org/...')]
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import TYPE_CHECKING, Any

import httpx

from maphub.core import errors
from maphub.db import models as db_models

if TYPE_CHECKING:
    from maphub.core import config
    from maphub.geometry import georeference

logger = logging.getLogger(__name__)

DBPEDIA_GRAPH = "http://dbpedia.org"
SPARQL_RESULTS_FORMAT = "application/sparql-results+json"
WIKIPEDIA_ARTICLE_PREFIX = "en.wikipedia.org/wiki/"

LABEL_QUERY = """
select ?label
where {{
  <{uri}> <http://www.w3.org/2000/01/rdf-schema#label> ?label .
}}
"""

ABSTRACT_QUERY = """
select ?abstract
where {{
  <{uri}> <http://dbpedia.org/ontology/abstract> ?abstract .
  FILTER ( lang(?abstract) = "en" )
}}
"""

# Characters that may not appear inside a SPARQL IRI reference.
_IRI_FORBIDDEN = re.compile(r'[\s<>"{}|^`\\]')


def resource_uri_from_title(title: str, base: str) -> str:
    """Build the canonical resource URI for a Wikipedia article title."""
    return base + title.strip().replace(" ", "_")


def resource_uri_from_wikipedia_url(url: str, base: str) -> str:
    """Build the canonical resource URI for a Wikipedia article URL.

    GeoNames reports article URLs without a scheme, e.g.
    ``en.wikipedia.org/wiki/Stephansdom``.
    """
    stripped = re.sub(r"^https?://", "", url.strip())
    if stripped.startswith(WIKIPEDIA_ARTICLE_PREFIX):
        return base + stripped[len(WIKIPEDIA_ARTICLE_PREFIX):]
    return "http://" + stripped


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


class KnowledgeBaseClient:
    """Stateless client for the knowledge services.

    Args:
        settings: Endpoints, credentials, timeout and lookup constants.
        http_client: Optional ``httpx.Client`` to send requests with.
            A new short-lived client is opened per request otherwise.
    """

    def __init__(
        self,
        settings: config.Settings,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.settings = settings
        self._http_client = http_client

    def _read(
        self,
        client: httpx.Client,
        url: str,
        params: dict[str, Any],
    ) -> tuple[int, bytes]:
        """Stream a GET response, giving up once the overall deadline passes.

        httpx timeouts bound each socket operation on its own, so a server
        trickling its body could otherwise keep a lookup alive indefinitely.
        """
        timeout = self.settings.remote_timeout
        deadline = time.monotonic() + timeout
        with client.stream("GET", url, params=params, timeout=timeout) as response:
            chunks = []
            for chunk in response.iter_bytes():
                if time.monotonic() > deadline:
                    raise errors.LookupTimeout(
                        f"{url} exceeded {timeout} seconds"
                    )
                chunks.append(chunk)
            if time.monotonic() > deadline:
                raise errors.LookupTimeout(f"{url} exceeded {timeout} seconds")
            return response.status_code, b"".join(chunks)

    def _send(self, url: str, params: dict[str, Any]) -> tuple[int, bytes]:
        if self._http_client is not None:
            return self._read(self._http_client, url, params)
        with httpx.Client() as client:
            return self._read(client, url, params)

    def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        """Issue one GET request and decode its JSON body.

        Raises:
            LookupTimeout: If the request took longer than
                ``remote_timeout`` in total.
            LookupFailure: On network errors, non-200 statuses and bodies
                that are not JSON.
        """
        logger.debug("Executing query: %s %s", url, params)
        try:
            status_code, body = self._send(url, params)
        except httpx.TimeoutException as exc:
            raise errors.LookupTimeout(
                f"{url} timed out after {self.settings.remote_timeout} seconds"
            ) from exc
        except httpx.HTTPError as exc:
            raise errors.LookupFailure(f"{url} failed: {exc}") from exc

        if status_code != httpx.codes.OK:
            raise errors.LookupFailure(f"{url} answered with status {status_code}")
        try:
            return json.loads(body)
        except ValueError as exc:
            raise errors.LookupFailure(f"{url} returned invalid JSON") from exc

    def _sparql(self, query: str) -> list[dict[str, Any]]:
        payload = self._get_json(
            str(self.settings.dbpedia_sparql_uri),
            {
                "default-graph-uri": DBPEDIA_GRAPH,
                "query": query,
                "format": SPARQL_RESULTS_FORMAT,
                "timeout": "0",
                "debug": "on",
            },
        )
        try:
            bindings = payload["results"]["bindings"]
        except (KeyError, TypeError) as exc:
            raise errors.LookupFailure("SPARQL response has no bindings") from exc
        if not isinstance(bindings, list):
            raise errors.LookupFailure("SPARQL bindings are not a list")
        return bindings

    @staticmethod
    def _is_safe_iri(uri: str) -> bool:
        return bool(uri) and _IRI_FORBIDDEN.search(uri) is None

    def fetch_enrichment(self, dbpedia_uri: str) -> str:
        """Return all labels of a resource, deduplicated and space-joined.

        Returns:
            The joined labels in first-seen order, or ``""`` when the
            resource has no labels or the lookup failed.
        """
        if not self._is_safe_iri(dbpedia_uri):
            logger.warning("Refusing to query invalid resource %r", dbpedia_uri)
            return ""

        try:
            bindings = self._sparql(LABEL_QUERY.format(uri=dbpedia_uri))
            labels = [binding["label"]["value"] for binding in bindings]
        except errors.LookupTimeout as exc:
            logger.warning("Fetching enrichments timed out: %s", exc)
            return ""
        except errors.LookupFailure as exc:
            logger.warning("Could not fetch labels for %s: %s", dbpedia_uri, exc)
            return ""
        except (KeyError, TypeError):
            logger.warning("Malformed label bindings for %s", dbpedia_uri)
            return ""

        return " ".join(_dedupe([str(label) for label in labels]))

    def fetch_abstract(self, dbpedia_uri: str) -> str:
        """Return the English abstract of a resource, truncated.

        The abstract is cut to ``abstract_max_length`` characters and
        followed by ``abstract_suffix``. When no abstract can be fetched
        ``abstract_fallback`` is returned instead.
        """
        fallback = self.settings.abstract_fallback
        if not self._is_safe_iri(dbpedia_uri):
            logger.warning("Refusing to query invalid resource %r", dbpedia_uri)
            return fallback

        try:
            bindings = self._sparql(ABSTRACT_QUERY.format(uri=dbpedia_uri))
            abstract = str(bindings[0]["abstract"]["value"])
        except errors.LookupTimeout as exc:
            logger.warning("Fetching abstract timed out: %s", exc)
            return fallback
        except errors.LookupFailure as exc:
            logger.warning("Could not fetch abstract from %s: %s", dbpedia_uri, exc)
            return fallback
        except (IndexError, KeyError, TypeError):
            logger.warning("No abstract found for %s", dbpedia_uri)
            return fallback

        limit = self.settings.abstract_max_length
        return abstract[:limit] + self.settings.abstract_suffix

    def extract_entities(self, text: str) -> list[db_models.TagCandidate]:
        """Find knowledge-base resources mentioned in free text.

        Texts shorter than ``min_text_length`` are not sent at all. Each
        detected topic becomes a candidate whose description is the
        resource abstract.
        """
        if len(text) < self.settings.min_text_length:
            return []

        url = str(self.settings.wikipedia_miner_uri).rstrip("/")
        try:
            payload = self._get_json(
                url + "/services/wikify",
                {
                    "source": text,
                    "minProbability": self.settings.min_probability,
                    "disambiguationPolicy": self.settings.disambiguation_policy,
                    "responseFormat": "json",
                },
            )
            titles = [str(entry["title"]) for entry in payload["detectedTopics"]]
        except errors.LookupTimeout as exc:
            logger.warning("Fetching text-based tags timed out: %s", exc)
            return []
        except errors.LookupFailure as exc:
            logger.warning("Failed to fetch text-based tags: %s", exc)
            return []
        except (KeyError, TypeError):
            logger.warning("Malformed wikify response for text %r", text[:30])
            return []

        base = self.settings.dbpedia_resource_base
        candidates = []
        for title in titles:
            dbpedia_uri = resource_uri_from_title(title, base)
            candidates.append(
                db_models.TagCandidate(
                    label=title,
                    dbpedia_uri=dbpedia_uri,
                    description=self.fetch_abstract(dbpedia_uri),
                )
            )
        return candidates

    def find_nearby(
        self,
        box: georeference.GeoBox,
        max_rows: int | None = None,
    ) -> list[db_models.TagCandidate]:
        """Find Wikipedia articles located inside a geographic box."""
        rows = self.settings.max_nearby_rows if max_rows is None else max_rows
        try:
            payload = self._get_json(
                str(self.settings.geonames_uri),
                {
                    "north": box.north,
                    "south": box.south,
                    "east": box.east,
                    "west": box.west,
                    "maxRows": rows,
                    "username": self.settings.geonames_username,
                },
            )
            entries = [
                (
                    str(entry["title"]),
                    str(entry["wikipediaUrl"]),
                    str(entry.get("summary", "")),
                )
                for entry in payload["geonames"]
            ]
        except errors.LookupTimeout as exc:
            logger.warning("Fetching boundary-based tags timed out: %s", exc)
            return []
        except errors.LookupFailure as exc:
            logger.warning("Failed to fetch boundary-based tags: %s", exc)
            return []
        except (AttributeError, KeyError, TypeError):
            logger.warning("Malformed GeoNames response for %s", box)
            return []

        base = self.settings.dbpedia_resource_base
        return [
            db_models.TagCandidate(
                label=title,
                dbpedia_uri=resource_uri_from_wikipedia_url(wiki_url, base),
                description=summary,
            )
            for title, wiki_url, summary in entries
        ]
