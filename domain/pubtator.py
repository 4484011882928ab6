"""Async, rate-limited client for the PubTator3 literature API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import httpx

from .errors import InvalidArgument, TransportError, UpstreamError
from .query_builder import validate_search_query

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.ncbi.nlm.nih.gov/research/pubtator3-api"
DEFAULT_RATE_LIMIT = 3.0

EXPORT_FORMATS = ("pubtator", "biocxml", "biocjson")
CONCEPT_TYPES = ("gene", "disease", "chemical", "species", "variant", "cellline")
TARGET_TYPES = ("gene", "disease", "chemical", "variant")

IdList = Union[str, Sequence[str], None]


class TokenBucket:
    """Token bucket rate limiter.

    Tokens refill continuously at `rate` per second up to `capacity`.  With the
    default capacity of one token the bucket never bursts, so N back-to-back
    acquisitions span at least (N - 1) / rate seconds.
    """

    def __init__(self, rate: float = DEFAULT_RATE_LIMIT, capacity: float = 1.0) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must allow at least one token")
        self.rate = rate
        self.capacity = capacity
        self._tokens = capacity
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        """Wait until a token is available, then take it."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait = (1 - self._tokens) / self.rate
                logger.debug("Rate limiter sleeping %.3fs", wait)
                await asyncio.sleep(wait)


def _normalise_ids(ids: IdList) -> List[str]:
    if ids is None:
        return []
    if isinstance(ids, str):
        items: Iterable[str] = ids.split(",")
    else:
        items = ids
    return [str(item).strip() for item in items if str(item).strip()]


def flatten_bioc_passages(payload: Any) -> str:
    """Collapse every passage of every BioC document into one newline-joined string."""

    if isinstance(payload, dict):
        if "PubTator3" in payload:
            documents = payload["PubTator3"]
        elif "documents" in payload:
            documents = payload["documents"]
        else:
            documents = [payload]
    elif isinstance(payload, list):
        documents = payload
    else:
        return ""

    texts: List[str] = []
    for document in documents or []:
        if not isinstance(document, dict):
            continue
        for passage in document.get("passages") or []:
            text = passage.get("text") if isinstance(passage, dict) else None
            if text:
                texts.append(text)
    return "\n".join(texts)


class PubTatorClient:
    """
    Client for the four PubTator3 operations used by the research agents.

    Every operation acquires one token from the shared limiter and issues
    exactly one GET.  Failures are raised as `UpstreamError` or
    `TransportError`; retrying is left to the caller.

    Usage:
        async with PubTatorClient() as client:
            hits = await client.find_entity("lavender", concept="chemical")
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        rate_limiter: Optional[TokenBucket] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter or TokenBucket(DEFAULT_RATE_LIMIT)
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "PubTatorClient":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": "PubTatorResearchAgents/0.1"},
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")
        return self._client

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def find_entity(self, query: str, concept: Optional[str] = None, limit: int = 5) -> Any:
        if not query or not query.strip():
            raise InvalidArgument("Argument 'query' is required.")
        if concept is not None and concept.lower() not in CONCEPT_TYPES:
            raise InvalidArgument(f"Unsupported concept type: {concept}")
        params = {
            "query": query.strip(),
            "concept": concept.lower() if concept else None,
            "limit": limit,
        }
        response = await self._get("/entity/autocomplete/", params)
        return self._json(response)

    async def search(self, query: str, limit: int = 10) -> Dict[str, Any]:
        text = validate_search_query(query)
        if limit < 1:
            raise InvalidArgument("Argument 'limit' must be at least 1.")
        response = await self._get("/search/", {"text": text})
        data = self._json(response)
        results = data.get("results", []) if isinstance(data, dict) else []
        return {
            "query": text,
            "count": data.get("count", len(results)) if isinstance(data, dict) else len(results),
            "total_pages": data.get("total_pages") if isinstance(data, dict) else None,
            "results": results[:limit],
        }

    async def get_text(
        self,
        pmids: IdList = None,
        pmcids: IdList = None,
        format: str = "biocjson",  # noqa: A002 - mirrors the API parameter
        full: bool = False,
    ) -> Any:
        pmid_list = _normalise_ids(pmids)
        pmcid_list = _normalise_ids(pmcids)
        if bool(pmid_list) == bool(pmcid_list):
            raise InvalidArgument("Provide exactly one of 'pmids' or 'pmcids'.")
        if format not in EXPORT_FORMATS:
            raise InvalidArgument(f"Unsupported export format: {format}")

        params: Dict[str, Any] = {}
        if pmid_list:
            params["pmids"] = ",".join(pmid_list)
        else:
            params["pmcids"] = ",".join(pmcid_list)
        if full:
            params["full"] = "true"

        response = await self._get(f"/publications/export/{format}", params)
        if format == "biocjson":
            return flatten_bioc_passages(self._json(response))
        return response.text

    async def find_related(
        self,
        entity_id: str,
        relation_type: Optional[str] = None,
        target_type: Optional[str] = None,
    ) -> Any:
        if not entity_id or not entity_id.strip():
            raise InvalidArgument("Argument 'entityId' is required.")
        if target_type is not None and target_type.lower() not in TARGET_TYPES:
            raise InvalidArgument(f"Unsupported target type: {target_type}")
        params = {
            "e1": entity_id.strip(),
            "type": relation_type,
            "e2": target_type.lower() if target_type else None,
        }
        response = await self._get("/relations", params)
        return self._json(response)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------
    async def _get(self, path: str, params: Dict[str, Any]) -> httpx.Response:
        await self.rate_limiter.acquire()
        query = {key: value for key, value in params.items() if value is not None}
        url = f"{self.base_url}{path}"
        logger.info("PubTator3 GET %s %s", path, query)
        try:
            response = await self.client.get(url, params=query)
        except httpx.TransportError as exc:
            logger.warning("PubTator3 transport failure for %s: %s", path, exc)
            raise TransportError(f"PubTator3 request failed: {exc}") from exc

        if not response.is_success:
            logger.warning("PubTator3 %s returned HTTP %s", path, response.status_code)
            raise UpstreamError(
                response.status_code,
                f"PubTator3 {path} returned HTTP {response.status_code}",
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(response.status_code, "PubTator3 returned malformed JSON") from exc
