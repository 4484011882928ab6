"""
Stdio JSON-RPC tool server that proxies requests to the PubTator3 API.

The research agents spawn this module as a subprocess and talk to it with
line-delimited JSON-RPC 2.0 messages:

  - `initialize` returns the protocol version and capabilities.
  - `tools/list` returns the four PubTator3 tool definitions.
  - `tools/call` executes one tool and returns its JSON result as text content.

Run it with:

    python -m mcp_servers.pubtator_server

stdout carries protocol messages only; logs are written to stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Protocol, Union

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from domain.errors import PubTatorError
from domain.pubtator import DEFAULT_BASE_URL, DEFAULT_RATE_LIMIT, PubTatorClient, TokenBucket

logger = logging.getLogger("pubtator_mcp_server")

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = {"name": "pubtator3", "version": "0.1.0"}
APPLICATION_ERROR = -32000
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
READY_SIGNAL = {"type": "ready"}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "find_entity",
        "description": (
            "Resolve a biomedical concept (gene, disease, chemical, species, variant, cell line) "
            "to its standardized PubTator3 identifier, e.g. '@DISEASE_Anxiety'."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Free-text concept name", "minLength": 1},
                "concept": {
                    "type": "string",
                    "enum": ["gene", "disease", "chemical", "species", "variant", "cellline"],
                    "description": "Restrict matches to one concept type.",
                },
                "limit": {"type": "integer", "minimum": 1, "maximum": 50, "default": 5},
            },
            "required": ["query"],
        },
    },
    {
        "name": "search_pubtator",
        "description": (
            "Search PubTator3 publications. Accepts free text with boolean operators and "
            "parenthesised groups, entity identifiers joined by AND (no parentheses), or "
            "relation queries such as 'relations:treat|@CHEMICAL_x|@DISEASE_y'."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search text", "minLength": 1},
                "limit": {"type": "integer", "minimum": 1, "maximum": 100, "default": 10},
            },
            "required": ["query"],
        },
    },
    {
        "name": "get_paper_text",
        "description": (
            "Retrieve annotated text for publications by PubMed ID or PMC ID. Provide exactly "
            "one of 'pmids' or 'pmcids'. The biocjson format is returned as plain passage text."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "pmids": {
                    "type": ["string", "array"],
                    "items": {"type": "string"},
                    "description": "Comma-separated PMIDs or a list of PMIDs.",
                },
                "pmcids": {
                    "type": ["string", "array"],
                    "items": {"type": "string"},
                    "description": "Comma-separated PMC IDs or a list of PMC IDs.",
                },
                "format": {
                    "type": "string",
                    "enum": ["pubtator", "biocxml", "biocjson"],
                    "default": "biocjson",
                },
                "full": {
                    "type": "boolean",
                    "default": False,
                    "description": "Request full text where available (PMC articles).",
                },
            },
            "oneOf": [{"required": ["pmids"]}, {"required": ["pmcids"]}],
        },
    },
    {
        "name": "find_related_entities",
        "description": "Find entities related to a PubTator3 entity identifier through curated relations.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "entityId": {"type": "string", "description": "Entity identifier, e.g. '@CHEMICAL_Linalool'"},
                "relationType": {
                    "type": "string",
                    "enum": [
                        "treat",
                        "cause",
                        "cotreat",
                        "convert",
                        "compare",
                        "interact",
                        "associate",
                        "positive_correlate",
                        "negative_correlate",
                        "prevent",
                        "inhibit",
                        "stimulate",
                        "drug_interact",
                    ],
                },
                "targetType": {"type": "string", "enum": ["gene", "disease", "chemical", "variant"]},
            },
            "required": ["entityId"],
        },
    },
]


class FindEntityInput(BaseModel):
    query: str = Field(min_length=1)
    concept: Optional[Literal["gene", "disease", "chemical", "species", "variant", "cellline"]] = None
    limit: int = Field(5, ge=1, le=50)


class SearchInput(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(10, ge=1, le=100)


class PaperTextInput(BaseModel):
    pmids: Optional[Union[str, List[str]]] = None
    pmcids: Optional[Union[str, List[str]]] = None
    format: Literal["pubtator", "biocxml", "biocjson"] = "biocjson"
    full: bool = False


class RelatedEntitiesInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_id: str = Field(alias="entityId", min_length=1)
    relation_type: Optional[str] = Field(None, alias="relationType")
    target_type: Optional[Literal["gene", "disease", "chemical", "variant"]] = Field(None, alias="targetType")


class LineWriter(Protocol):
    def write(self, data: bytes) -> Any: ...

    async def drain(self) -> None: ...


def _json_rpc_error(rpc_id: Any, code: int, message: str, data: Any | None = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": rpc_id, "error": error}


def _json_rpc_result(rpc_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "result": result}


def _request_id(line: Union[str, bytes]) -> Any:
    """Best-effort id of a raw request line, for error replies."""
    try:
        request = json.loads(line)
    except (TypeError, ValueError):
        return None
    return request.get("id") if isinstance(request, dict) else None


def _describe_validation_error(tool_name: str, exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        problems.append(f"{location}: {error.get('msg', 'invalid value')}")
    return f"Invalid arguments for {tool_name}: " + "; ".join(problems)


class PubTatorToolServer:
    """Stateless JSON-RPC dispatcher; each `tools/call` is independent."""

    def __init__(self, client: PubTatorClient) -> None:
        self._client = client
        self._tools: Dict[str, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            "find_entity": self._find_entity,
            "search_pubtator": self._search,
            "get_paper_text": self._get_paper_text,
            "find_related_entities": self._find_related_entities,
        }

    async def handle_line(self, line: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        """Decode one protocol line; unparseable lines are dropped without a response."""
        raw = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
        if not raw.strip():
            return None
        try:
            request = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Dropping malformed JSON-RPC line: %s", exc)
            return None
        if not isinstance(request, dict):
            logger.error("Dropping JSON-RPC line that is not an object: %r", raw[:200])
            return None
        return await self.handle_request(request)

    async def handle_request(self, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rpc_id = request.get("id")
        method = request.get("method") or ""
        params = request.get("params") or {}
        if not isinstance(method, str):
            return _json_rpc_error(rpc_id, INVALID_REQUEST, "Invalid request: 'method' must be a string")
        if method.startswith("notifications/"):
            return None
        if not isinstance(params, dict):
            return _json_rpc_error(rpc_id, INVALID_PARAMS, "Invalid params: expected an object")

        if method == "initialize":
            logger.debug("Handling initialize request")
            return _json_rpc_result(
                rpc_id,
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {"tools": {}},
                    "serverInfo": SERVER_INFO,
                },
            )

        if method == "tools/list":
            logger.debug("Handling tools/list request")
            return _json_rpc_result(rpc_id, {"tools": TOOL_DEFINITIONS})

        if method == "tools/call":
            name = params.get("name") or ""
            arguments = params.get("arguments") or {}
            if not isinstance(name, str) or not isinstance(arguments, dict):
                return _json_rpc_error(
                    rpc_id, APPLICATION_ERROR, "Invalid tools/call: 'name' must be a string and 'arguments' an object"
                )
            handler = self._tools.get(name)
            if handler is None:
                logger.warning("Unknown tool requested: %s", name)
                return _json_rpc_error(rpc_id, APPLICATION_ERROR, f"Unknown tool: {name}")
            try:
                result = await handler(arguments)
            except ValidationError as exc:
                return _json_rpc_error(rpc_id, APPLICATION_ERROR, _describe_validation_error(name, exc))
            except PubTatorError as exc:
                logger.warning("Tool %s failed: %s", name, exc)
                return _json_rpc_error(rpc_id, APPLICATION_ERROR, str(exc))
            except Exception as exc:  # pragma: no cover - passthrough
                logger.exception("Unexpected error while executing %s.", name)
                return _json_rpc_error(rpc_id, APPLICATION_ERROR, str(exc))
            return _json_rpc_result(
                rpc_id,
                {"content": [{"type": "text", "text": json.dumps(result, ensure_ascii=False)}]},
            )

        return _json_rpc_error(rpc_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    async def serve(self, reader: asyncio.StreamReader, writer: LineWriter) -> None:
        """Announce readiness, then answer requests until the input stream closes."""
        await self._send(writer, READY_SIGNAL)
        while True:
            line = await reader.readline()
            if not line:
                break
            try:
                response = await self.handle_line(line)
            except Exception as exc:
                logger.exception("Unhandled error while answering a request.")
                response = _json_rpc_error(_request_id(line), INTERNAL_ERROR, f"Internal error: {exc}")
            if response is not None:
                await self._send(writer, response)

    @staticmethod
    async def _send(writer: LineWriter, payload: Dict[str, Any]) -> None:
        writer.write(json.dumps(payload).encode("utf-8") + b"\n")
        await writer.drain()

    # ------------------------------------------------------------------
    # Tool handlers
    # ------------------------------------------------------------------
    async def _find_entity(self, arguments: Dict[str, Any]) -> Any:
        inp = FindEntityInput.model_validate(arguments)
        return await self._client.find_entity(inp.query, concept=inp.concept, limit=inp.limit)

    async def _search(self, arguments: Dict[str, Any]) -> Any:
        inp = SearchInput.model_validate(arguments)
        return await self._client.search(inp.query, limit=inp.limit)

    async def _get_paper_text(self, arguments: Dict[str, Any]) -> Any:
        inp = PaperTextInput.model_validate(arguments)
        return await self._client.get_text(
            pmids=inp.pmids,
            pmcids=inp.pmcids,
            format=inp.format,
            full=inp.full,
        )

    async def _find_related_entities(self, arguments: Dict[str, Any]) -> Any:
        inp = RelatedEntitiesInput.model_validate(arguments)
        return await self._client.find_related(
            inp.entity_id,
            relation_type=inp.relation_type,
            target_type=inp.target_type,
        )


async def run_server(client: PubTatorClient) -> None:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)

    writer_transport, writer_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(writer_transport, writer_protocol, None, loop)

    server = PubTatorToolServer(client)
    logger.info("PubTator3 tool server ready on stdio")
    await server.serve(reader, writer)
    logger.info("Input stream closed; shutting down tool server.")


async def _amain() -> None:
    base_url = os.getenv("PUBTATOR_BASE_URL", DEFAULT_BASE_URL)
    rate = float(os.getenv("PUBTATOR_RATE_LIMIT", str(DEFAULT_RATE_LIMIT)))
    async with PubTatorClient(base_url=base_url, rate_limiter=TokenBucket(rate)) as client:
        await run_server(client)


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        stream=sys.stderr,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    load_dotenv()

    try:
        asyncio.run(_amain())
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown
        logger.info("Shutting down PubTator3 tool server.")


if __name__ == "__main__":
    main()
