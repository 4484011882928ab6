"""JSON-RPC dispatch of the stdio tool server."""

import asyncio
import json

import httpx

from domain.pubtator import PubTatorClient, TokenBucket
from mcp_servers.pubtator_server import (
    APPLICATION_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PROTOCOL_VERSION,
    READY_SIGNAL,
    PubTatorToolServer,
)


class LineBuffer:
    def __init__(self):
        self.messages = []

    def write(self, data: bytes) -> None:
        for line in data.decode("utf-8").splitlines():
            self.messages.append(json.loads(line))

    async def drain(self) -> None:
        return None


def _server(handler=None, requests=None):
    def default(request):
        if requests is not None:
            requests.append(request)
        if request.url.path.endswith("/entity/autocomplete/"):
            return httpx.Response(200, json=[{"_id": "@DISEASE_Anxiety", "name": "Anxiety"}])
        return httpx.Response(404)

    client = PubTatorClient(
        base_url="https://pubtator.test",
        rate_limiter=TokenBucket(1000.0),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler or default)),
    )
    return PubTatorToolServer(client)


def test_unknown_tool_is_reported_by_name():
    server = _server()
    request = {"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": {"name": "bogus_tool", "arguments": {}}}

    response = asyncio.run(server.handle_request(request))

    assert response["id"] == 7
    assert response["error"]["code"] == APPLICATION_ERROR
    assert "Unknown tool: bogus_tool" in response["error"]["message"]


def test_initialize_and_tools_list():
    server = _server()

    init = asyncio.run(server.handle_request({"id": 1, "method": "initialize", "params": {}}))
    listing = asyncio.run(server.handle_request({"id": 2, "method": "tools/list"}))

    assert init["result"]["protocolVersion"] == PROTOCOL_VERSION
    names = [tool["name"] for tool in listing["result"]["tools"]]
    assert names == ["find_entity", "search_pubtator", "get_paper_text", "find_related_entities"]
    assert all("inputSchema" in tool for tool in listing["result"]["tools"])


def test_malformed_lines_and_notifications_get_no_response():
    server = _server()

    assert asyncio.run(server.handle_line("{not json")) is None
    assert asyncio.run(server.handle_line("[1, 2, 3]")) is None
    assert asyncio.run(server.handle_line("   ")) is None
    assert asyncio.run(server.handle_line('{"jsonrpc": "2.0", "method": "notifications/initialized"}')) is None


def test_unknown_method_is_method_not_found():
    response = asyncio.run(_server().handle_request({"id": 3, "method": "resources/list"}))

    assert response["error"]["code"] == METHOD_NOT_FOUND


def test_tool_result_is_json_text_content():
    requests = []
    server = _server(requests=requests)
    request = {
        "id": 4,
        "method": "tools/call",
        "params": {"name": "find_entity", "arguments": {"query": "anxiety", "concept": "disease"}},
    }

    response = asyncio.run(server.handle_request(request))

    content = response["result"]["content"][0]
    assert content["type"] == "text"
    assert json.loads(content["text"]) == [{"_id": "@DISEASE_Anxiety", "name": "Anxiety"}]
    assert len(requests) == 1


def test_invalid_arguments_become_application_errors_without_http():
    requests = []
    server = _server(requests=requests)

    missing_ids = asyncio.run(
        server.handle_request({"id": 5, "method": "tools/call", "params": {"name": "get_paper_text", "arguments": {}}})
    )
    bad_concept = asyncio.run(
        server.handle_request(
            {
                "id": 6,
                "method": "tools/call",
                "params": {"name": "find_entity", "arguments": {"query": "x", "concept": "organ"}},
            }
        )
    )

    assert missing_ids["error"]["code"] == APPLICATION_ERROR
    assert "pmids" in missing_ids["error"]["message"]
    assert bad_concept["error"]["code"] == APPLICATION_ERROR
    assert requests == []


def test_upstream_failure_becomes_application_error():
    server = _server(handler=lambda request: httpx.Response(500))
    request = {
        "id": 8,
        "method": "tools/call",
        "params": {"name": "find_related_entities", "arguments": {"entityId": "@CHEMICAL_Linalool"}},
    }

    response = asyncio.run(server.handle_request(request))

    assert response["error"]["code"] == APPLICATION_ERROR
    assert "500" in response["error"]["message"]


def test_serve_signals_ready_before_answering():
    server = _server()
    output = LineBuffer()

    async def scenario():
        reader = asyncio.StreamReader()
        reader.feed_data(b"garbage\n")
        reader.feed_data(json.dumps({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}).encode() + b"\n")
        reader.feed_data(json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}).encode() + b"\n")
        reader.feed_eof()
        await server.serve(reader, output)

    asyncio.run(scenario())

    assert output.messages[0] == READY_SIGNAL
    assert len(output.messages) == 2
    assert output.messages[1]["id"] == 1


def test_wrongly_typed_requests_are_answered_with_errors():
    server = _server()

    bad_params = asyncio.run(server.handle_request({"id": 1, "method": "tools/call", "params": "oops"}))
    bad_method = asyncio.run(server.handle_request({"id": 2, "method": 5}))
    bad_name = asyncio.run(
        server.handle_request({"id": 3, "method": "tools/call", "params": {"name": ["x"], "arguments": {}}})
    )
    bad_arguments = asyncio.run(
        server.handle_request({"id": 4, "method": "tools/call", "params": {"name": "find_entity", "arguments": []}})
    )

    assert bad_params["error"]["code"] == INVALID_PARAMS
    assert bad_method["error"]["code"] == INVALID_REQUEST
    assert bad_name["error"]["code"] == APPLICATION_ERROR
    assert bad_arguments["error"]["code"] == APPLICATION_ERROR
    assert [bad_params["id"], bad_method["id"], bad_name["id"], bad_arguments["id"]] == [1, 2, 3, 4]


def test_server_keeps_answering_after_a_wrongly_typed_request():
    server = _server()
    output = LineBuffer()

    async def scenario():
        reader = asyncio.StreamReader()
        reader.feed_data(b'{"id": 1, "method": "tools/call", "params": "oops"}\n')
        reader.feed_data(b'{"id": 2, "method": 5}\n')
        reader.feed_data(b'{"id": 3, "method": "tools/call", "params": {"name": ["x"]}}\n')
        reader.feed_data(b'{"id": 4, "method": "tools/list"}\n')
        reader.feed_eof()
        await server.serve(reader, output)

    asyncio.run(scenario())

    replies = output.messages[1:]
    assert [reply["id"] for reply in replies] == [1, 2, 3, 4]
    assert all("error" in reply for reply in replies[:3])
    assert len(replies[3]["result"]["tools"]) == 4


def test_unexpected_handler_failure_is_reported_with_the_request_id():
    server = _server()
    output = LineBuffer()

    async def broken(request):
        raise KeyError("boom")

    server.handle_request = broken

    async def scenario():
        reader = asyncio.StreamReader()
        reader.feed_data(b'{"id": 9, "method": "tools/list"}\n')
        reader.feed_data(b'{"id": 10, "method": "tools/list"}\n')
        reader.feed_eof()
        await server.serve(reader, output)

    asyncio.run(scenario())

    assert [reply["id"] for reply in output.messages[1:]] == [9, 10]
    assert all(reply["error"]["code"] == -32603 for reply in output.messages[1:])
