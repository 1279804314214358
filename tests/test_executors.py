import json

import httpx
import pytest

from openapi_mcp_adapter.client import ApiError, ApiResponse
from openapi_mcp_adapter.executors import (
    NO_CONTENT_TEXT,
    UNSTRINGIFIABLE_TEXT,
    build_request,
    build_request_url,
    execute_api_request,
    format_failure_response,
    format_success_response,
    split_arguments,
)
from openapi_mcp_adapter.operations import find_operation

from .conftest import FakeClient


class TestSplitArguments:
    def test_grouped(self, users_document):
        operation = find_operation(users_document, "getUsersById")
        arguments = split_arguments(
            {"pathParameters": {"id": "7"}, "queryParameters": {"verbose": True}}, operation
        )
        assert arguments.path == {"id": "7"}
        assert arguments.query == {"verbose": True}
        assert arguments.body is None

    def test_flat_keys_routed_by_location(self, users_document):
        operation = find_operation(users_document, "listUsers")
        arguments = split_arguments(
            {"limit": 3, "X-Request-Id": "abc", "unknown": 1}, operation
        )
        assert arguments.query == {"limit": 3}
        assert arguments.header == {"X-Request-Id": "abc"}

    def test_body_keys(self, users_document):
        operation = find_operation(users_document, "createUser")
        assert split_arguments({"requestBody": {"name": "a"}}, operation).body == {"name": "a"}
        assert split_arguments({"body": {"name": "b"}}, operation).body == {"name": "b"}

    def test_explicit_null_body_is_kept(self, users_document):
        operation = find_operation(users_document, "uploadFile")
        arguments = split_arguments({"requestBody": None}, operation)
        assert arguments.body is None
        assert arguments.body_supplied is True
        assert split_arguments({}, operation).body_supplied is False


class TestBuildRequestUrl:
    def test_path_substitution(self, users_document, server_config):
        operation = find_operation(users_document, "getUsersById")
        url = build_request_url(operation.path, {"id": "123"}, operation, server_config)
        assert url == "https://api.example.com/users/123"

    def test_path_values_are_encoded(self, users_document, server_config):
        operation = find_operation(users_document, "getUsersById")
        url = build_request_url(operation.path, {"id": "a/b c"}, operation, server_config)
        assert url == "https://api.example.com/users/a%2Fb%20c"

    def test_missing_path_value_left_verbatim(self, users_document, server_config):
        operation = find_operation(users_document, "getUsersById")
        url = build_request_url(operation.path, {}, operation, server_config)
        assert url == "https://api.example.com/users/{id}"

    def test_array_query_repeats_key(self, users_document, server_config):
        operation = find_operation(users_document, "listUsers")
        url = build_request_url(
            operation.path,
            {"queryParameters": {"tags": ["a", "b"], "limit": 10}},
            operation,
            server_config,
        )
        assert url == "https://api.example.com/users?tags=a&tags=b&limit=10"

    def test_boolean_query(self, users_document, server_config):
        operation = find_operation(users_document, "deleteUser")
        url = build_request_url(
            operation.path, {"id": "1", "verbose": False}, operation, server_config
        )
        assert url == "https://api.example.com/users/1?verbose=false"

    def test_servers_entry_is_ignored(self, users_document, server_config):
        operation = find_operation(users_document, "listUsers")
        url = build_request_url(operation.path, {}, operation, server_config)
        assert url.startswith("https://api.example.com/")
        assert "ignored" not in url


class TestBuildRequest:
    def test_headers_and_body(self, users_document, server_config):
        operation = find_operation(users_document, "createUser")
        request = build_request(operation, {"requestBody": {"name": "Ada"}}, server_config)
        assert request.method == "post"
        assert request.url == "https://api.example.com/users"
        assert request.body == {"name": "Ada"}
        assert request.headers == {"Content-Type": "application/json"}
        assert request.media_type == "application/json"

    def test_explicit_null_body_sets_media_type(self, users_document, server_config):
        operation = find_operation(users_document, "createUser")
        request = build_request(operation, {"requestBody": None}, server_config)
        assert request.body is None
        assert request.media_type == "application/json"
        assert build_request(operation, {}, server_config).media_type is None

    def test_excluded_headers_are_not_forwarded(self, users_document, server_config):
        operation = find_operation(users_document, "listUsers")
        request = build_request(
            operation,
            {"headerParameters": {"X-Request-Id": "r1", "Authorization": "Bearer x"}},
            server_config,
        )
        assert request.headers == {"X-Request-Id": "r1"}

    def test_fallback_media_type(self, users_document, server_config):
        operation = find_operation(users_document, "uploadFile")
        request = build_request(operation, {"requestBody": {"name": "f"}}, server_config)
        assert request.media_type == "multipart/form-data"


class TestExecuteApiRequest:
    @pytest.mark.asyncio
    async def test_success(self, users_document, server_config, fake_client):
        operation = find_operation(users_document, "getUsersById")
        result = await execute_api_request(
            fake_client, "getUsersById", {"pathParameters": {"id": "1"}}, operation, server_config
        )
        assert result.is_error is False
        assert json.loads(result.text) == {"id": "1"}
        assert result.text == json.dumps({"id": "1"}, indent=2)
        assert result.to_dict() == {"content": [{"type": "text", "text": result.text}]}

        operation_id, request = fake_client.calls[0]
        assert operation_id == "getUsersById"
        assert request.url == "https://api.example.com/users/1"

    @pytest.mark.asyncio
    async def test_structured_failure(self, users_document, server_config):
        client = FakeClient(error=ApiError(404, {"message": "not found"}))
        operation = find_operation(users_document, "getUsersById")
        result = await execute_api_request(
            client, "getUsersById", {"id": "9"}, operation, server_config
        )
        assert result.is_error is True
        assert "API Error (404)" in result.text
        assert "not found" in result.text
        assert result.to_dict()["isError"] is True

    @pytest.mark.asyncio
    async def test_generic_failure(self, users_document, server_config):
        client = FakeClient(error=RuntimeError("connection refused"))
        operation = find_operation(users_document, "listUsers")
        result = await execute_api_request(client, "listUsers", {}, operation, server_config)
        assert result.is_error is True
        assert result.text == "Error: connection refused"

    @pytest.mark.asyncio
    async def test_unknown_operation_on_client(self, users_document, server_config):
        class Empty:
            pass

        operation = find_operation(users_document, "listUsers")
        result = await execute_api_request(Empty(), "listUsers", {}, operation, server_config)
        assert result.is_error is True
        assert result.text.startswith("Error:")

    @pytest.mark.asyncio
    async def test_plain_mapping_response(self, users_document, server_config):
        client = FakeClient(response={"data": "ok"})
        operation = find_operation(users_document, "listUsers")
        result = await execute_api_request(client, "listUsers", {}, operation, server_config)
        assert result.text == "ok"


class TestFormatSuccessResponse:
    def test_none(self):
        assert format_success_response(None).text == NO_CONTENT_TEXT

    def test_string_passthrough(self):
        assert format_success_response("plain text").text == "plain text"

    def test_stable_ordering(self):
        text = format_success_response({"b": 1, "a": [1, 2]}).text
        assert text == '{\n  "a": [\n    1,\n    2\n  ],\n  "b": 1\n}'

    def test_unstringifiable(self):
        assert format_success_response({1: "a", "b": 2}).text == UNSTRINGIFIABLE_TEXT

    def test_scalar(self):
        assert format_success_response(42).text == "42"


class TestFormatFailureResponse:
    def test_api_error_without_payload(self):
        result = format_failure_response(ApiError(500))
        assert result.text == "API Error (500): Request failed with status code 500"

    def test_api_error_text_payload(self):
        assert format_failure_response(ApiError(400, "bad input")).text == "API Error (400): bad input"

    def test_httpx_status_error(self):
        request = httpx.Request("GET", "https://api.example.com/users")
        response = httpx.Response(403, json={"error": "forbidden"}, request=request)
        error = httpx.HTTPStatusError("forbidden", request=request, response=response)
        text = format_failure_response(error).text
        assert text.startswith("API Error (403):")
        assert '"error": "forbidden"' in text

    def test_response_shaped_mapping(self):
        error = {"response": {"status": 404, "data": {"message": "not found"}}}
        result = format_failure_response(error)
        assert result.is_error is True
        assert "API Error (404)" in result.text
        assert "not found" in result.text

    def test_message_mapping(self):
        assert format_failure_response({"message": "boom"}).text == "Error: boom"

    def test_unknown_value(self):
        assert format_failure_response(42).text == "Unknown error: 42"
        assert format_failure_response(["x"]).text == 'Unknown error: ["x"]'
