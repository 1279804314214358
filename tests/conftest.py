import copy
from pathlib import Path
from typing import Any, Dict, List

import pytest

from openapi_mcp_adapter.client import ApiResponse
from openapi_mcp_adapter.config import ServerConfig
from openapi_mcp_adapter.openapi import build_document

FIXTURES = Path(__file__).parent / "fixtures"


USERS_API_30: Dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {"title": "Users API", "version": "1.2.0"},
    "servers": [{"url": "https://ignored.example.com"}],
    "paths": {
        "/users": {
            "get": {
                "operationId": "listUsers",
                "summary": "List users",
                "parameters": [
                    {
                        "name": "tags",
                        "in": "query",
                        "schema": {"type": "array", "items": {"type": "string"}},
                    },
                    {
                        "name": "limit",
                        "in": "query",
                        "required": True,
                        "description": "Page size",
                        "schema": {"type": "integer", "minimum": 1, "maximum": 100},
                    },
                    {"name": "X-Request-Id", "in": "header", "schema": {"type": "string"}},
                    {"name": "Authorization", "in": "header", "schema": {"type": "string"}},
                    {"name": "ACCEPT", "in": "header", "schema": {"type": "string"}},
                    {"name": "session", "in": "cookie", "schema": {"type": "string"}},
                ],
            },
            "post": {
                "operationId": "createUser",
                "description": "Create a user",
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/User"}}
                    },
                },
            },
        },
        "/users/{id}": {
            "parameters": [
                {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                {"name": "verbose", "in": "query", "schema": {"type": "boolean"}},
            ],
            "get": {"summary": "Fetch one user"},
            "delete": {
                "operationId": "deleteUser",
                "parameters": [
                    {
                        "name": "verbose",
                        "in": "query",
                        "required": True,
                        "schema": {"type": "boolean"},
                    }
                ],
            },
        },
        "/files": {
            "post": {
                "operationId": "uploadFile",
                "requestBody": {
                    "content": {
                        "multipart/form-data": {
                            "schema": {
                                "type": "object",
                                "properties": {"name": {"type": "string"}},
                            }
                        }
                    }
                },
            }
        },
    },
    "components": {
        "schemas": {
            "User": {
                "type": "object",
                "description": "A user account",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "email": {"type": "string", "nullable": True},
                    "role": {"type": "string", "enum": ["admin", "member"]},
                    "manager": {"$ref": "#/components/schemas/User"},
                },
            }
        }
    },
}


EVENTS_API_31: Dict[str, Any] = {
    "openapi": "3.1.0",
    "info": {"title": "Events API", "version": "2.0.0"},
    "paths": {
        "/events": {
            "get": {
                "operationId": "searchEvents",
                "parameters": [
                    {
                        "name": "filter",
                        "in": "query",
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "properties": {"kind": {"type": ["string", "null"]}},
                                }
                            }
                        },
                    },
                    {"name": "cursor", "in": "query"},
                ],
            }
        }
    },
    "webhooks": {
        "eventCreated": {
            "post": {
                "operationId": "onEventCreated",
                "requestBody": {
                    "content": {"application/json": {"schema": {"type": "object"}}}
                },
            }
        }
    },
}


class FakeClient:
    """Backend double callable by operationId; records every request."""

    def __init__(self, response: Any = None, error: Any = None) -> None:
        self.response = response
        self.error = error
        self.calls: List[Any] = []

    def __getattr__(self, operation_id: str):
        if operation_id.startswith("_"):
            raise AttributeError(operation_id)

        async def call(request):
            self.calls.append((operation_id, request))
            if self.error is not None:
                raise self.error
            return self.response

        return call


@pytest.fixture
def users_document():
    return build_document(copy.deepcopy(USERS_API_30))


@pytest.fixture
def events_document():
    return build_document(copy.deepcopy(EVENTS_API_31))


@pytest.fixture
def server_config():
    return ServerConfig(
        base_url="https://api.example.com",
        headers={"Content-Type": "application/json", "X-Api-Key": "secret"},
    )


@pytest.fixture
def fake_client():
    return FakeClient(response=ApiResponse(status=200, data={"id": "1"}))
