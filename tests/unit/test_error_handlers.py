"""
Unit tests for the error taxonomy and FastAPI exception handlers.

Tests the exception classes, the error response model, and the handlers
that turn session store failures into structured responses.
"""

import json

import pytest
from unittest.mock import MagicMock
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from kvsession.errors.codes import ErrorCode, get_default_status_code
from kvsession.errors.exceptions import (
    DecodeError,
    DeleteError,
    EncodeError,
    NotFoundError,
    QueryError,
    SessionStoreException,
    StorageError,
    storage_error,
)
from kvsession.errors.handlers import (
    ErrorResponse,
    get_request_id,
    handle_session_store_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)


def _mock_request(request_id=None, headers=None):
    request = MagicMock(spec=Request)
    if request_id is None:
        del request.state.request_id
    else:
        request.state.request_id = request_id
    request.headers = headers or {}
    request.url.path = "/api/cart"
    request.method = "GET"
    return request


class TestExceptions:
    """Tests for the exception taxonomy."""

    @pytest.mark.parametrize("exc_class,code,status", [
        (NotFoundError, ErrorCode.NOT_FOUND, 404),
        (StorageError, ErrorCode.STORAGE_ERROR, 503),
        (DecodeError, ErrorCode.DECODE_ERROR, 500),
        (EncodeError, ErrorCode.ENCODE_ERROR, 500),
        (QueryError, ErrorCode.QUERY_ERROR, 503),
        (DeleteError, ErrorCode.DELETE_ERROR, 503),
    ])
    def test_defaults_per_subclass(self, exc_class, code, status):
        exc = exc_class()

        assert isinstance(exc, SessionStoreException)
        assert exc.error_code == code
        assert exc.status_code == status
        assert exc.message == exc_class.default_message

    def test_to_dict_includes_details_when_present(self):
        exc = StorageError("Redis down", details={"key": "s1"})

        assert exc.to_dict() == {
            "error_code": "STORAGE_ERROR",
            "message": "Redis down",
            "details": {"key": "s1"},
        }
        assert "details" not in StorageError("Redis down").to_dict()

    def test_storage_error_factory_records_cause(self):
        exc = storage_error("write failed", TimeoutError("slow"), {"key": "s1"})

        assert exc.details == {"key": "s1", "cause": "TimeoutError"}

    def test_repr(self):
        assert repr(DecodeError("bad")).startswith("DecodeError(error_code='DECODE_ERROR'")

    def test_unknown_code_defaults_to_500(self):
        assert get_default_status_code("SOMETHING_ELSE") == 500


class TestErrorResponse:
    """Tests for the ErrorResponse model."""

    def test_model_dump_excludes_none(self):
        response = ErrorResponse(
            error_code="STORAGE_ERROR",
            message="Session storage unavailable",
            request_id="req-789",
        )

        dumped = response.model_dump(exclude_none=True)
        assert "details" not in dumped
        assert dumped["request_id"] == "req-789"


class TestGetRequestId:
    """Tests for the get_request_id function."""

    def test_request_id_from_state(self):
        assert get_request_id(_mock_request("existing-request-id")) == "existing-request-id"

    def test_request_id_from_header(self):
        request = _mock_request(headers={"X-Request-ID": "from-header"})
        assert get_request_id(request) == "from-header"

    def test_generates_uuid_when_not_set(self):
        result = get_request_id(_mock_request())

        assert len(result) == 36
        assert result.count("-") == 4


class TestHandlers:
    """Tests for the exception handlers."""

    @pytest.mark.asyncio
    async def test_session_store_exception_response(self):
        exc = StorageError("Redis down", details={"key": "s1"})

        response = await handle_session_store_exception(_mock_request("req-1"), exc)

        assert isinstance(response, JSONResponse)
        assert response.status_code == 503
        assert json.loads(response.body) == {
            "error_code": "STORAGE_ERROR",
            "message": "Redis down",
            "details": {"key": "s1"},
            "request_id": "req-1",
        }

    @pytest.mark.asyncio
    async def test_unexpected_exception_hides_details(self):
        response = await handle_unexpected_exception(
            _mock_request("req-2"), RuntimeError("secret internals")
        )

        body = json.loads(response.body)
        assert response.status_code == 500
        assert body["error_code"] == "INTERNAL_ERROR"
        assert "secret" not in body["message"]
        assert "details" not in body

    def test_registered_handlers_serve_session_failures(self):
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/session")
        async def read_session():
            raise DecodeError("Stored session value is not valid JSON")

        client = TestClient(app)
        response = client.get("/session", headers={"X-Request-ID": "req-3"})

        assert response.status_code == 500
        assert response.json()["error_code"] == "DECODE_ERROR"
        assert response.json()["request_id"] == "req-3"
