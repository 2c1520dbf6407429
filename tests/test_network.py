"""
Tests for the DL Auth HTTP pipeline, transport and transcoding.

HTTP calls are mocked with respx; transport edge cases use small
in-process Transport implementations.
"""

import json
from datetime import datetime, timezone
from typing import Optional

import httpx
import pytest
import respx

from dl_auth import (
    DecodingError,
    EncodingError,
    InvalidResponseError,
    InvalidURLError,
    KeyCase,
    NetworkError,
    RequestTimeoutError,
    ServerError,
    ServerErrorResponse,
    Session,
    TransportResponse,
)
from dl_auth.network import HTTPClient, validate_base_url
from dl_auth.transcoding import (
    decode_body,
    encode_body,
    format_datetime,
    parse_datetime,
    to_camel_case,
    to_snake_case,
)
from dl_auth.transport import HTTPXTransport
from dl_auth.types import SignInRequest


BASE_URL = "https://api.example.com"


def make_client(token: Optional[str] = None, **kwargs) -> HTTPClient:
    async def token_provider() -> Optional[str]:
        return token

    return HTTPClient(BASE_URL, HTTPXTransport(), token_provider=token_provider, **kwargs)


class StaticTransport:
    """Returns a fixed (possibly malformed) response."""

    def __init__(self, response) -> None:
        self.response = response
        self.calls = 0

    async def execute(self, method, url, headers, body=None):
        self.calls += 1
        return self.response


class FailingTransport:
    """Raises a non-SDK exception."""

    async def execute(self, method, url, headers, body=None):
        raise RuntimeError("socket exploded")


# =============================================================================
# URL Building
# =============================================================================

class TestURLs:
    def test_strips_trailing_slash(self):
        assert validate_base_url("https://api.example.com/") == BASE_URL

    @pytest.mark.parametrize("base_url", ["not a url", "ftp://api.example.com", "https://"])
    def test_invalid_base_url(self, base_url):
        with pytest.raises(InvalidURLError):
            validate_base_url(base_url)

    def test_join_path(self):
        client = make_client()
        assert client.build_url("/auth/signin") == "https://api.example.com/auth/signin"
        assert client.build_url("auth/signin") == "https://api.example.com/auth/signin"

    def test_query_parameters(self):
        url = make_client().build_url("/items", {"page": 2, "q": "a b"})

        parsed = httpx.URL(url)
        assert parsed.path == "/items"
        assert parsed.params["page"] == "2"
        assert parsed.params["q"] == "a b"

    def test_invalid_path(self):
        with pytest.raises(InvalidURLError):
            make_client().build_url("/bad\x00path")


# =============================================================================
# Request Pipeline
# =============================================================================

class TestRequests:
    @pytest.mark.asyncio
    @respx.mock
    async def test_get_with_query(self):
        route = respx.get(f"{BASE_URL}/items").mock(
            return_value=httpx.Response(200, json={"items": [{"itemId": 1}]})
        )

        data = await make_client().request("/items", query={"page": 2})

        assert route.called
        assert route.calls.last.request.url.params["page"] == "2"
        # keys come back snake_case
        assert data == {"items": [{"item_id": 1}]}

    @pytest.mark.asyncio
    @respx.mock
    async def test_default_headers(self):
        route = respx.post(f"{BASE_URL}/auth/signin").mock(
            return_value=httpx.Response(200, json={})
        )

        await make_client(default_headers={"X-Client": "tests"}).request(
            "/auth/signin", "POST", body={"email": "a@b.c"}
        )

        request = route.calls.last.request
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["X-Client"] == "tests"
        assert json.loads(request.content) == {"email": "a@b.c"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_bearer_attached_when_required(self):
        route = respx.get(f"{BASE_URL}/auth/user").mock(
            return_value=httpx.Response(200, json={"id": "u1"})
        )

        await make_client(token="abc").request("/auth/user", requires_auth=True)

        assert route.calls.last.request.headers["Authorization"] == "Bearer abc"

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_bearer_when_not_required(self):
        route = respx.post(f"{BASE_URL}/auth/signin").mock(
            return_value=httpx.Response(200, json={})
        )

        await make_client(token="abc").request("/auth/signin", "POST", body={})

        assert "Authorization" not in route.calls.last.request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_bearer_without_token(self):
        route = respx.get(f"{BASE_URL}/auth/user").mock(
            return_value=httpx.Response(200, json={})
        )

        await make_client(token=None).request("/auth/user", requires_auth=True)

        assert "Authorization" not in route.calls.last.request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_request_headers_override_defaults(self):
        route = respx.get(f"{BASE_URL}/report").mock(
            return_value=httpx.Response(200, json={})
        )

        await make_client(token="abc").request(
            "/report",
            requires_auth=True,
            headers={"Accept": "text/csv", "Authorization": "Basic xyz"},
        )

        request = route.calls.last.request
        assert request.headers["Accept"] == "text/csv"
        assert request.headers["Authorization"] == "Basic xyz"

    @pytest.mark.asyncio
    @respx.mock
    async def test_decoder(self):
        respx.post(f"{BASE_URL}/auth/token/refresh").mock(
            return_value=httpx.Response(200, json={"accessToken": "abc", "expiresIn": 60})
        )

        session = await make_client().request(
            "/auth/token/refresh", "POST", decoder=Session.from_dict
        )

        assert session == Session(access_token="abc", expires_in=60)

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_content(self):
        route = respx.post(f"{BASE_URL}/auth/signout").mock(return_value=httpx.Response(204))

        assert await make_client().request_without_response("/auth/signout") is None
        assert route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_success_body(self):
        respx.delete(f"{BASE_URL}/projects/p1").mock(return_value=httpx.Response(204))

        assert await make_client().request("/projects/p1", "DELETE") is None
        assert await make_client().request(
            "/projects/p1", "DELETE", decoder=lambda data: data
        ) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_body_with_typed_decoder(self):
        respx.post(f"{BASE_URL}/auth/token/refresh").mock(return_value=httpx.Response(200))

        with pytest.raises(DecodingError):
            await make_client().request(
                "/auth/token/refresh", "POST", decoder=Session.from_dict
            )

    @pytest.mark.asyncio
    @respx.mock
    async def test_camel_case_wire(self):
        route = respx.put(f"{BASE_URL}/auth/password/update").mock(
            return_value=httpx.Response(200, json={})
        )

        await make_client(wire_case=KeyCase.CAMEL).request(
            "/auth/password/update", "PUT", body={"new_password": "s3cret"}
        )

        assert json.loads(route.calls.last.request.content) == {"newPassword": "s3cret"}


# =============================================================================
# Error Classification
# =============================================================================

class TestErrors:
    @pytest.mark.asyncio
    @respx.mock
    async def test_structured_server_error(self):
        respx.get(f"{BASE_URL}/auth/user").mock(
            return_value=httpx.Response(
                404, json={"error": "user_not_found", "message": "No account", "retry": False}
            )
        )

        with pytest.raises(ServerError) as exc_info:
            await make_client().request("/auth/user")

        error = exc_info.value
        assert error.status_code == 404
        assert error.server_error.error == "user_not_found"
        assert error.server_error.message == "No account"
        assert error.server_error["retry"] is False
        assert error.message == "No account"

    @pytest.mark.asyncio
    @respx.mock
    async def test_unstructured_server_error(self):
        respx.get(f"{BASE_URL}/auth/user").mock(
            return_value=httpx.Response(500, content=b"<html>Bad Gateway</html>")
        )

        with pytest.raises(ServerError) as exc_info:
            await make_client().request("/auth/user")

        server_error = exc_info.value.server_error
        assert server_error.status_code == 500
        assert server_error.data == b"<html>Bad Gateway</html>"
        assert server_error.fields is None
        assert server_error.error is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_takes_precedence_over_decoding(self):
        respx.post(f"{BASE_URL}/auth/signin").mock(
            return_value=httpx.Response(401, json={"error": "invalid_credentials"})
        )

        with pytest.raises(ServerError):
            await make_client().request("/auth/signin", "POST", decoder=Session.from_dict)

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_success_body(self):
        respx.get(f"{BASE_URL}/auth/user").mock(
            return_value=httpx.Response(200, content=b"not json")
        )

        with pytest.raises(DecodingError):
            await make_client().request("/auth/user")

    @pytest.mark.asyncio
    @respx.mock
    async def test_decoder_shape_mismatch(self):
        respx.post(f"{BASE_URL}/auth/token/refresh").mock(
            return_value=httpx.Response(200, json={"refresh_token": "only"})
        )

        with pytest.raises(DecodingError):
            await make_client().request(
                "/auth/token/refresh", "POST", decoder=Session.from_dict
            )

    @pytest.mark.asyncio
    @respx.mock
    async def test_encoding_error_sends_nothing(self):
        route = respx.post(f"{BASE_URL}/auth/signup").mock(
            return_value=httpx.Response(200, json={})
        )

        with pytest.raises(EncodingError):
            await make_client().request("/auth/signup", "POST", body={"blob": object()})

        assert not route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self):
        respx.get(f"{BASE_URL}/auth/user").mock(side_effect=httpx.ReadTimeout)

        with pytest.raises(RequestTimeoutError):
            await make_client().request("/auth/user")

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_failure(self):
        respx.get(f"{BASE_URL}/auth/user").mock(side_effect=httpx.ConnectError)

        with pytest.raises(NetworkError) as exc_info:
            await make_client().request("/auth/user")

        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            TransportResponse(status_code=42, headers={}, content=b""),
            TransportResponse(status_code=200, headers={}, content="text"),
            object(),
        ],
    )
    async def test_invalid_transport_response(self, response):
        client = HTTPClient(BASE_URL, StaticTransport(response))

        with pytest.raises(InvalidResponseError):
            await client.request("/auth/user")

    @pytest.mark.asyncio
    async def test_foreign_transport_exception(self):
        client = HTTPClient(BASE_URL, FailingTransport())

        with pytest.raises(NetworkError) as exc_info:
            await client.request("/auth/user")

        assert isinstance(exc_info.value.cause, RuntimeError)


class TestServerErrorResponse:
    def test_empty_body(self):
        response = ServerErrorResponse(503)

        assert response.data == b""
        assert response.fields is None
        assert response.description == "Server error (503)"

    def test_non_string_fields_are_not_promoted(self):
        response = ServerErrorResponse(400, b'{"error": 7, "code": "E_BAD", "details": {"field": "email"}}')

        assert response.error is None
        assert response.code == "E_BAD"
        assert response["details"] == {"field": "email"}
        assert response["missing"] is None

    def test_json_array_body(self):
        response = ServerErrorResponse(400, b'["a", "b"]')

        assert response.fields is None
        assert response.data == b'["a", "b"]'


# =============================================================================
# Transcoding
# =============================================================================

class TestTranscoding:
    @pytest.mark.parametrize(
        "snake, camel",
        [
            ("access_token", "accessToken"),
            ("expires_in", "expiresIn"),
            ("email_confirmed_at", "emailConfirmedAt"),
            ("id", "id"),
        ],
    )
    def test_key_cases(self, snake, camel):
        assert to_camel_case(snake) == camel
        assert to_snake_case(camel) == snake

    def test_metadata_keys_are_opaque(self):
        body = encode_body(
            {"user_id": "u1", "metadata": {"favorite_color": "blue", "nestedKey": {"a_b": 1}}},
            KeyCase.CAMEL,
        )

        assert json.loads(body) == {
            "userId": "u1",
            "metadata": {"favorite_color": "blue", "nestedKey": {"a_b": 1}},
        }

    def test_decoded_metadata_keys_are_opaque(self):
        data = decode_body(b'{"accessToken": "a", "user": {"metadata": {"firstName": "Ada"}}}')

        assert data == {"access_token": "a", "user": {"metadata": {"firstName": "Ada"}}}

    def test_datetimes(self):
        when = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        assert json.loads(encode_body({"at": when})) == {"at": "2026-01-02T03:04:05Z"}
        assert format_datetime(datetime(2026, 1, 2, 3, 4, 5)) == "2026-01-02T03:04:05Z"
        assert parse_datetime("2026-01-02T03:04:05Z") == when
        assert parse_datetime("2026-01-02T03:04:05") == when

    def test_none_fields_of_dataclasses_are_omitted(self):
        body = encode_body(SignInRequest(password="pw", username="ada"))

        assert json.loads(body) == {"password": "pw", "username": "ada"}

    def test_metadata_must_hold_json_values(self):
        with pytest.raises(EncodingError):
            encode_body({"metadata": {"when": datetime(2026, 1, 1)}})

    def test_non_finite_floats(self):
        with pytest.raises(EncodingError):
            encode_body({"score": float("inf")})
