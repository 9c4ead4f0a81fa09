"""Tests for request dispatch and response handling."""

import asyncio
import json
from dataclasses import dataclass
from typing import Annotated

import google.auth.exceptions
import httpx
import pytest
from pydantic import BaseModel, Field, ValidationError

from google_api_runtime import (
    APIError,
    Connection,
    CredentialsTokenProvider,
    GoogleAPIRuntimeError,
    InvalidResponseError,
    MissingPathParameterError,
    RawResponse,
    ResponseDecodeError,
    Service,
    StandardParameters,
    TokenError,
    TransportError,
    parameters,
    path_param,
    query_param,
)


@dataclass
class Point:
    x: int


class Volume(BaseModel):
    id: str
    title: str | None = None


class ShelfUpdate(BaseModel):
    title: str
    description: str | None = None
    is_public: bool = Field(default=False, alias="isPublic")

    model_config = {"populate_by_name": True}


# Annotated metadata that can't be hashed
PageCount = Annotated[int, Field(ge=0), {"unit": "pages"}]


class UnreachableCredentials:
    """google.auth credentials whose token endpoint can't be reached."""

    valid = False
    token = None

    def refresh(self, request):
        raise google.auth.exceptions.TransportError("connection reset")


@parameters
class VolumesGetParams(StandardParameters):
    volume_id: str | None = path_param("volumeId", default=None)
    projection: str | None = query_param()


class BooksService(Service):
    BASE_URL = "https://books.example.test/v1/"

    async def volumes_get(self, params: VolumesGetParams) -> Volume:
        return await self.perform(
            "GET", "volumes/{volumeId}", parameters=params, response_type=Volume
        )

    async def shelves_update(self, params: VolumesGetParams, body: ShelfUpdate) -> None:
        return await self.perform(
            "PATCH", "volumes/{volumeId}/shelf", request=body, parameters=params
        )


def raw(body=None, status_code=200, content=None) -> RawResponse:
    if body is not None:
        content = json.dumps(body).encode()
    return RawResponse(content=content, status_code=status_code, reason_phrase="Reason")


@pytest.fixture
def service():
    """A service whose handler can be exercised without I/O."""
    return Service(base_url="https://example.test/")


class TestResponseHandler:
    """Envelope detection and decoding."""

    def test_error_envelope(self, service):
        """Should raise the server's error, never a decoded value."""
        body = {"error": {"code": 403, "status": "PERMISSION_DENIED", "message": "no"}}
        with pytest.raises(APIError) as exc_info:
            service.handle_response(raw(body, status_code=403), Point)
        error = exc_info.value
        assert error.code == 403
        assert error.message == "no"
        assert error.status == "PERMISSION_DENIED"
        assert error.payload == body["error"]

    def test_error_envelope_with_success_status(self, service):
        """Should raise for an error envelope even on a 200."""
        body = {"error": {"code": 400, "message": "bad"}}
        with pytest.raises(APIError, match="400"):
            service.handle_response(raw(body), Point)

    def test_error_code_falls_back_to_status(self, service):
        """Should use the HTTP status when the envelope has no code."""
        body = {"error": {"status": "NOT_FOUND", "message": "gone"}}
        with pytest.raises(APIError) as exc_info:
            service.handle_response(raw(body, status_code=404), Point)
        assert exc_info.value.code == 404

    def test_error_details_kept(self, service):
        """Should keep legacy errors and structured details."""
        body = {
            "error": {
                "code": 429,
                "status": "RESOURCE_EXHAUSTED",
                "message": "quota",
                "errors": [{"reason": "rateLimitExceeded"}],
                "details": [{"@type": "type.googleapis.com/google.rpc.ErrorInfo"}],
            }
        }
        with pytest.raises(APIError) as exc_info:
            service.handle_response(raw(body, status_code=429), Point)
        assert exc_info.value.errors == [{"reason": "rateLimitExceeded"}]
        assert len(exc_info.value.details) == 1

    def test_oauth_style_error(self, service):
        """Should map string errors with error_description."""
        body = {"error": "invalid_grant", "error_description": "Token has been revoked."}
        with pytest.raises(APIError) as exc_info:
            service.handle_response(raw(body, status_code=400), Point)
        assert exc_info.value.status == "invalid_grant"
        assert exc_info.value.message == "Token has been revoked."
        assert exc_info.value.code == 400

    def test_data_envelope(self, service):
        """Should unwrap the data envelope."""
        assert service.handle_response(raw({"data": {"x": 1}}), Point) == Point(x=1)

    def test_bare_payload_matches_data_envelope(self, service):
        """Should decode a bare payload to the same value as a wrapped one."""
        wrapped = service.handle_response(raw({"data": {"x": 1}}), Point)
        bare = service.handle_response(raw({"x": 1}), Point)
        assert bare == wrapped

    def test_typed_dict_and_list_results(self, service):
        """Should decode into any type pydantic can validate."""
        body = {"data": {"translations": [{"translatedText": "Hallo"}]}}
        result = service.handle_response(raw(body), dict[str, list[dict[str, str]]])
        assert result == {"translations": [{"translatedText": "Hallo"}]}
        assert service.handle_response(raw([{"x": 1}, {"x": 2}]), list[Point]) == [
            Point(x=1),
            Point(x=2),
        ]

    def test_empty_body(self, service):
        """Should raise invalid response when a result is expected."""
        with pytest.raises(InvalidResponseError, match="Invalid response from server"):
            service.handle_response(raw(content=None), Point)
        with pytest.raises(InvalidResponseError):
            service.handle_response(raw(content=b""), Point)

    def test_empty_error_body(self, service):
        """Should raise an API error with the status for empty error responses."""
        with pytest.raises(APIError) as exc_info:
            service.handle_response(raw(content=None, status_code=404), Point)
        assert exc_info.value.code == 404

    def test_invalid_json(self, service):
        """Should raise a decode error for malformed JSON."""
        with pytest.raises(ResponseDecodeError) as exc_info:
            service.handle_response(raw(content=b"{not json"), Point)
        assert exc_info.value.content == b"{not json"

    def test_non_json_error_body(self, service):
        """Should surface HTML error pages as API errors."""
        with pytest.raises(APIError) as exc_info:
            service.handle_response(
                raw(content=b"<html>Bad Gateway</html>", status_code=502), Point
            )
        assert exc_info.value.code == 502
        assert "Bad Gateway" in exc_info.value.message

    def test_error_status_without_envelope(self, service):
        """Should raise for error statuses even when the body isn't an envelope."""
        with pytest.raises(APIError) as exc_info:
            service.handle_response(raw({"x": 1}, status_code=500), Point)
        assert exc_info.value.code == 500

    def test_type_mismatch(self, service):
        """Should raise a decode error chained from the validation error."""
        with pytest.raises(ResponseDecodeError, match="Point") as exc_info:
            service.handle_response(raw({"x": "not a number"}), Point)
        assert isinstance(exc_info.value.__cause__, ValidationError)

    def test_data_envelope_type_mismatch(self, service):
        """Should raise a decode error for a bad wrapped payload."""
        with pytest.raises(ResponseDecodeError):
            service.handle_response(raw({"data": {"y": 1}}), Point)

    def test_unhashable_annotated_type(self, service):
        """Should decode with a result type that can't be cached."""
        with pytest.raises(TypeError):
            hash(PageCount)
        assert service.handle_response(raw(3), PageCount) == 3
        assert service.handle_response(raw({"data": 4}), PageCount) == 4
        with pytest.raises(ResponseDecodeError):
            service.handle_response(raw(-1), PageCount)

    def test_no_response_type(self, service):
        """Should return None for successful calls without a result type."""
        assert service.handle_response(raw(content=None)) is None
        assert service.handle_response(raw({"x": 1})) is None
        assert service.handle_response(raw(content=b"OK")) is None

    def test_no_response_type_still_raises_errors(self, service):
        """Should raise error envelopes without a result type."""
        body = {"error": {"code": 409, "status": "ALREADY_EXISTS", "message": "dup"}}
        with pytest.raises(APIError, match="ALREADY_EXISTS"):
            service.handle_response(raw(body, status_code=409))


class TestPerform:
    """End-to-end calls through a fake transport."""

    @pytest.fixture
    def books(self, connection):
        return BooksService(connection=connection)

    @pytest.mark.asyncio
    async def test_get_with_parameters(self, books, fake_api):
        """Should bind path and query and decode the result."""
        fake_api.reply(json_body={"id": "zyTCAlFPjgYC", "title": "The Google Story"})

        volume = await books.volumes_get(
            VolumesGetParams(volume_id="zyTCAlFPjgYC", projection="lite", quota_user="u1")
        )

        assert volume == Volume(id="zyTCAlFPjgYC", title="The Google Story")
        request = fake_api.requests[0]
        assert request.method == "GET"
        assert str(request.url).startswith("https://books.example.test/v1/volumes/zyTCAlFPjgYC?")
        assert request.url.params["projection"] == "lite"
        assert request.url.params["quotaUser"] == "u1"
        assert "fields" not in request.url.params
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.content == b""

    @pytest.mark.asyncio
    async def test_body_without_result(self, books, fake_api):
        """Should send the JSON body and return None."""
        fake_api.reply(content=b"")

        result = await books.shelves_update(
            VolumesGetParams(volume_id="v1"), ShelfUpdate(title="Read", is_public=True)
        )

        assert result is None
        request = fake_api.requests[0]
        assert request.method == "PATCH"
        assert request.url.path == "/v1/volumes/v1/shelf"
        assert json.loads(request.content) == {"title": "Read", "isPublic": True}
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_plain_path_with_dict_body(self, fake_api, connection):
        """Should accept plain dict bodies and paths without parameters."""
        fake_api.reply(json_body={"data": {"translations": [{"translatedText": "Hola"}]}})
        service = Service(
            base_url="https://translation.example.test/language/translate/v2",
            connection=connection,
        )

        result = await service.perform(
            "POST", "", request={"q": ["Hello"], "target": "es"}, response_type=dict
        )

        assert result == {"translations": [{"translatedText": "Hola"}]}
        assert json.loads(fake_api.requests[0].content) == {"q": ["Hello"], "target": "es"}

    @pytest.mark.asyncio
    async def test_missing_path_parameter_before_io(self, books, fake_api):
        """Should fail before any request is sent."""
        with pytest.raises(MissingPathParameterError, match="volumeId"):
            await books.volumes_get(VolumesGetParams())
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_transport_error(self, books, fake_api):
        """Should raise transport failures as TransportError."""
        fake_api.fail(httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError) as exc_info:
            await books.volumes_get(VolumesGetParams(volume_id="v1"))
        assert isinstance(exc_info.value.original, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_api_error(self, books, fake_api):
        """Should raise server errors from perform."""
        fake_api.reply(
            403, json_body={"error": {"code": 403, "status": "PERMISSION_DENIED", "message": "no"}}
        )
        with pytest.raises(APIError) as exc_info:
            await books.volumes_get(VolumesGetParams(volume_id="v1"))
        assert exc_info.value.code == 403

    @pytest.mark.asyncio
    async def test_token_refresh_network_error(self, fake_api):
        """Should raise an unreachable token endpoint as TokenError before any request."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api))
        provider = CredentialsTokenProvider(UnreachableCredentials(), request=object())
        service = Service(
            base_url="https://example.test/v1/", connection=Connection(provider, client=client)
        )

        with pytest.raises(GoogleAPIRuntimeError) as exc_info:
            await service.perform("GET", "items", response_type=dict)

        assert isinstance(exc_info.value, TokenError)
        assert isinstance(exc_info.value.__cause__, google.auth.exceptions.TransportError)
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_exactly_one_outcome(self, books, fake_api):
        """Should either return or raise for every call."""
        fake_api.reply(json_body={"id": "a"})
        fake_api.reply(404, json_body={"error": {"code": 404, "message": "missing"}})
        fake_api.reply(content=b"")
        fake_api.fail(httpx.ReadTimeout("timed out"))

        outcomes = []
        for _ in range(4):
            try:
                outcomes.append(await books.volumes_get(VolumesGetParams(volume_id="v")))
            except Exception as e:
                outcomes.append(e)

        assert outcomes[0] == Volume(id="a")
        assert isinstance(outcomes[1], APIError)
        assert isinstance(outcomes[2], InvalidResponseError)
        assert isinstance(outcomes[3], TransportError)
        assert len(fake_api.requests) == 4

    @pytest.mark.asyncio
    async def test_concurrent_calls(self, books, fake_api):
        """Should run independent calls concurrently."""
        for i in range(3):
            fake_api.reply(json_body={"id": f"v{i}"})

        results = await asyncio.gather(
            *(books.volumes_get(VolumesGetParams(volume_id=f"v{i}")) for i in range(3))
        )

        assert sorted(r.id for r in results) == ["v0", "v1", "v2"]


class TestServiceLifecycle:
    """Construction and cleanup."""

    def test_requires_base_url(self):
        """Should refuse a service without a base URL."""
        with pytest.raises(ValueError, match="base_url"):
            Service()

    def test_class_base_url(self):
        """Should default to the class BASE_URL."""
        assert BooksService().base_url == "https://books.example.test/v1/"

    @pytest.mark.asyncio
    async def test_closes_owned_connection(self):
        """Should close a connection it created."""
        async with BooksService() as books:
            client = books.connection._client
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_keeps_shared_connection(self, connection):
        """Should not close a connection passed in."""
        async with BooksService(connection=connection):
            pass
        assert not connection._client.is_closed
        assert isinstance(connection, Connection)
