"""Request dispatch and response handling for generated API clients.

Generated clients subclass ``Service`` and implement each API method as a
single ``perform`` call:

    class BooksService(Service):
        BASE_URL = "https://www.googleapis.com/books/v1/"

        async def volumes_get(self, params: VolumesGetParams) -> Volume:
            return await self.perform(
                "GET", "volumes/{volumeId}", parameters=params, response_type=Volume
            )

Responses are decoded in this order: Google's ``{"error": ...}`` envelope
becomes an ``APIError``; a ``{"data": ...}`` envelope (used by e.g. the
Translate v2 API) is unwrapped; anything else is decoded as the result type.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from google_api_runtime.auth.base import TokenProvider
from google_api_runtime.exceptions import (
    APIError,
    InvalidResponseError,
    ResponseDecodeError,
)
from google_api_runtime.params import bind
from google_api_runtime.transport import Connection, RawResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


@lru_cache(maxsize=256)
def _cached_adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def _adapter(tp: Any) -> TypeAdapter:
    try:
        hash(tp)
    except TypeError:
        # e.g. Annotated[...] carrying unhashable metadata
        return TypeAdapter(tp)
    return _cached_adapter(tp)


def encode_body(request: Any) -> bytes:
    """Serialize a request body to JSON.

    Accepts pydantic models, dataclasses, TypedDicts, dicts and lists. Fields
    set to None are dropped and field aliases are used as JSON names.
    """
    try:
        return _adapter(type(request)).dump_json(request, by_alias=True, exclude_none=True)
    except PydanticSerializationError as e:
        raise TypeError(f"Cannot encode {type(request).__name__} as JSON: {e}") from e


def decode_result(content: bytes | str, response_type: type[T] | Any) -> T:
    """Decode a JSON document as ``response_type``.

    Raises:
        ResponseDecodeError: If the JSON doesn't validate against the type.
    """
    try:
        return _adapter(response_type).validate_json(content)
    except ValidationError as e:
        name = getattr(response_type, "__name__", repr(response_type))
        raw = content.encode() if isinstance(content, str) else content
        raise ResponseDecodeError(f"Response does not match {name}: {e}", raw) from e


def _api_error(envelope: dict[str, Any], status_code: int) -> APIError:
    error = envelope["error"]
    if isinstance(error, dict):
        code = error.get("code")
        return APIError(
            code=code if isinstance(code, int) else status_code,
            message=error.get("message"),
            status=error.get("status"),
            errors=error.get("errors"),
            details=error.get("details"),
            payload=error,
        )

    # OAuth endpoints: {"error": "invalid_grant", "error_description": "..."}
    return APIError(
        code=status_code,
        message=envelope.get("error_description"),
        status=error,
        payload=envelope,
    )


class Service:
    """Base class for generated API clients.

    Example:
        >>> async with BooksService(GoogleOAuth(scopes=["books"])) as books:
        ...     volume = await books.volumes_get(VolumesGetParams(volume_id="zyTCAlFPjgYC"))
    """

    BASE_URL = ""

    def __init__(
        self,
        provider: TokenProvider | None = None,
        base_url: str | None = None,
        connection: Connection | None = None,
    ):
        """Initialize the service.

        Args:
            provider: Token provider used when the service creates its own connection.
            base_url: Root URL every path is appended to. Defaults to ``BASE_URL``.
            connection: Existing connection to share. Not closed by this service.

        Raises:
            ValueError: If there is no base URL.
        """
        self.base_url = base_url if base_url is not None else self.BASE_URL
        if not self.base_url:
            raise ValueError(f"{type(self).__name__} needs a base_url")

        self._owns_connection = connection is None
        self.connection = connection or Connection(provider)

    async def perform(
        self,
        method: str,
        path: str,
        *,
        request: Any = None,
        parameters: Any = None,
        response_type: type[T] | Any = None,
    ) -> T | None:
        """Perform one API call.

        Args:
            method: HTTP method.
            path: Path template relative to the base URL, e.g. "volumes/{volumeId}".
            request: Request body, sent as JSON.
            parameters: Parameter bag (see ``google_api_runtime.params``).
            response_type: Type to decode the response into. Without one, the
                response body is only checked for errors.

        Returns:
            The decoded result, or None when no response_type is given.

        Raises:
            MissingPathParameterError: Before any I/O, if the path can't be resolved.
            TransportError: If the HTTP call fails.
            APIError: If the server reports an error.
            ResponseDecodeError: If the body can't be decoded.
            InvalidResponseError: If a result was expected but the body is empty.
        """
        bound = bind(parameters, path)
        body = encode_body(request) if request is not None else None

        raw = await self.connection.perform_request(
            method, self.base_url + bound.path, bound.query, body
        )
        return self.handle_response(raw, response_type)

    def handle_response(self, raw: RawResponse, response_type: type[T] | Any = None) -> T | None:
        """Turn a raw response into a result or an error."""
        if not raw.content:
            if raw.is_error:
                raise APIError(code=raw.status_code, message=raw.reason_phrase or None)
            if response_type is None:
                return None
            raise InvalidResponseError()

        try:
            payload = json.loads(raw.content)
        except ValueError as e:
            if raw.is_error:
                logger.warning(f"Non-JSON error body with status {raw.status_code}")
                raise APIError(
                    code=raw.status_code,
                    message=raw.content.decode("utf-8", errors="replace"),
                ) from e
            if response_type is None:
                return None
            raise ResponseDecodeError(f"Response is not valid JSON: {e}", raw.content) from e

        if isinstance(payload, dict) and isinstance(payload.get("error"), (dict, str)):
            raise _api_error(payload, raw.status_code)

        if raw.is_error:
            raise APIError(code=raw.status_code, message=raw.reason_phrase or None, payload=payload)

        if response_type is None:
            return None

        if isinstance(payload, dict) and "data" in payload:
            return decode_result(json.dumps(payload["data"]), response_type)

        return decode_result(raw.content, response_type)

    async def close(self):
        """Close the connection if this service created it."""
        if self._owns_connection:
            await self.connection.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
