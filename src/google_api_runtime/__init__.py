"""Runtime for generated Google REST API clients.

Builds requests from typed parameter bags, attaches OAuth2 credentials and
decodes JSON responses (including Google's error envelope) into typed results.

Usage:
    from google_api_runtime import Service, StaticTokenProvider, parameters, path_param

    @parameters
    class GetParams:
        volume_id: str = path_param("volumeId")

    class BooksService(Service):
        BASE_URL = "https://www.googleapis.com/books/v1/"

        async def get(self, params: GetParams) -> dict:
            return await self.perform(
                "GET", "volumes/{volumeId}", parameters=params, response_type=dict
            )
"""

from google_api_runtime.auth import (
    CredentialsTokenProvider,
    GoogleOAuth,
    GoogleServiceAccount,
    StaticTokenProvider,
    TokenProvider,
)
from google_api_runtime.exceptions import (
    APIError,
    AuthError,
    CredentialsNotFoundError,
    GoogleAPIRuntimeError,
    InvalidResponseError,
    MissingPathParameterError,
    ResponseDecodeError,
    ScopeMismatchError,
    TokenError,
    TransportError,
)
from google_api_runtime.params import (
    BoundRequest,
    StandardParameters,
    bind,
    expand_path,
    parameters,
    path_param,
    query,
    query_param,
)
from google_api_runtime.service import Service
from google_api_runtime.transport import Connection, RawResponse

__all__ = [
    "Service",
    "Connection",
    "RawResponse",
    "parameters",
    "path_param",
    "query_param",
    "query",
    "expand_path",
    "bind",
    "BoundRequest",
    "StandardParameters",
    "TokenProvider",
    "StaticTokenProvider",
    "CredentialsTokenProvider",
    "GoogleOAuth",
    "GoogleServiceAccount",
    "GoogleAPIRuntimeError",
    "APIError",
    "TransportError",
    "MissingPathParameterError",
    "InvalidResponseError",
    "ResponseDecodeError",
    "AuthError",
    "CredentialsNotFoundError",
    "TokenError",
    "ScopeMismatchError",
]
