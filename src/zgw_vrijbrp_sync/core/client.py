import json
import logging
import threading
from typing import Any

import requests

from ..config_schema import SourceConfig
from ..errors import ConfigurationError, RemoteCallError
from ..validators import validate_endpoint

logger = logging.getLogger(__name__)

_JSON_CONTENT_TYPES = ("application/json", "application/ld+json", "application/hal+json")


class GatewayClient:
    """Call remote sources over HTTP and decode their responses.

    One ``requests.Session`` is kept per thread so concurrent candidate
    processing never shares a connection pool across threads.  Timeouts
    come from the source configuration; any transport or HTTP failure is
    raised as ``RemoteCallError`` with the response body attached.
    """

    def __init__(self) -> None:
        self._thread_local = threading.local()

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = requests.Session()
        return self._thread_local.session

    def build_url(self, source: SourceConfig, endpoint: str) -> str:
        is_valid, message = validate_endpoint(endpoint)
        if not is_valid:
            raise ConfigurationError(message)
        return f"{source.location}{endpoint}"

    def call(
        self,
        source: SourceConfig,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: dict[str, str] | None = None,
        multipart: list[dict[str, Any]] | None = None,
    ) -> requests.Response:
        """
        Execute *method* against *endpoint* of *source*.

        Args:
            source: The remote source to call.
            endpoint: Path appended to the source location.
            method: HTTP method.
            body: Request body; strings and bytes are sent as-is, other
                values are JSON-encoded.
            headers: Extra headers merged over the source headers.
            multipart: Multipart parts, each ``{"name", "contents", "filename"}``.

        Returns:
            The raw response.

        Raises:
            RemoteCallError: On network failure, timeout, or HTTP error status.
        """
        url = self.build_url(source, endpoint)
        request_headers = {**source.headers, **(headers or {})}

        kwargs: dict[str, Any] = {
            "headers": request_headers,
            "timeout": source.timeout,
        }
        if multipart:
            kwargs["files"] = [
                (
                    part["name"],
                    (part.get("filename"), part["contents"]),
                )
                for part in multipart
            ]
        elif isinstance(body, (str, bytes)):
            kwargs["data"] = body
            request_headers.setdefault("Content-Type", "application/json")
        elif body is not None:
            kwargs["json"] = body

        logger.debug("%s %s", method, url)
        try:
            response = self._get_session().request(method, url, **kwargs)
        except requests.Timeout as exc:
            raise RemoteCallError(
                f"{method} {url} timed out after {source.timeout}s"
            ) from exc
        except requests.RequestException as exc:
            raise RemoteCallError(f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteCallError(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )
        return response

    def decode_response(
        self, source: SourceConfig, response: requests.Response
    ) -> dict[str, Any] | list[Any]:
        """
        Decode a response body into structured data.

        Empty bodies decode to ``{}``.  JSON is decoded regardless of a
        missing content type; any other content type is an error.
        """
        if not response.content:
            return {}

        content_type = response.headers.get("Content-Type", "")
        media_type = content_type.split(";")[0].strip().lower()
        if media_type and media_type not in _JSON_CONTENT_TYPES:
            raise RemoteCallError(
                f"Unsupported response content type '{media_type}' "
                f"from source '{source.reference}'",
                status_code=response.status_code,
                response_body=response.text,
            )

        try:
            return json.loads(response.content)
        except ValueError as exc:
            raise RemoteCallError(
                f"Could not decode response from source '{source.reference}': {exc}",
                status_code=response.status_code,
                response_body=response.text,
            ) from exc

    def request_json(
        self,
        source: SourceConfig,
        endpoint: str,
        method: str = "GET",
        **options: Any,
    ) -> dict[str, Any] | list[Any]:
        """Call and decode in one step."""
        response = self.call(source, endpoint, method, **options)
        return self.decode_response(source, response)
