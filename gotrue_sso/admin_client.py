"""HTTP client for the GoTrue SSO admin API.

One client instance talks to one GoTrue server.  It is configured once with a
base URL, a default header set and a transport, and holds no other state, so
it can be shared between callers working on different providers.

Key behaviors:
- Every request gets its own copy of the default headers
- Write requests are sent as ``application/json``
- Any status other than the expected one raises :class:`AdminAPIError`
- No retries: timeouts and connection errors surface as raised by ``requests``
- ``redact_auth()`` keeps credentials out of debug logs
"""

import json
import logging
from typing import Any, Dict, Optional

import requests
from requests.structures import CaseInsensitiveDict

from .exceptions import AdminAPIError, ResponseDecodeError
from .models import IdentityProviderRequest, IdentityProviderResponse

logger = logging.getLogger(__name__)

PROVIDERS_PATH = "/admin/sso/providers"

DEFAULT_TIMEOUT = 30


class AdminClient:
    """Client for ``/admin/sso/providers``.

    Args:
        base_url:   Root URL of the GoTrue server (e.g. ``https://auth.example.com``).
                    A trailing ``/`` is stripped.
        headers:    Headers sent with every request, usually ``Authorization``
                    and ``User-Agent``.  Copied at construction time.
        transport:  Object with a requests-compatible ``request()`` method.
                    Defaults to a new ``requests.Session``.
        timeout:    Default per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str = "",
        headers: Optional[Dict[str, str]] = None,
        transport: Any = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._headers = CaseInsensitiveDict(headers or {})
        self.transport = transport if transport is not None else requests.Session()
        self.timeout = timeout

    @property
    def headers(self) -> Dict[str, str]:
        """A copy of the default headers."""
        return dict(self._headers)

    # -- Public API ----------------------------------------------------------

    def get_identity_provider(self, id: str, timeout: Optional[float] = None) -> IdentityProviderResponse:
        """Fetch one provider.  Expects HTTP 200."""
        return self._call(
            "GET",
            f"{PROVIDERS_PATH}/{id}",
            expected=200,
            op=f'fetching identity provider with id "{id}"',
            timeout=timeout,
        )

    def create_identity_provider(
        self, template: IdentityProviderRequest, timeout: Optional[float] = None
    ) -> IdentityProviderResponse:
        """Create a provider.  Expects HTTP 201."""
        return self._call(
            "POST",
            PROVIDERS_PATH,
            expected=201,
            op="creating new identity provider",
            payload=template.to_dict(),
            timeout=timeout,
        )

    def update_identity_provider(
        self, id: str, template: IdentityProviderRequest, timeout: Optional[float] = None
    ) -> IdentityProviderResponse:
        """Update the fields present in ``template``.  Expects HTTP 200."""
        return self._call(
            "PUT",
            f"{PROVIDERS_PATH}/{id}",
            expected=200,
            op=f'updating identity provider with ID "{id}"',
            payload=template.to_dict(),
            timeout=timeout,
        )

    def delete_identity_provider(self, id: str, timeout: Optional[float] = None) -> None:
        """Delete a provider.  Expects HTTP 200; the body is ignored."""
        self._call(
            "DELETE",
            f"{PROVIDERS_PATH}/{id}",
            expected=200,
            op=f'deleting identity provider with ID "{id}"',
            decode=False,
            timeout=timeout,
        )

    # -- Internals -----------------------------------------------------------

    def _build_headers(self, json_body: bool) -> CaseInsensitiveDict:
        """Copy the default headers, adding Content-Type for write requests."""
        headers = self._headers.copy()
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _call(
        self,
        method: str,
        path: str,
        expected: int,
        op: str,
        payload: Optional[Dict[str, Any]] = None,
        decode: bool = True,
        timeout: Optional[float] = None,
    ) -> Optional[IdentityProviderResponse]:
        """Send one request and decode the response.

        The response is closed on every path out of this method, whether the
        status was wrong, decoding failed, or everything went fine.
        """
        url = f"{self.base_url}{path}"
        headers = self._build_headers(payload is not None)
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        if timeout is None:
            timeout = self.timeout

        logger.debug("%s %s headers=%s", method, url, redact_auth(dict(headers)))

        resp = self.transport.request(method, url, headers=headers, data=data, timeout=timeout)
        with resp:
            logger.debug("%s %s -> HTTP %s", method, url, resp.status_code)

            if resp.status_code != expected:
                raise parse_error(resp, expected, op)

            if not decode:
                return None

            try:
                body = json.loads(resp.text)
            except json.JSONDecodeError as e:
                raise ResponseDecodeError(f"invalid JSON in response when {op}: {e}") from e
            return IdentityProviderResponse.from_dict(body)


def parse_error(resp: Any, expected: int, op: str) -> AdminAPIError:
    """Build an :class:`AdminAPIError` from a response with an unexpected status.

    The body is decoded as ``{"code": int, "msg": str, "error_id": str}`` when
    possible; otherwise the raw text becomes the message.  A JSON ``null``
    body decodes to an empty error.
    """
    text = resp.text or ""
    code = None
    message = text
    error_id = ""

    try:
        body = json.loads(text)
    except ValueError:
        body = text

    if body is None:
        message = ""
    elif isinstance(body, dict):
        if isinstance(body.get("code"), int):
            code = body["code"]
        if isinstance(body.get("msg"), str):
            message = body["msg"]
        else:
            message = ""
        if isinstance(body.get("error_id"), str):
            error_id = body["error_id"]

    return AdminAPIError(
        op=op,
        expected=expected,
        status=resp.status_code,
        message=message,
        code=code,
        error_id=error_id,
    )


def redact_auth(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with Authorization values replaced by ``***REDACTED***``.

    Use this when including headers in JSON output, logs, or error messages
    to avoid leaking service-role keys or other bearer tokens.
    """
    redacted = dict(headers)
    for key in list(redacted.keys()):
        if key.lower() in ("authorization", "apikey"):
            redacted[key] = "***REDACTED***"
    return redacted
