"""Connection settings for a GoTrue server and construction of the admin client."""

import logging
import os
from typing import Dict, List, Optional, Tuple

import requests

from . import __version__
from .admin_client import DEFAULT_TIMEOUT, AdminClient
from .validators import Diagnostic, has_errors, validate_headers, validate_url

logger = logging.getLogger(__name__)

URL_ENV_VAR = "GOTRUE_URL"

USER_AGENT = f"gotrue-sso/{__version__}"


class ProviderConfig:
    """Settings shared by every resource managed against one GoTrue server.

    Args:
        url:            GoTrue base URL.
        headers:        Extra headers for every request (``Authorization`` etc.).
        timeout:        Per-request timeout in seconds.
        tls_no_verify:  Skip TLS certificate verification (for self-signed certs).
        ca_bundle:      Path to a custom CA certificate bundle file.
        proxy:          HTTP/HTTPS proxy URL.
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        tls_no_verify: bool = False,
        ca_bundle: Optional[str] = None,
        proxy: Optional[str] = None,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.tls_no_verify = tls_no_verify
        self.ca_bundle = ca_bundle
        self.proxy = proxy

    @classmethod
    def from_env(cls, url: Optional[str] = None, **kwargs) -> "ProviderConfig":
        """Build a config, taking the URL from ``GOTRUE_URL`` when not given."""
        if not url:
            url = os.environ.get(URL_ENV_VAR, "")
        return cls(url, **kwargs)

    def validate(self) -> List[Diagnostic]:
        return validate_url(self.url) + validate_headers(self.headers)

    def build_session(self) -> requests.Session:
        """A ``requests.Session`` carrying the TLS and proxy settings."""
        session = requests.Session()
        if self.ca_bundle:
            session.verify = self.ca_bundle
        elif self.tls_no_verify:
            session.verify = False
        if self.proxy:
            session.proxies = {"http": self.proxy, "https": self.proxy}
        return session


def configure(config: ProviderConfig) -> Tuple[Optional[AdminClient], List[Diagnostic]]:
    """Validate ``config`` and build an :class:`AdminClient` from it.

    Returns ``(client, diagnostics)``.  The client is ``None`` when any
    diagnostic is an error; warnings are returned alongside a usable client.
    """
    diagnostics = config.validate()
    if has_errors(diagnostics):
        return None, diagnostics

    headers = dict(config.headers)
    if not any(k.lower() == "user-agent" for k in headers):
        headers["User-Agent"] = USER_AGENT

    client = AdminClient(
        base_url=config.url,
        headers=headers,
        transport=config.build_session(),
        timeout=config.timeout,
    )
    logger.debug("Configured GoTrue admin client for %s", client.base_url)
    return client, diagnostics
