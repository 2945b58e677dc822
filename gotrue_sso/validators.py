"""Field-level validation for provider records and connection settings.

Nothing here touches the network.  Every check collects *all* of its findings
as :class:`Diagnostic` objects instead of stopping at the first one, so a host
can show each problem next to the field it belongs to.
"""

import ipaddress
import json
import re
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from .models import AttributeMapping
from .exceptions import AttributeMappingError


# Severity constants used by Diagnostic
ERROR = "error"
WARNING = "warning"

# Lowercase LDH labels joined by single dots
DOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)*$")

_LOOPBACK_HOSTS = {"localhost", "::1"}


class Diagnostic:
    """A single validation finding.

    Attributes:
        severity:  ``ERROR`` or ``WARNING``.
        summary:   One-line description of the problem.
        detail:    Optional longer explanation.
        path:      The field the finding belongs to (e.g. ``domains[2]``).
    """

    def __init__(self, severity: str, summary: str, detail: str = "", path: str = ""):
        self.severity = severity
        self.summary = summary
        self.detail = detail
        self.path = path

    @classmethod
    def error(cls, summary: str, detail: str = "", path: str = "") -> "Diagnostic":
        return cls(ERROR, summary, detail, path)

    @classmethod
    def warning(cls, summary: str, detail: str = "", path: str = "") -> "Diagnostic":
        return cls(WARNING, summary, detail, path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Diagnostic":
        return cls(data["severity"], data["summary"], data.get("detail", ""), data.get("path", ""))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict for JSON output.  Omits empty fields."""
        d: Dict[str, Any] = {"severity": self.severity, "summary": self.summary}
        if self.detail:
            d["detail"] = self.detail
        if self.path:
            d["path"] = self.path
        return d

    def __str__(self):
        loc = f" at {self.path}" if self.path else ""
        prefix = "[WARN] " if self.severity == WARNING else ""
        return f"{prefix}{self.summary}{loc}"

    def __repr__(self):
        return (
            f"Diagnostic({self.severity!r}, {self.summary!r}, "
            f"detail={self.detail!r}, path={self.path!r})"
        )


def has_errors(diagnostics: Iterable[Diagnostic]) -> bool:
    return any(d.severity == ERROR for d in diagnostics)


# -- Resource fields ---------------------------------------------------------

def validate_domain(value: Any, path: str = "domains") -> List[Diagnostic]:
    """Check one domain.  Returns at most one diagnostic."""
    if isinstance(value, str) and DOMAIN_PATTERN.match(value):
        return []
    return [Diagnostic.error(f"Value {value!r} is not a valid domain", path=path)]


def validate_domains(values: Iterable[Any]) -> List[Diagnostic]:
    """Check every domain; one diagnostic per invalid entry."""
    diagnostics: List[Diagnostic] = []
    for idx, value in enumerate(values):
        diagnostics.extend(validate_domain(value, path=f"domains[{idx}]"))
    return diagnostics


def validate_attribute_mapping(value: Optional[str]) -> List[Diagnostic]:
    """Check an attribute mapping given as a JSON string.

    An empty value is fine.  A document that is not JSON, or not shaped like
    an attribute mapping, gives a single diagnostic.  Otherwise each key with
    nothing set, and each empty entry in a ``names`` list, gives one.
    """
    if not value:
        return []

    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        return [Diagnostic.error(
            "attribute_mapping must be valid JSON",
            detail=f"JSON parsing failed: {e}",
            path="attribute_mapping",
        )]

    try:
        mapping = AttributeMapping.from_dict(data)
    except AttributeMappingError as e:
        return [Diagnostic.error(
            "attribute_mapping does not have the expected shape",
            detail=str(e),
            path="attribute_mapping",
        )]

    diagnostics: List[Diagnostic] = []
    for key in sorted(mapping.keys):
        attribute = mapping.keys[key]
        if attribute.is_empty():
            diagnostics.append(Diagnostic.error(
                f"Attribute mapping key {key!r} must have at least one property set: name, names or default",
                path=f"attribute_mapping.keys.{key}",
            ))
            continue
        for idx, name in enumerate(attribute.names):
            if name == "":
                diagnostics.append(Diagnostic.error(
                    f"Attribute mapping name under {key!r}.names at position {idx} is empty",
                    path=f"attribute_mapping.keys.{key}.names[{idx}]",
                ))
    return diagnostics


# -- Connection settings -----------------------------------------------------

def is_loopback_host(hostname: str) -> bool:
    """True for ``localhost`` and loopback IP addresses."""
    if not hostname:
        return False
    host = hostname.lower().strip("[]")
    if host in _LOOPBACK_HOSTS:
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def validate_url(value: Optional[str]) -> List[Diagnostic]:
    """Check the GoTrue base URL.

    Errors: empty, not an absolute URL, not http(s).  Warning: plain HTTP to
    anything other than a loopback host.
    """
    if not value:
        return [Diagnostic.error("GoTrue URL is empty", path="url")]

    try:
        parsed = urlsplit(value)
        hostname = parsed.hostname or ""
    except ValueError as e:
        return [Diagnostic.error(
            "GoTrue URL is not valid",
            detail=f"Unable to parse URL: {e}",
            path="url",
        )]

    if not parsed.scheme or not parsed.netloc:
        return [Diagnostic.error(
            "GoTrue URL is not valid",
            detail=f"Unable to parse URL: {value!r} is not an absolute URL",
            path="url",
        )]

    diagnostics: List[Diagnostic] = []
    if parsed.scheme not in ("http", "https"):
        diagnostics.append(Diagnostic.error(
            f"GoTrue URL is not HTTP(S): {parsed.scheme!r}",
            path="url",
        ))
    elif parsed.scheme == "http" and not is_loopback_host(hostname):
        diagnostics.append(Diagnostic.warning(
            "GoTrue URL does not use HTTPS",
            detail="Communication with GoTrue should occur over HTTPS whenever possible",
            path="url",
        ))
    return diagnostics


def validate_headers(headers: Optional[Dict[str, str]]) -> List[Diagnostic]:
    """Warn when no usable Authorization header is configured."""
    authorization = ""
    for key, value in (headers or {}).items():
        if key.lower() == "authorization":
            authorization = value or ""
    if authorization.strip():
        return []
    return [Diagnostic.warning(
        "No Authorization header, requests may fail",
        detail="There was no Authorization header configured, requests may fail (depending on setup)",
        path="headers",
    )]
