"""Request and response shapes of the GoTrue SSO admin API.

Each class mirrors one JSON object on the wire.  ``to_dict()`` produces the
outbound representation (empty members omitted, like the server's own
encoder), ``from_dict()`` decodes an inbound object and raises on shapes it
cannot make sense of.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil.parser import isoparse

from .exceptions import AttributeMappingError, ResponseDecodeError


PROVIDER_TYPE_SAML = "saml"


class Attribute:
    """How one local user attribute is derived from SAML assertion claims.

    Attributes:
        name:     Single claim name to read.
        names:    Alternative claim names, tried in order.
        default:  Value used when no claim matches (any JSON value).
    """

    def __init__(self, name: str = "", names: Optional[List[str]] = None, default: Any = None):
        self.name = name
        self.names = list(names or [])
        self.default = default

    def is_empty(self) -> bool:
        """True when none of name, names or default is set."""
        return not self.name and not self.names and self.default is None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.name:
            d["name"] = self.name
        if self.names:
            d["names"] = list(self.names)
        if self.default is not None:
            d["default"] = self.default
        return d

    @classmethod
    def from_dict(cls, data: Any, key: str = "") -> "Attribute":
        where = f"attribute mapping key {key!r}" if key else "attribute"
        if not isinstance(data, dict):
            raise AttributeMappingError(f"{where} must be a JSON object")

        name = data.get("name")
        if name is None:
            name = ""
        elif not isinstance(name, str):
            raise AttributeMappingError(f"{where}: 'name' must be a string")

        names = data.get("names")
        if names is None:
            names = []
        elif not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise AttributeMappingError(f"{where}: 'names' must be an array of strings")

        return cls(name=name, names=names, default=data.get("default"))

    def __eq__(self, other):
        if not isinstance(other, Attribute):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"Attribute(name={self.name!r}, names={self.names!r}, default={self.default!r})"


class AttributeMapping:
    """Mapping of local attribute keys to :class:`Attribute` rules.

    On the wire this is ``{"keys": {"<key>": {...}, ...}}``.  Declarative
    records carry it as a JSON string; ``from_json``/``to_json`` convert
    between the two.
    """

    def __init__(self, keys: Optional[Dict[str, Attribute]] = None):
        self.keys: Dict[str, Attribute] = dict(keys or {})

    def to_dict(self) -> Dict[str, Any]:
        if not self.keys:
            return {}
        return {"keys": {k: self.keys[k].to_dict() for k in sorted(self.keys)}}

    def to_json(self) -> str:
        """Compact JSON with keys in sorted order, so equal mappings serialize identically."""
        return json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Any) -> "AttributeMapping":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise AttributeMappingError("attribute mapping must be a JSON object")

        raw_keys = data.get("keys")
        if raw_keys is None:
            return cls()
        if not isinstance(raw_keys, dict):
            raise AttributeMappingError("attribute mapping 'keys' must be a JSON object")

        return cls({key: Attribute.from_dict(value, key) for key, value in raw_keys.items()})

    @classmethod
    def from_json(cls, text: str) -> "AttributeMapping":
        """Parse a JSON document; raises :class:`AttributeMappingError` on bad input."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise AttributeMappingError(f"JSON parsing failed: {e}") from e
        return cls.from_dict(data)

    def __eq__(self, other):
        if not isinstance(other, AttributeMapping):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"AttributeMapping({self.keys!r})"


class Domain:
    """A domain associated with an identity provider."""

    def __init__(self, domain: str = ""):
        self.domain = domain

    @classmethod
    def from_dict(cls, data: Any) -> "Domain":
        if not isinstance(data, dict):
            raise ResponseDecodeError("domain entry must be a JSON object")
        return cls(_optional_str(data, "domain"))


class SAML:
    """SAML configuration of a provider as returned by the server."""

    def __init__(
        self,
        metadata_xml: str = "",
        metadata_url: str = "",
        attribute_mapping: Optional[AttributeMapping] = None,
    ):
        self.metadata_xml = metadata_xml
        self.metadata_url = metadata_url
        self.attribute_mapping = attribute_mapping or AttributeMapping()

    @classmethod
    def from_dict(cls, data: Any) -> "SAML":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ResponseDecodeError("'saml' must be a JSON object")
        try:
            mapping = AttributeMapping.from_dict(data.get("attribute_mapping"))
        except AttributeMappingError as e:
            raise ResponseDecodeError(str(e)) from e
        return cls(
            metadata_xml=_optional_str(data, "metadata_xml"),
            metadata_url=_optional_str(data, "metadata_url"),
            attribute_mapping=mapping,
        )


class IdentityProviderRequest:
    """Outbound body for create and update.

    ``domains`` is ``None`` when the domain set should be left alone; an empty
    list clears every domain.  Any other member left empty is omitted from the
    JSON body.
    """

    def __init__(
        self,
        id: str = "",
        resource_id: str = "",
        type: str = "",
        domains: Optional[List[str]] = None,
        metadata_xml: str = "",
        metadata_url: str = "",
        attribute_mapping: Optional[AttributeMapping] = None,
    ):
        self.id = id
        self.resource_id = resource_id
        self.type = type
        self.domains = domains
        self.metadata_xml = metadata_xml
        self.metadata_url = metadata_url
        self.attribute_mapping = attribute_mapping

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        for field in ("id", "resource_id", "type"):
            value = getattr(self, field)
            if value:
                d[field] = value
        if self.domains is not None:
            d["domains"] = list(self.domains)
        if self.metadata_xml:
            d["metadata_xml"] = self.metadata_xml
        if self.metadata_url:
            d["metadata_url"] = self.metadata_url
        if self.attribute_mapping is not None:
            d["attribute_mapping"] = self.attribute_mapping.to_dict()
        return d


class IdentityProviderResponse:
    """A provider as the server describes it."""

    def __init__(
        self,
        id: str = "",
        resource_id: str = "",
        domains: Optional[List[Domain]] = None,
        saml: Optional[SAML] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.resource_id = resource_id
        self.domains = list(domains or [])
        self.saml = saml or SAML()
        self.created_at = created_at
        self.updated_at = updated_at

    @classmethod
    def from_dict(cls, data: Any) -> "IdentityProviderResponse":
        if not isinstance(data, dict):
            raise ResponseDecodeError("identity provider response must be a JSON object")

        raw_domains = data.get("domains")
        if raw_domains is None:
            raw_domains = []
        elif not isinstance(raw_domains, list):
            raise ResponseDecodeError("'domains' must be an array")

        return cls(
            id=_optional_str(data, "id"),
            resource_id=_optional_str(data, "resource_id"),
            domains=[Domain.from_dict(d) for d in raw_domains],
            saml=SAML.from_dict(data.get("saml")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


def _optional_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ResponseDecodeError(f"'{key}' must be a string")
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp into an aware ``datetime``.

    Fractional seconds of any precision are accepted (truncated to
    microseconds).  A missing zone is read as UTC.  ``None`` and ``""``
    give ``None``.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ResponseDecodeError(f"timestamp must be a string, got {type(value).__name__}")

    try:
        parsed = isoparse(value.strip())
    except ValueError as e:
        raise ResponseDecodeError(f"invalid timestamp: {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> str:
    """Render as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC; ``""`` for ``None``."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
