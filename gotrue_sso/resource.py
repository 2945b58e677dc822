"""The ``gotrue_saml_identity_provider`` resource: record type and lifecycle.

:class:`SAMLIdentityProvider` is the declarative record a host keeps for one
provider.  :class:`IdentityProviderReconciler` moves it through its lifecycle:

- ``create``  — POST the desired fields, then copy the server's view back
- ``read``    — GET by id and copy the server's view back
- ``update``  — PUT only the fields that changed since ``prior``
- ``delete``  — DELETE by id and clear the record's id

Errors from the admin client propagate unchanged.  The only errors raised
here are :class:`ResourceValidationError` for an attribute mapping that cannot
be parsed; those are raised before any request is sent.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .admin_client import AdminClient
from .exceptions import AttributeMappingError, ResourceValidationError
from .models import (
    PROVIDER_TYPE_SAML,
    AttributeMapping,
    IdentityProviderRequest,
    IdentityProviderResponse,
    format_timestamp,
)
from .validators import Diagnostic, validate_attribute_mapping, validate_domains

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "gotrue_saml_identity_provider"

# Fields the user sets; everything else is computed by the server
MUTABLE_FIELDS = ("metadata_url", "metadata_xml", "domains", "attribute_mapping")
COMPUTED_FIELDS = ("id", "created_at", "updated_at")


class SAMLIdentityProvider:
    """Declarative record for one SAML identity provider.

    Attributes:
        id:                 Server-assigned id; empty until created, cleared on delete.
        metadata_url:       URL the server fetches SAML metadata from.
        metadata_xml:       Inline SAML metadata document.
        domains:            Email domains routed to this provider (a set).
        attribute_mapping:  Attribute mapping as a JSON string.
        created_at:         Creation time, ``YYYY-MM-DDTHH:MM:SSZ``.
        updated_at:         Last update time, same format.
    """

    def __init__(
        self,
        id: str = "",
        metadata_url: str = "",
        metadata_xml: str = "",
        domains: Optional[List[str]] = None,
        attribute_mapping: str = "",
        created_at: str = "",
        updated_at: str = "",
    ):
        self.id = id
        self.metadata_url = metadata_url
        self.metadata_xml = metadata_xml
        self.domains = list(domains or [])
        self.attribute_mapping = attribute_mapping
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def exists(self) -> bool:
        return bool(self.id)

    def copy(self) -> "SAMLIdentityProvider":
        return SAMLIdentityProvider(**self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "metadata_url": self.metadata_url,
            "metadata_xml": self.metadata_xml,
            "domains": list(self.domains),
            "attribute_mapping": self.attribute_mapping,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SAMLIdentityProvider":
        """Build a record from loosely typed input (JSON, YAML, module args).

        ``attribute_mapping`` may be given as an already-parsed object, in
        which case it is serialized to a JSON string.  A single domain given as
        a string is treated as a one-element list.  Unknown keys are ignored.
        """
        mapping = data.get("attribute_mapping") or ""
        domains = data.get("domains") or []
        if isinstance(domains, str):
            domains = [domains]
        if not isinstance(mapping, str):
            mapping = json.dumps(mapping, separators=(",", ":"), sort_keys=True)
        return cls(
            id=data.get("id") or "",
            metadata_url=data.get("metadata_url") or "",
            metadata_xml=data.get("metadata_xml") or "",
            domains=list(domains),
            attribute_mapping=mapping,
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )

    def has_change(self, field: str, prior: "SAMLIdentityProvider") -> bool:
        """Whether ``field`` differs between this record and ``prior``.

        Domains compare as sets.  Attribute mappings compare by content when
        both sides parse, so formatting and key order don't count as changes.
        """
        if field not in MUTABLE_FIELDS + COMPUTED_FIELDS:
            raise KeyError(field)
        if field == "domains":
            return set(self.domains) != set(prior.domains)
        if field == "attribute_mapping":
            return _canonical_mapping(self.attribute_mapping) != _canonical_mapping(prior.attribute_mapping)
        return getattr(self, field) != getattr(prior, field)

    def changed_fields(self, prior: "SAMLIdentityProvider") -> List[str]:
        """User-set fields that differ from ``prior``.

        The XML is not compared when a metadata URL is set; only the URL is
        ever sent for such a record.
        """
        fields = MUTABLE_FIELDS
        if self.metadata_url:
            fields = tuple(f for f in fields if f != "metadata_xml")
        return [f for f in fields if self.has_change(f, prior)]

    def __eq__(self, other):
        if not isinstance(other, SAMLIdentityProvider):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"SAMLIdentityProvider(id={self.id!r}, domains={self.domains!r})"


def _canonical_mapping(text: str) -> str:
    if not text:
        return AttributeMapping().to_json()
    try:
        return AttributeMapping.from_json(text).to_json()
    except AttributeMappingError:
        return text


def validate_record(record: SAMLIdentityProvider) -> List[Diagnostic]:
    """All diagnostics for the record's user-supplied fields."""
    return validate_domains(record.domains) + validate_attribute_mapping(record.attribute_mapping)


def parse_attribute_mapping(text: str) -> AttributeMapping:
    """Parse the record's attribute mapping string for a request.

    Raises:
        ResourceValidationError: The string is not a valid mapping document.
    """
    try:
        return AttributeMapping.from_json(text)
    except AttributeMappingError as e:
        raise ResourceValidationError([Diagnostic.error(
            "attribute_mapping must be valid JSON",
            detail=str(e),
            path="attribute_mapping",
        )]) from e


def synchronize(provider: IdentityProviderResponse, record: SAMLIdentityProvider) -> None:
    """Copy the server's view of a provider into ``record``.

    Metadata URL wins over metadata XML; only the winning field is written.
    Domains are de-duplicated and sorted.  The attribute mapping is stored as
    compact JSON.
    """
    record.id = provider.id

    if provider.saml.metadata_url:
        record.metadata_url = provider.saml.metadata_url
    elif provider.saml.metadata_xml:
        record.metadata_xml = provider.saml.metadata_xml

    record.created_at = format_timestamp(provider.created_at)
    record.updated_at = format_timestamp(provider.updated_at)

    record.domains = sorted({d.domain for d in provider.domains})
    record.attribute_mapping = provider.saml.attribute_mapping.to_json()


class IdentityProviderReconciler:
    """Drives one :class:`SAMLIdentityProvider` record through its lifecycle.

    Every operation mutates the record in place on success.  On failure the
    record is left as it was.

    Args:
        client:  Configured admin client for the GoTrue server.
    """

    def __init__(self, client: AdminClient):
        self.client = client

    def validate(self, record: SAMLIdentityProvider) -> List[Diagnostic]:
        return validate_record(record)

    # -- Request building ----------------------------------------------------

    def build_create_request(self, record: SAMLIdentityProvider) -> IdentityProviderRequest:
        template = IdentityProviderRequest(type=PROVIDER_TYPE_SAML)

        if record.metadata_url:
            template.metadata_url = record.metadata_url
        elif record.metadata_xml:
            template.metadata_xml = record.metadata_xml

        if record.domains:
            template.domains = sorted(set(record.domains))

        if record.attribute_mapping:
            template.attribute_mapping = parse_attribute_mapping(record.attribute_mapping)

        return template

    def build_update_request(
        self, record: SAMLIdentityProvider, prior: SAMLIdentityProvider
    ) -> IdentityProviderRequest:
        """A request carrying only what changed between ``prior`` and ``record``.

        Metadata URL and XML are checked separately.  The XML is only sent
        when the record has no URL, so a URL-configured provider stays one.
        A mapping changed to empty is sent as ``{}``, which clears it on the
        server.
        """
        template = IdentityProviderRequest()

        url_changed = record.has_change("metadata_url", prior) and record.metadata_url
        xml_changed = record.has_change("metadata_xml", prior) and record.metadata_xml
        if url_changed:
            template.metadata_url = record.metadata_url
        elif xml_changed and not record.metadata_url:
            template.metadata_xml = record.metadata_xml

        if record.has_change("domains", prior):
            template.domains = sorted(set(record.domains))

        if record.has_change("attribute_mapping", prior):
            if record.attribute_mapping:
                template.attribute_mapping = parse_attribute_mapping(record.attribute_mapping)
            else:
                template.attribute_mapping = AttributeMapping()

        return template

    # -- Lifecycle -----------------------------------------------------------

    def create(self, record: SAMLIdentityProvider, timeout: Optional[float] = None) -> None:
        template = self.build_create_request(record)
        provider = self.client.create_identity_provider(template, timeout=timeout)
        synchronize(provider, record)
        logger.info("Created identity provider %s", record.id)

    def read(self, record: SAMLIdentityProvider, timeout: Optional[float] = None) -> None:
        _require_id(record, "read")
        provider = self.client.get_identity_provider(record.id, timeout=timeout)
        synchronize(provider, record)

    def update(
        self,
        record: SAMLIdentityProvider,
        prior: SAMLIdentityProvider,
        timeout: Optional[float] = None,
    ) -> None:
        """Send the changes from ``prior`` to ``record``.

        ``record.id`` is the id being updated; ``prior`` only supplies the
        previous field values.
        """
        _require_id(record, "update")
        template = self.build_update_request(record, prior)
        provider = self.client.update_identity_provider(record.id, template, timeout=timeout)
        synchronize(provider, record)
        logger.info("Updated identity provider %s", record.id)

    def delete(self, record: SAMLIdentityProvider, timeout: Optional[float] = None) -> None:
        _require_id(record, "delete")
        self.client.delete_identity_provider(record.id, timeout=timeout)
        logger.info("Deleted identity provider %s", record.id)
        record.id = ""


def _require_id(record: SAMLIdentityProvider, action: str) -> None:
    if not record.id:
        raise ValueError(f"cannot {action} an identity provider without an id")
