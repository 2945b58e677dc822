"""Tests for the identity provider record and its reconciler.

Request building and synchronization are checked with a scripted transport;
the full lifecycle runs against the mock GoTrue server.
"""

import json
from datetime import datetime, timezone

import pytest

from gotrue_sso.admin_client import AdminClient
from gotrue_sso.exceptions import AdminAPIError, ResourceValidationError
from gotrue_sso.models import (
    SAML,
    Attribute,
    AttributeMapping,
    Domain,
    IdentityProviderResponse,
)
from gotrue_sso.resource import (
    IdentityProviderReconciler,
    SAMLIdentityProvider,
    synchronize,
    validate_record,
)
from tests.fake_transport import FakeTransport, make_response
from tests.mock_gotrue_server import FETCHED_METADATA_XML, MockGoTrueServer


MAPPING = '{"keys": {"email": {"name": "mail"}}}'


def _reconciler(*responses):
    transport = FakeTransport(*responses)
    client = AdminClient("https://auth.example.com", transport=transport)
    return IdentityProviderReconciler(client), transport


@pytest.fixture
def server():
    with MockGoTrueServer() as s:
        yield s


@pytest.fixture
def reconciler(server):
    return IdentityProviderReconciler(AdminClient(server.base_url))


class TestRecord:

    def test_domains_compare_as_sets(self):
        prior = SAMLIdentityProvider(domains=["a.com", "b.com"])
        assert not SAMLIdentityProvider(domains=["b.com", "a.com", "a.com"]).has_change("domains", prior)
        assert SAMLIdentityProvider(domains=["a.com"]).has_change("domains", prior)

    def test_mapping_compares_by_content(self):
        prior = SAMLIdentityProvider(attribute_mapping='{"keys":{"email":{"name":"mail"}}}')
        same = SAMLIdentityProvider(attribute_mapping=MAPPING)
        other = SAMLIdentityProvider(attribute_mapping='{"keys": {"email": {"name": "email"}}}')
        assert not same.has_change("attribute_mapping", prior)
        assert other.has_change("attribute_mapping", prior)

    def test_empty_mapping_equals_empty_object(self):
        prior = SAMLIdentityProvider(attribute_mapping="{}")
        assert not SAMLIdentityProvider().has_change("attribute_mapping", prior)

    def test_unparseable_mapping_compares_as_text(self):
        prior = SAMLIdentityProvider(attribute_mapping="{bad")
        assert not SAMLIdentityProvider(attribute_mapping="{bad").has_change("attribute_mapping", prior)
        assert SAMLIdentityProvider(attribute_mapping="{worse").has_change("attribute_mapping", prior)

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            SAMLIdentityProvider().has_change("nope", SAMLIdentityProvider())

    def test_changed_fields(self):
        prior = SAMLIdentityProvider(metadata_url="https://a", domains=["a.com"])
        desired = SAMLIdentityProvider(metadata_url="https://b", domains=["a.com"], attribute_mapping=MAPPING)
        assert desired.changed_fields(prior) == ["metadata_url", "attribute_mapping"]

    def test_xml_ignored_when_url_set(self):
        prior = SAMLIdentityProvider(metadata_url="https://idp/metadata")
        desired = SAMLIdentityProvider(metadata_url="https://idp/metadata", metadata_xml="<x/>")
        assert desired.changed_fields(prior) == []

    def test_from_dict_single_domain_string(self):
        record = SAMLIdentityProvider.from_dict({"metadata_xml": "<x/>", "domains": "localhost"})
        assert record.domains == ["localhost"]

    def test_from_dict_serializes_mapping_object(self):
        record = SAMLIdentityProvider.from_dict({
            "metadata_xml": "<x/>",
            "domains": ["a.com"],
            "attribute_mapping": {"keys": {"email": {"name": "mail"}}},
            "ignored": True,
        })
        assert json.loads(record.attribute_mapping) == {"keys": {"email": {"name": "mail"}}}
        assert record.domains == ["a.com"]
        assert record.id == ""

    def test_copy_is_independent(self):
        record = SAMLIdentityProvider(id="x", domains=["a.com"])
        clone = record.copy()
        clone.domains.append("b.com")
        assert record.domains == ["a.com"]
        assert clone == SAMLIdentityProvider(id="x", domains=["a.com", "b.com"])

    def test_validate_record_collects_everything(self):
        record = SAMLIdentityProvider(domains=["BAD.com", "-x.com"], attribute_mapping='{"keys": {"a": {}}}')
        assert len(validate_record(record)) == 3


class TestSynchronize:

    def _response(self, **saml):
        return IdentityProviderResponse(
            id="abc",
            domains=[Domain("b.com"), Domain("a.com"), Domain("b.com")],
            saml=SAML(**saml),
            created_at=datetime(2024, 1, 1, 12, 0, 0, 999, tzinfo=timezone.utc),
            updated_at=datetime(2024, 1, 2, 12, 0, 0, tzinfo=timezone.utc),
        )

    def test_writes_every_field(self):
        record = SAMLIdentityProvider()
        synchronize(self._response(
            metadata_xml="<x/>",
            attribute_mapping=AttributeMapping({"email": Attribute(name="mail")}),
        ), record)

        assert record.id == "abc"
        assert record.metadata_xml == "<x/>"
        assert record.metadata_url == ""
        assert record.domains == ["a.com", "b.com"]
        assert record.created_at == "2024-01-01T12:00:00Z"
        assert record.updated_at == "2024-01-02T12:00:00Z"
        assert record.attribute_mapping == '{"keys":{"email":{"name":"mail"}}}'

    def test_url_preferred_over_xml(self):
        record = SAMLIdentityProvider()
        synchronize(self._response(metadata_url="https://idp/metadata", metadata_xml="<x/>"), record)
        assert record.metadata_url == "https://idp/metadata"
        assert record.metadata_xml == ""

    def test_empty_mapping_serialized(self):
        record = SAMLIdentityProvider(attribute_mapping=MAPPING)
        synchronize(self._response(metadata_xml="<x/>"), record)
        assert record.attribute_mapping == "{}"

    def test_domains_sorted_and_deduplicated(self):
        record = SAMLIdentityProvider()
        response = IdentityProviderResponse(
            id="abc",
            domains=[Domain(d) for d in ["z.com", "m.com", "a.com", "m.com", "z.com"]],
        )
        synchronize(response, record)
        assert record.domains == ["a.com", "m.com", "z.com"]


class TestCreate:

    def test_request_shape(self):
        reconciler, transport = _reconciler(make_response(201, {"id": "new"}))
        record = SAMLIdentityProvider(
            metadata_url="https://idp/metadata",
            metadata_xml="<ignored/>",
            domains=["b.com", "a.com"],
            attribute_mapping=MAPPING,
        )
        reconciler.create(record)

        assert transport.sent[0].body == {
            "type": "saml",
            "metadata_url": "https://idp/metadata",
            "domains": ["a.com", "b.com"],
            "attribute_mapping": {"keys": {"email": {"name": "mail"}}},
        }
        assert record.id == "new"

    def test_xml_used_when_no_url(self):
        reconciler, transport = _reconciler(make_response(201, {"id": "new"}))
        reconciler.create(SAMLIdentityProvider(metadata_xml="<x/>"))
        assert transport.sent[0].body == {"type": "saml", "metadata_xml": "<x/>"}

    def test_bad_mapping_fails_before_any_request(self):
        reconciler, transport = _reconciler()
        record = SAMLIdentityProvider(metadata_xml="<x/>", attribute_mapping="{nope")

        with pytest.raises(ResourceValidationError) as exc_info:
            reconciler.create(record)

        assert transport.sent == []
        assert exc_info.value.diagnostics[0].path == "attribute_mapping"
        assert record.id == ""

    def test_api_error_propagates_and_record_untouched(self):
        reconciler, _ = _reconciler(make_response(400, {"code": 400, "msg": "invalid metadata"}))
        record = SAMLIdentityProvider(metadata_xml="<x/>")

        with pytest.raises(AdminAPIError) as exc_info:
            reconciler.create(record)
        assert exc_info.value.message == "invalid metadata"
        assert record == SAMLIdentityProvider(metadata_xml="<x/>")


class TestUpdate:

    def test_unchanged_domains_not_sent(self):
        reconciler, transport = _reconciler(make_response(200, {"id": "abc", "domains": [{"domain": "a.com"}]}))
        prior = SAMLIdentityProvider(id="abc", domains=["a.com"])
        record = SAMLIdentityProvider(id="abc", domains=["a.com"], metadata_xml="<new/>")

        reconciler.update(record, prior)

        body = transport.sent[0].body
        assert "domains" not in body
        assert body == {"metadata_xml": "<new/>"}
        assert transport.sent[0].method == "PUT"
        assert transport.sent[0].url.endswith("/admin/sso/providers/abc")

    def test_removed_domains_sent_as_empty_list(self):
        reconciler, transport = _reconciler(make_response(200, {"id": "abc"}))
        prior = SAMLIdentityProvider(id="abc", domains=["a.com"])
        record = SAMLIdentityProvider(id="abc")

        reconciler.update(record, prior)

        assert transport.sent[0].body == {"domains": []}
        assert record.domains == []

    def test_changed_domains_sent_sorted(self):
        reconciler, transport = _reconciler(make_response(200, {"id": "abc"}))
        prior = SAMLIdentityProvider(id="abc", domains=["a.com"])
        record = SAMLIdentityProvider(id="abc", domains=["c.com", "a.com", "b.com"])

        reconciler.update(record, prior)
        assert transport.sent[0].body == {"domains": ["a.com", "b.com", "c.com"]}

    def test_url_wins_when_both_metadata_fields_change(self):
        reconciler, transport = _reconciler(make_response(200, {"id": "abc"}))
        prior = SAMLIdentityProvider(id="abc", metadata_url="https://old", metadata_xml="<old/>")
        record = SAMLIdentityProvider(id="abc", metadata_url="https://new", metadata_xml="<new/>")

        reconciler.update(record, prior)
        assert transport.sent[0].body == {"metadata_url": "https://new"}

    def test_xml_not_sent_while_url_is_kept(self):
        reconciler, transport = _reconciler(make_response(200, {"id": "abc"}))
        prior = SAMLIdentityProvider(id="abc", metadata_url="https://idp")
        record = SAMLIdentityProvider(id="abc", metadata_url="https://idp", metadata_xml="<x/>")

        reconciler.update(record, prior)
        assert transport.sent[0].body == {}

    def test_switch_from_url_to_xml(self):
        reconciler, transport = _reconciler(make_response(200, {"id": "abc"}))
        prior = SAMLIdentityProvider(id="abc", metadata_url="https://old")
        record = SAMLIdentityProvider(id="abc", metadata_xml="<new/>")

        reconciler.update(record, prior)
        assert transport.sent[0].body == {"metadata_xml": "<new/>"}

    def test_mapping_sent_only_when_changed(self):
        reconciler, transport = _reconciler(
            make_response(200, {"id": "abc"}),
            make_response(200, {"id": "abc"}),
        )
        prior = SAMLIdentityProvider(id="abc", attribute_mapping='{"keys":{"email":{"name":"mail"}}}')

        reconciler.update(SAMLIdentityProvider(id="abc", attribute_mapping=MAPPING), prior)
        reconciler.update(SAMLIdentityProvider(
            id="abc", attribute_mapping='{"keys": {"email": {"names": ["mail", "email"]}}}',
        ), prior)

        assert transport.sent[0].body == {}
        assert transport.sent[1].body == {"attribute_mapping": {"keys": {"email": {"names": ["mail", "email"]}}}}

    def test_cleared_mapping_sent_empty(self):
        reconciler, transport = _reconciler(make_response(200, {"id": "abc"}))
        prior = SAMLIdentityProvider(id="abc", attribute_mapping=MAPPING)

        reconciler.update(SAMLIdentityProvider(id="abc"), prior)
        assert transport.sent[0].body == {"attribute_mapping": {}}

    def test_bad_mapping_fails_before_any_request(self):
        reconciler, transport = _reconciler()
        with pytest.raises(ResourceValidationError):
            reconciler.update(SAMLIdentityProvider(id="abc", attribute_mapping="[1"), SAMLIdentityProvider(id="abc"))
        assert transport.sent == []

    def test_requires_id(self):
        reconciler, _ = _reconciler()
        with pytest.raises(ValueError):
            reconciler.update(SAMLIdentityProvider(), SAMLIdentityProvider())


class TestLifecycle:

    def test_create_read_update_delete(self, reconciler, server):
        record = SAMLIdentityProvider(
            metadata_url="https://idp.example.com/saml/metadata",
            domains=["example.org", "example.com"],
            attribute_mapping=MAPPING,
        )
        reconciler.create(record)

        assert record.id in server.providers
        assert record.metadata_url == "https://idp.example.com/saml/metadata"
        assert record.domains == ["example.com", "example.org"]
        assert record.created_at.endswith("Z")
        assert record.attribute_mapping == '{"keys":{"email":{"name":"mail"}}}'
        provider_id = record.id

        refreshed = SAMLIdentityProvider(id=provider_id)
        reconciler.read(refreshed)
        assert refreshed.domains == record.domains
        assert refreshed.metadata_url == record.metadata_url
        assert refreshed.metadata_xml == ""

        prior = record.copy()
        record.domains = ["example.com"]
        reconciler.update(record, prior)
        assert record.domains == ["example.com"]
        assert server.requests[-1].body == {"domains": ["example.com"]}
        assert record.id == provider_id

        reconciler.delete(record)
        assert record.id == ""
        assert provider_id not in server.providers

    def test_read_missing_raises(self, reconciler):
        record = SAMLIdentityProvider(id="gone", domains=["a.com"])
        with pytest.raises(AdminAPIError) as exc_info:
            reconciler.read(record)
        assert exc_info.value.not_found
        assert record.id == "gone"
        assert record.domains == ["a.com"]

    def test_delete_failure_keeps_id(self, reconciler):
        record = SAMLIdentityProvider(id="gone")
        with pytest.raises(AdminAPIError):
            reconciler.delete(record)
        assert record.id == "gone"

    def test_url_registered_provider_keeps_url_only(self, reconciler, server):
        record = SAMLIdentityProvider(metadata_url="https://idp.example.com/saml/metadata")
        reconciler.create(record)
        stored = server.providers[record.id]["saml"]
        assert stored["metadata_xml"] == FETCHED_METADATA_XML
        assert record.metadata_xml == ""
