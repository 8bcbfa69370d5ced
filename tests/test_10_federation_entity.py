import json
import threading
import time

import pytest
import responses
from cryptojwt.jwt import JWT
from cryptojwt.jwt import utc_time_sans_frac
from responses import matchers

from fedhub.cli import main
from fedhub.configure import FedHubConfiguration
from fedhub.defaults import DEFAULT_HTTPC_PARAMS
from fedhub.defaults import MAX_DEPTH
from fedhub.entity import FederationEntity
from fedhub.entity.discovery import construct_well_known_url
from fedhub.entity_statement.verify import UnverifiedSignatureVerifier
from fedhub.exception import Cancelled
from fedhub.exception import ChainInvalid
from fedhub.exception import ChainTooDeep
from fedhub.exception import ErrorKind
from fedhub.exception import UntrustedAnchor
from tests.utils import Federation
from tests.utils import flip_signature
from tests.utils import publish_configuration
from tests.utils import publish_statement

RP_ID = "https://rp.example"
OP_ID = "https://op.example"
RP = "openid_relying_party"

RP_METADATA = {
    "redirect_uris": ["https://rp.example/cb"],
    "response_types": ["code"],
    "scope": "openid email",
}


class TestFederationEntity(object):
    @pytest.fixture(autouse=True)
    def setup(self):
        self.federation = Federation(RP_ID, OP_ID)
        self.entity = FederationEntity(entity_id=OP_ID)
        self.entity.registry.add(OP_ID, "openid_provider")

    def _publish(self, rsps):
        publish_configuration(rsps, RP_ID, self.federation.configuration(
            RP_ID, metadata={RP: RP_METADATA}, authority_hints=[OP_ID]))
        publish_configuration(rsps, OP_ID, self.federation.configuration(OP_ID))
        publish_statement(rsps, OP_ID, RP_ID, self.federation.subordinate_statement(
            OP_ID, RP_ID,
            metadata_policy={RP: {"grant_types": {"default": ["authorization_code"]}}}))

    def _request_object(self, **kwargs):
        _payload = {"client_id": RP_ID, "aud": [OP_ID], "response_type": "code",
                    "redirect_uri": "https://rp.example/cb", "scope": "openid"}
        _payload.update(kwargs)
        _jwt = JWT(key_jar=self.federation.keyjar[RP_ID], iss=RP_ID, lifetime=300,
                   sign_alg="RS256")
        return _jwt.pack(payload=_payload)

    def test_resolve(self):
        with responses.RequestsMock() as rsps:
            self._publish(rsps)
            _metadata = self.entity.resolve(RP_ID)

        assert _metadata.entity_id == RP_ID
        assert _metadata.anchor == OP_ID
        assert _metadata[RP]["grant_types"] == ("authorization_code",)
        assert _metadata.chain.iss_path == [RP_ID, OP_ID]

    def test_resolve_unknown_anchor(self):
        self.entity.registry.remove(OP_ID)
        with responses.RequestsMock() as rsps:
            self._publish(rsps)
            with pytest.raises(UntrustedAnchor):
                self.entity.resolve(RP_ID)

    def test_resolve_cancelled(self):
        _event = threading.Event()
        _event.set()
        with pytest.raises(Cancelled):
            self.entity.resolve(RP_ID, cancel_event=_event)

    def test_resolve_timeout(self):
        def slow(request):
            time.sleep(0.3)
            return 200, {}, self.federation.configuration(
                RP_ID, metadata={RP: RP_METADATA}, authority_hints=[OP_ID])

        with responses.RequestsMock() as rsps:
            rsps.add_callback("GET", construct_well_known_url(RP_ID), callback=slow)
            with pytest.raises(Cancelled):
                self.entity.resolve(RP_ID, timeout=0.05)

    def test_register(self):
        with responses.RequestsMock() as rsps:
            self._publish(rsps)
            decision = self.entity.register(self._request_object())

        assert decision.accepted
        assert decision.client_metadata["client_id"] == RP_ID
        assert decision.client_metadata["grant_types"] == ["authorization_code"]
        assert decision.client_metadata["redirect_uris"] == ["https://rp.example/cb"]

    def test_register_bad_signature(self):
        with responses.RequestsMock() as rsps:
            self._publish(rsps)
            decision = self.entity.register(flip_signature(self._request_object()))

        assert decision.accepted is False
        assert decision.rejection_reason == ErrorKind.SIGNATURE_INVALID

    def test_register_wrong_redirect_uri(self):
        with responses.RequestsMock() as rsps:
            self._publish(rsps)
            decision = self.entity.register(
                self._request_object(redirect_uri="https://evil.example/cb"))

        assert decision.rejection_reason == ErrorKind.METADATA_MISMATCH

    def test_register_unresolvable(self):
        with responses.RequestsMock() as rsps:
            rsps.add("GET", construct_well_known_url(RP_ID), status=500)
            decision = self.entity.register(self._request_object())

        assert decision.accepted is False
        assert decision.rejection_reason == ErrorKind.DISCOVERY_FAILED

    def test_register_garbage(self):
        decision = self.entity.register("garbage")
        assert decision.rejection_reason == ErrorKind.INVALID_REQUEST_OBJECT

    def test_admin(self):
        _res = self.entity.admin.add_entity("https://ta.example", "openid_relying_party")
        assert _res["success"] is True
        assert self.entity.registry.is_trust_anchor("https://ta.example")
        _ids = [e["entity_id"] for e in self.entity.admin.list_entities()["entities"]]
        assert set(_ids) == {OP_ID, "https://ta.example"}
        assert self.entity.admin.remove_entity("https://ta.example")["success"] is True
        assert self.entity.admin.remove_entity("https://ta.example")["error"] == "not_found"


LEAF_ID = "https://localhost:8081"
TA_ID = "https://localhost:8080"


def _json_statement(iss, sub, **kwargs):
    _now = utc_time_sans_frac()
    _statement = {"iss": iss, "sub": sub, "iat": _now, "exp": _now + 3600}
    _statement.update(kwargs)
    return json.dumps(_statement)


class TestConfiguration(object):
    def test_defaults(self):
        conf = FedHubConfiguration({"entity_id": OP_ID})
        assert conf.test_mode is False
        assert conf.allow_json_statements is False
        assert conf.insecure_skip_signature_verification is False
        assert conf.httpc_params == DEFAULT_HTTPC_PARAMS
        assert conf.max_depth == MAX_DEPTH
        assert conf.trust_anchors == {}

    def test_json_statements_need_test_mode(self):
        conf = FedHubConfiguration({"entity_id": OP_ID, "allow_json_statements": True})
        assert conf.allow_json_statements is False

    def test_trust_anchors_from_file(self, tmp_path):
        _file = tmp_path / "anchors.json"
        _file.write_text(json.dumps({OP_ID: {"entity_type": "openid_provider"}}))
        conf = FedHubConfiguration({"entity_id": OP_ID, "trust_anchors": str(_file)})
        entity = FederationEntity.from_config(conf)
        assert entity.registry.is_trust_anchor(OP_ID)

    def test_test_mode_with_json_statements(self):
        conf = FedHubConfiguration({
            "entity_id": TA_ID,
            "test_mode": True,
            "allow_json_statements": True,
            "insecure_skip_signature_verification": True,
            "trust_anchors": {TA_ID: {"entity_type": "openid_provider"}}
        })
        entity = FederationEntity.from_config(conf)
        assert isinstance(entity.verifier, UnverifiedSignatureVerifier)

        with responses.RequestsMock() as rsps:
            rsps.add("GET", "http://localhost:8081/.well-known/openid-federation",
                     body=_json_statement(LEAF_ID, LEAF_ID, authority_hints=[TA_ID],
                                          metadata={RP: RP_METADATA}))
            rsps.add("GET", "http://localhost:8080/.well-known/openid-federation",
                     body=_json_statement(TA_ID, TA_ID, metadata={"federation_entity": {
                         "federation_fetch_endpoint": f"{TA_ID}/fetch"}}))
            rsps.add("GET", "http://localhost:8080/fetch",
                     body=_json_statement(TA_ID, LEAF_ID),
                     match=[matchers.query_param_matcher({"iss": TA_ID, "sub": LEAF_ID})])
            _metadata = entity.resolve(LEAF_ID)

        assert _metadata.anchor == TA_ID
        assert _metadata.to_dict(RP)["redirect_uris"] == ["https://rp.example/cb"]


def test_cli(tmp_path, capsys):
    federation = Federation(RP_ID, OP_ID)
    _conf = tmp_path / "conf.json"
    _conf.write_text(json.dumps({
        "entity_id": OP_ID,
        "trust_anchors": {OP_ID: {"entity_type": "openid_provider"}}
    }))

    with responses.RequestsMock() as rsps:
        publish_configuration(rsps, RP_ID, federation.configuration(
            RP_ID, metadata={RP: RP_METADATA}, authority_hints=[OP_ID]))
        publish_configuration(rsps, OP_ID, federation.configuration(OP_ID))
        publish_statement(rsps, OP_ID, RP_ID, federation.subordinate_statement(OP_ID, RP_ID))
        assert main(["-c", str(_conf), RP_ID]) == 0

    _out = json.loads(capsys.readouterr().out)
    assert _out["entity_id"] == RP_ID
    assert _out["trust_anchor"] == OP_ID
    assert _out["metadata"][RP]["scope"] == "openid email"


def test_cli_failure(tmp_path, capsys):
    _conf = tmp_path / "conf.json"
    _conf.write_text(json.dumps({"entity_id": OP_ID, "trust_anchors": {}}))

    with responses.RequestsMock() as rsps:
        rsps.add("GET", construct_well_known_url(RP_ID), status=404)
        assert main(["-c", str(_conf), RP_ID]) == 1

    _out = json.loads(capsys.readouterr().out)
    assert _out["error"] == "discovery_failed"


class TestSuppliedTrustChain(object):
    @pytest.fixture(autouse=True)
    def setup(self):
        self.federation = Federation(RP_ID, OP_ID)
        self.entity = FederationEntity(entity_id=OP_ID)
        self.entity.registry.add(OP_ID, "openid_provider")
        self.leaf = self.federation.configuration(RP_ID, metadata={RP: RP_METADATA},
                                                  authority_hints=[OP_ID])
        self.statement = self.federation.subordinate_statement(OP_ID, RP_ID)
        self.anchor = self.federation.configuration(OP_ID)

    def _request_object(self, trust_chain):
        _payload = {"client_id": RP_ID, "aud": [OP_ID], "response_type": "code",
                    "redirect_uri": "https://rp.example/cb", "scope": "openid",
                    "trust_chain": trust_chain}
        _jwt = JWT(key_jar=self.federation.keyjar[RP_ID], iss=RP_ID, lifetime=300,
                   sign_alg="RS256")
        return _jwt.pack(payload=_payload)

    def test_validate_trust_chain(self):
        _metadata = self.entity.validate_trust_chain(
            RP_ID, [self.leaf, self.statement, self.anchor])
        assert _metadata.anchor == OP_ID
        assert _metadata.chain.export_chain() == [self.leaf, self.statement, self.anchor]

    def test_register_without_fetching(self):
        # Nothing is published, any fetch would fail the registration
        with responses.RequestsMock():
            decision = self.entity.register(
                self._request_object([self.leaf, self.statement, self.anchor]))

        assert decision.accepted
        assert decision.client_metadata["client_id"] == RP_ID

    def test_broken_chain_falls_back_to_resolve(self):
        with responses.RequestsMock() as rsps:
            publish_configuration(rsps, RP_ID, self.leaf)
            publish_configuration(rsps, OP_ID, self.anchor)
            publish_statement(rsps, OP_ID, RP_ID, self.statement)
            decision = self.entity.register(self._request_object(
                [self.leaf, flip_signature(self.statement), self.anchor]))

        assert decision.accepted

    def test_chain_about_someone_else(self):
        with pytest.raises(ChainInvalid):
            self.entity.validate_trust_chain("https://other.example",
                                             [self.leaf, self.statement, self.anchor])

    def test_chain_too_long(self):
        entity = FederationEntity(entity_id=OP_ID, registry=self.entity.registry, max_depth=1)
        with pytest.raises(ChainTooDeep):
            entity.validate_trust_chain(
                RP_ID, [self.leaf, self.statement, self.statement, self.anchor])
