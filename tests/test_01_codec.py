import json

import pytest
from cryptojwt.utils import as_unicode
from cryptojwt.utils import b64e

from fedhub.entity_statement.codec import decode_statement
from fedhub.entity_statement.codec import decode_trust_chain
from fedhub.exception import DiscoveryFailed
from fedhub.exception import MalformedStatement
from fedhub.message import RequestObject
from tests.utils import Federation

RP_ID = "https://rp.example"
OP_ID = "https://op.example"


def _segment(item):
    return as_unicode(b64e(json.dumps(item).encode()))


class TestCodec(object):
    @pytest.fixture(autouse=True)
    def create_federation(self):
        self.federation = Federation(RP_ID, OP_ID)

    def test_decode_configuration(self):
        _token = self.federation.configuration(
            RP_ID, metadata={"openid_relying_party": {"redirect_uris": ["https://rp.example/cb"]}},
            authority_hints=[OP_ID])
        statement = decode_statement(_token)
        assert statement["iss"] == RP_ID
        assert statement["sub"] == RP_ID
        assert statement.is_self_issued()
        assert statement["authority_hints"] == [OP_ID]
        assert statement.entity_metadata("openid_relying_party") == {
            "redirect_uris": ["https://rp.example/cb"]}
        assert statement.jws_header["alg"] == "RS256"
        assert "kid" in statement.jws_header
        assert statement.jwt == _token

    def test_decode_subordinate_statement(self):
        _token = self.federation.subordinate_statement(OP_ID, RP_ID)
        statement = decode_statement(_token)
        assert statement.is_self_issued() is False
        assert statement["jwks"] == self.federation.jwks(RP_ID)

    def test_wrong_number_of_segments(self):
        _token = self.federation.configuration(RP_ID)
        with pytest.raises(MalformedStatement):
            decode_statement(".".join(_token.split(".")[:2]))
        with pytest.raises(MalformedStatement):
            decode_statement(_token + ".extra")

    def test_malformed_is_discovery_failure(self):
        with pytest.raises(DiscoveryFailed):
            decode_statement("not a token at all")

    def test_bad_base64(self):
        _header = _segment({"alg": "RS256"})
        with pytest.raises(MalformedStatement):
            decode_statement(f"{_header}.!!!.abc")

    def test_bad_base64_padding(self):
        _header = _segment({"alg": "RS256"})
        with pytest.raises(MalformedStatement):
            decode_statement(f"{_header}.a.c2ln")
        with pytest.raises(MalformedStatement):
            decode_statement("a.a.c2ln")

    def test_payload_not_json_object(self):
        _header = _segment({"alg": "RS256"})
        _payload = _segment(["a", "list"])
        with pytest.raises(MalformedStatement):
            decode_statement(f"{_header}.{_payload}.abc")

    def test_missing_required_claim(self):
        _header = _segment({"alg": "RS256"})
        _payload = _segment({"iss": RP_ID, "sub": RP_ID, "iat": 1})
        with pytest.raises(MalformedStatement):
            decode_statement(f"{_header}.{_payload}.abc")

    def test_unknown_critical_extension(self):
        _token = self.federation.configuration(RP_ID, crit=["jti_expiry"], jti_expiry=10)
        with pytest.raises(MalformedStatement):
            decode_statement(_token)

    def test_json_only_when_allowed(self):
        _doc = json.dumps({"iss": RP_ID, "sub": RP_ID, "iat": 1, "exp": 2})
        with pytest.raises(MalformedStatement):
            decode_statement(_doc)

        statement = decode_statement(_doc, allow_json=True)
        assert statement["sub"] == RP_ID
        assert statement.jwt == ""
        assert statement.jws_header == {}

    def test_unparsable_json(self):
        with pytest.raises(MalformedStatement):
            decode_statement('{"iss": ', allow_json=True)

    def test_request_object(self):
        _header = _segment({"alg": "RS256"})
        _payload = _segment({"client_id": RP_ID, "aud": OP_ID, "scope": "openid"})
        request = decode_statement(f"{_header}.{_payload}.abc", msg_class=RequestObject)
        assert request["client_id"] == RP_ID
        assert request["aud"] == [OP_ID]


class TestDecodeTrustChain(object):
    @pytest.fixture(autouse=True)
    def create_federation(self):
        self.federation = Federation(RP_ID, OP_ID)
        self.leaf = self.federation.configuration(RP_ID, authority_hints=[OP_ID])
        self.anchor = self.federation.configuration(OP_ID)

    def test_with_anchor_configuration(self):
        _statement = self.federation.subordinate_statement(OP_ID, RP_ID)
        chain = decode_trust_chain([self.leaf, _statement, self.anchor])
        assert chain.iss_path == [RP_ID, OP_ID]
        assert chain.anchor == OP_ID
        assert chain.anchor_configuration["sub"] == OP_ID

    def test_without_anchor_configuration(self):
        chain = decode_trust_chain([self.leaf, self.federation.subordinate_statement(OP_ID, RP_ID)])
        assert chain.anchor == OP_ID
        assert chain.anchor_configuration is None

    def test_anchor_listing_subordinate(self):
        chain = decode_trust_chain([self.leaf, self.anchor])
        assert len(chain) == 2
        assert chain.statements[-1] is chain.anchor_configuration

    def test_not_a_list(self):
        with pytest.raises(MalformedStatement):
            decode_trust_chain([])
        with pytest.raises(MalformedStatement):
            decode_trust_chain(self.leaf)
