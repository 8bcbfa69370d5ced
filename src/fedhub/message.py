import logging

from idpyoidc.message import Message
from idpyoidc.message import OPTIONAL_LIST_OF_STRINGS
from idpyoidc.message import SINGLE_OPTIONAL_INT
from idpyoidc.message import SINGLE_OPTIONAL_STRING
from idpyoidc.message import SINGLE_REQUIRED_INT
from idpyoidc.message import SINGLE_REQUIRED_STRING
from idpyoidc.message.oidc import SINGLE_OPTIONAL_DICT

from fedhub.exception import MalformedStatement

logger = logging.getLogger(__name__)


class EntityStatement(Message):
    """The Entity Statement"""
    c_param = {
        "sub": SINGLE_REQUIRED_STRING,
        'iss': SINGLE_REQUIRED_STRING,
        'exp': SINGLE_REQUIRED_INT,
        'iat': SINGLE_REQUIRED_INT,
        'jwks': SINGLE_OPTIONAL_DICT,
        'aud': SINGLE_OPTIONAL_STRING,
        "jti": SINGLE_OPTIONAL_STRING,
        'authority_hints': OPTIONAL_LIST_OF_STRINGS,
        'metadata': SINGLE_OPTIONAL_DICT,
        'metadata_policy': SINGLE_OPTIONAL_DICT,
        'constraints': SINGLE_OPTIONAL_DICT,
        "crit": OPTIONAL_LIST_OF_STRINGS,
        "metadata_policy_crit": OPTIONAL_LIST_OF_STRINGS,
        'trust_anchor_id': SINGLE_OPTIONAL_STRING
    }

    def __init__(self, **kwargs):
        Message.__init__(self, **kwargs)
        self.jwt = ""
        self.jws_header = {}

    def verify(self, **kwargs):
        super(EntityStatement, self).verify(**kwargs)

        _critical = self.get("crit")
        if _critical is not None:
            if not _critical:
                raise MalformedStatement("Empty list not allowed for 'crit'")
            _known = set(kwargs.get("known_extensions", []))
            _unknown = set(_critical).difference(_known)
            if _unknown:
                raise MalformedStatement(f"Unknown critical extensions: {sorted(_unknown)}")
        return True

    def is_self_issued(self):
        return self["iss"] == self["sub"]

    def entity_metadata(self, entity_type, default=None):
        _metadata = self.get("metadata", {})
        if not isinstance(_metadata, dict):
            raise MalformedStatement(f"metadata from {self.get('iss')} is not a JSON object")
        _res = _metadata.get(entity_type, default)
        if _res is not None and not isinstance(_res, dict):
            raise MalformedStatement(
                f"{entity_type} metadata from {self.get('iss')} is not a JSON object")
        return _res

    def federation_entity(self):
        return self.entity_metadata("federation_entity", {})


class RequestObject(Message):
    """Authorization request parameters carried in a signed request object."""
    c_param = {
        "iss": SINGLE_OPTIONAL_STRING,
        "aud": OPTIONAL_LIST_OF_STRINGS,
        "exp": SINGLE_OPTIONAL_INT,
        "iat": SINGLE_OPTIONAL_INT,
        "jti": SINGLE_OPTIONAL_STRING,
        "client_id": SINGLE_REQUIRED_STRING,
        "response_type": SINGLE_OPTIONAL_STRING,
        "redirect_uri": SINGLE_OPTIONAL_STRING,
        "scope": SINGLE_OPTIONAL_STRING,
        "state": SINGLE_OPTIONAL_STRING,
        "nonce": SINGLE_OPTIONAL_STRING,
        "client_metadata": SINGLE_OPTIONAL_DICT,
        "trust_chain": OPTIONAL_LIST_OF_STRINGS,
        "trust_anchor_id": SINGLE_OPTIONAL_STRING
    }

    def __init__(self, **kwargs):
        Message.__init__(self, **kwargs)
        self.jwt = ""
        self.jws_header = {}
