from typing import List
from typing import Optional

from cryptojwt.key_jar import build_keyjar
from responses import matchers

from fedhub.entity.discovery import construct_well_known_url
from fedhub.entity_statement.codec import decode_statement
from fedhub.entity_statement.create import create_entity_statement

KEYSPEC = [
    {"type": "RSA", "use": ["sig"]},
]

CONTENT_TYPE = "application/entity-statement+jwt"


def flip_signature(token: str) -> str:
    _header, _payload, _signature = token.split(".")
    i = len(_signature) // 2
    _c = "A" if _signature[i] != "A" else "B"
    return ".".join([_header, _payload, _signature[:i] + _c + _signature[i + 1:]])


def fetch_endpoint(entity_id):
    return f"{entity_id}/fetch"


class Federation(object):
    """A handful of federation entities with keys, able to issue statements."""

    def __init__(self, *entity_ids):
        self.keyjar = {}
        for entity_id in entity_ids:
            self.add_entity(entity_id)

    def add_entity(self, entity_id):
        self.keyjar[entity_id] = build_keyjar(KEYSPEC, issuer_id=entity_id)

    def jwks(self, entity_id):
        return self.keyjar[entity_id].export_jwks(issuer_id=entity_id)

    def configuration(self, entity_id, metadata: Optional[dict] = None,
                      authority_hints: Optional[List[str]] = None,
                      with_fetch_endpoint: bool = True, **kwargs) -> str:
        metadata = dict(metadata or {})
        _fe = dict(metadata.get("federation_entity", {}))
        if with_fetch_endpoint:
            _fe["federation_fetch_endpoint"] = fetch_endpoint(entity_id)
        if _fe:
            metadata["federation_entity"] = _fe
        return create_entity_statement(entity_id, entity_id, self.keyjar[entity_id],
                                       metadata=metadata, authority_hints=authority_hints,
                                       jwks=self.jwks(entity_id), **kwargs)

    def subordinate_statement(self, superior, subordinate, **kwargs) -> str:
        return create_entity_statement(superior, subordinate, self.keyjar[superior],
                                       jwks=self.jwks(subordinate), **kwargs)

    @staticmethod
    def decode(token):
        return decode_statement(token)


def publish_configuration(rsps, entity_id, token):
    rsps.add("GET", construct_well_known_url(entity_id), body=token,
             content_type=CONTENT_TYPE)


def publish_statement(rsps, superior, subordinate, token):
    rsps.add("GET", fetch_endpoint(superior), body=token, content_type=CONTENT_TYPE,
             match=[matchers.query_param_matcher({"iss": superior, "sub": subordinate})])
