"""Turns entity statement documents into EntityStatement instances and back."""
import json
import logging
import re
from typing import Union

from cryptojwt.exception import BadSyntax
from cryptojwt.utils import as_unicode
from cryptojwt.utils import b64d
from idpyoidc.exception import MessageException

from fedhub.entity_statement.statement import TrustChain
from fedhub.exception import MalformedStatement
from fedhub.message import EntityStatement

logger = logging.getLogger(__name__)

B64URL_SEGMENT = re.compile(r"^[A-Za-z0-9_-]*$")


def _decode_segment(segment: str, what: str) -> dict:
    if not segment or not B64URL_SEGMENT.match(segment):
        raise MalformedStatement(f"The {what} segment is not base64url encoded")
    try:
        _val = json.loads(as_unicode(b64d(segment.encode())))
    except (BadSyntax, ValueError, UnicodeDecodeError) as err:
        raise MalformedStatement(f"Could not decode {what}: {err}")
    if not isinstance(_val, dict):
        raise MalformedStatement(f"The {what} is not a JSON object")
    return _val


def split_token(token: str):
    _parts = token.split(".")
    if len(_parts) != 3:
        raise MalformedStatement(f"Expected 3 dot-separated segments, got {len(_parts)}")
    return _parts


def statement_from_payload(payload: dict, header=None, token="", msg_class=EntityStatement):
    try:
        _msg = msg_class(**payload)
        _msg.verify()
    except (MessageException, ValueError, TypeError, KeyError) as err:
        raise MalformedStatement(f"Not a valid {msg_class.__name__}: {err}")

    _msg.jws_header = header or {}
    _msg.jwt = token
    return _msg


def decode_statement(document: Union[str, bytes], allow_json: bool = False,
                     msg_class=EntityStatement):
    """
    Parses an entity statement. Normally the statement is a compact JWS. In test mode
    the document may instead be a plain JSON object.
    The signature is NOT verified.

    :param document: The fetched document
    :param allow_json: Whether plain JSON documents are accepted
    :param msg_class: The message class to parse into
    :return: A msg_class instance with the protected header and the token attached
    """
    _doc = as_unicode(document).strip()
    if _doc.startswith("{"):
        if not allow_json:
            raise MalformedStatement("Plain JSON statements are only accepted in test mode")
        logger.warning("Accepting unsigned JSON statement")
        try:
            _payload = json.loads(_doc)
        except ValueError as err:
            raise MalformedStatement(f"Unparsable JSON statement: {err}")
        if not isinstance(_payload, dict):
            raise MalformedStatement("The statement is not a JSON object")
        return statement_from_payload(_payload, msg_class=msg_class)

    _header, _payload, _signature = split_token(_doc)
    if not B64URL_SEGMENT.match(_signature):
        raise MalformedStatement("The signature segment is not base64url encoded")
    return statement_from_payload(_decode_segment(_payload, "payload"),
                                  header=_decode_segment(_header, "header"),
                                  token=_doc, msg_class=msg_class)


def decode_trust_chain(tokens, allow_json: bool = False) -> TrustChain:
    """
    Rebuilds a TrustChain from its exported form, the leaf entity's configuration
    first, optionally ending with the trust anchor's configuration.
    No signatures are verified.

    :param tokens: List of statements
    :param allow_json: Whether plain JSON statements are accepted
    :return: TrustChain instance
    """
    if not isinstance(tokens, list) or not tokens:
        raise MalformedStatement("A trust chain must be a non-empty list of statements")

    _statements = [decode_statement(t, allow_json=allow_json) for t in tokens]
    _anchor_configuration = None
    if len(_statements) > 1 and _statements[-1].is_self_issued():
        _anchor_configuration = _statements[-1]
        _previous = _statements[-2]
        if not _previous.is_self_issued() and _previous["iss"] == _anchor_configuration["iss"]:
            _statements = _statements[:-1]
    return TrustChain(_statements, anchor=_statements[-1]["iss"],
                      anchor_configuration=_anchor_configuration)
