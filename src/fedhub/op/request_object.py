import logging
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac

from fedhub.entity_statement.codec import decode_statement
from fedhub.entity_statement.verify import SignatureVerifier
from fedhub.exception import InvalidRequestObject
from fedhub.exception import MalformedStatement
from fedhub.message import RequestObject

logger = logging.getLogger(__name__)


def unverified_request_object(token: str) -> RequestObject:
    try:
        return decode_statement(token, msg_class=RequestObject)
    except MalformedStatement as err:
        raise InvalidRequestObject(f"{err}")


def verify_request_object(token: str, jwks: dict,
                          verifier: Optional[SignatureVerifier] = None,
                          audience: Optional[str] = None,
                          clock_skew: int = 0) -> RequestObject:
    """
    Parse a request object and verify it was signed by the requesting client.

    :param token: The request object as a compact JWS
    :param jwks: The client's keys as they appear in its effective metadata
    :param verifier: Signature verifier
    :param audience: If given, must be among the audiences of the request object
    :param clock_skew: Allowed clock skew in seconds
    :return: A RequestObject instance
    """
    _ro = unverified_request_object(token)
    if _ro.get("iss") != _ro["client_id"]:
        raise InvalidRequestObject("Request object must be issued by the client")

    verifier = verifier or SignatureVerifier()
    verifier.verify(_ro, jwks)

    _now = utc_time_sans_frac()
    if "exp" in _ro and _ro["exp"] + clock_skew <= _now:
        raise InvalidRequestObject("Request object has expired")
    if "iat" in _ro and _ro["iat"] - clock_skew > _now:
        raise InvalidRequestObject("Request object issued in the future")
    if audience and audience not in _ro.get("aud", []):
        raise InvalidRequestObject(f"Request object not intended for {audience}")
    return _ro
