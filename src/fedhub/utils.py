import logging
from typing import Optional
from urllib.parse import urlparse

from cryptojwt.jwt import utc_time_sans_frac

from fedhub.exception import Expired
from fedhub.exception import InvalidEntityId
from fedhub.exception import NotYetValid

logger = logging.getLogger(__name__)

LOCAL_HOSTS = ["localhost", "127.0.0.1"]


def is_local(entity_id: str) -> bool:
    return urlparse(entity_id).hostname in LOCAL_HOSTS


def check_entity_id(entity_id, test_mode: bool = False) -> str:
    """
    Makes sure an entity identifier is something we can use.
    Only HTTPS URLs are allowed, in test mode http on localhost is also accepted.

    :param entity_id: The entity identifier
    :param test_mode: Whether the hub runs in test mode
    :return: The entity identifier
    """
    if not entity_id or not isinstance(entity_id, str):
        raise InvalidEntityId("Entity identifier must be a non-empty string")

    p = urlparse(entity_id)
    if not p.netloc:
        raise InvalidEntityId(f"'{entity_id}' is not an absolute URL")
    if p.scheme == "https":
        return entity_id
    if test_mode and p.scheme == "http" and p.hostname in LOCAL_HOSTS:
        return entity_id
    raise InvalidEntityId(f"'{entity_id}' is not an HTTPS URL")


def check_temporal_validity(statement, now: Optional[int] = 0, clock_skew: int = 0):
    """
    Verifies that now falls within [iat, exp) of the statement.

    :param statement: An EntityStatement instance
    :param now: Point in time to check against, default is the current time
    :param clock_skew: Allowed clock skew in seconds
    """
    now = now or utc_time_sans_frac()
    _iat = statement.get("iat")
    _exp = statement.get("exp")
    if _exp is None or _exp + clock_skew <= now:
        raise Expired(f"Statement issued by {statement.get('iss')} about "
                      f"{statement.get('sub')} expired at {_exp}")
    if _iat is not None and _iat - clock_skew > now:
        raise NotYetValid(f"Statement issued by {statement.get('iss')} about "
                          f"{statement.get('sub')} not valid until {_iat}")
