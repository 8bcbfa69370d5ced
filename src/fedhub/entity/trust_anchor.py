import logging
import threading
from typing import List
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac
from idpyoidc.impexp import ImpExp

from fedhub.defaults import ENTITY_TYPES
from fedhub.defaults import EntityType
from fedhub.exception import AlreadyExists
from fedhub.exception import FedHubError
from fedhub.exception import InvalidEntityType
from fedhub.exception import NotFound
from fedhub.utils import check_entity_id

logger = logging.getLogger(__name__)


class TrustAnchorRecord(object):
    __slots__ = ("entity_id", "entity_type", "added_at", "jwks")

    def __init__(self, entity_id: str, entity_type: str, added_at: int,
                 jwks: Optional[dict] = None):
        self.entity_id = entity_id
        self.entity_type = entity_type
        self.added_at = added_at
        self.jwks = jwks

    def to_dict(self):
        _res = {"entity_id": self.entity_id, "entity_type": self.entity_type,
                "added_at": self.added_at}
        if self.jwks:
            _res["jwks"] = self.jwks
        return _res

    def __eq__(self, other):
        return isinstance(other, TrustAnchorRecord) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"<TrustAnchorRecord {self.entity_id} ({self.entity_type})>"


def check_entity_type(entity_type):
    if not entity_type:
        raise InvalidEntityType("Entity type is required")
    if entity_type not in ENTITY_TYPES:
        raise InvalidEntityType(
            f"Invalid entity type. Must be one of: {', '.join(ENTITY_TYPES)}")
    return EntityType(entity_type).value


class TrustAnchorRegistry(ImpExp):
    """
    The set of trust anchors. All access goes through one lock so a read
    started after a completed add or remove sees its result.
    """
    parameter = {
        "_db": {},
        "test_mode": False
    }

    def __init__(self, test_mode: bool = False, clock=None):
        ImpExp.__init__(self)
        self._db = {}
        self.test_mode = test_mode
        self._lock = threading.Lock()
        self._clock = clock or utc_time_sans_frac

    def add(self, entity_id: str, entity_type: str,
            jwks: Optional[dict] = None) -> TrustAnchorRecord:
        check_entity_id(entity_id, self.test_mode)
        _type = check_entity_type(entity_type)
        with self._lock:
            if entity_id in self._db:
                raise AlreadyExists(f"{entity_id} is already a trust anchor")
            _record = TrustAnchorRecord(entity_id, _type, self._clock(), jwks)
            self._db[entity_id] = _record.to_dict()
        logger.info(f"Added trust anchor {entity_id} ({_type})")
        return _record

    def remove(self, entity_id: str):
        with self._lock:
            try:
                del self._db[entity_id]
            except KeyError:
                raise NotFound(f"{entity_id} is not a trust anchor")
        logger.info(f"Removed trust anchor {entity_id}")

    def list(self) -> List[TrustAnchorRecord]:
        with self._lock:
            return [TrustAnchorRecord(**_rec) for _rec in self._db.values()]

    def get(self, entity_id: str) -> Optional[TrustAnchorRecord]:
        with self._lock:
            _rec = self._db.get(entity_id)
            if _rec is None:
                return None
            return TrustAnchorRecord(**_rec)

    def is_trust_anchor(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._db

    def __contains__(self, entity_id):
        return self.is_trust_anchor(entity_id)

    def load_anchors(self, anchors: dict):
        """
        Bootstrap the registry from configuration.

        :param anchors: Dictionary with entity IDs as keys and
            {"entity_type": ..., "jwks": ...} as values
        """
        for entity_id, spec in anchors.items():
            self.add(entity_id, spec.get("entity_type"), jwks=spec.get("jwks"))

    def local_load_adjustments(self, **kwargs):
        self._lock = threading.Lock()
        self._clock = utc_time_sans_frac


class TrustAnchorAdmin(object):
    """The interface an admin surface uses to manage the trust anchors."""

    def __init__(self, registry: TrustAnchorRegistry):
        self.registry = registry

    @staticmethod
    def _failure(err: FedHubError, error: str):
        return {"success": False, "error": error, "message": str(err)}

    def add_entity(self, entity_id: str, entity_type: Optional[str] = None) -> dict:
        if not entity_type:
            return self._failure(InvalidEntityType("Entity type is required"),
                                 "invalid_request")
        try:
            _record = self.registry.add(entity_id, entity_type)
        except AlreadyExists as err:
            return self._failure(err, "already_exists")
        except FedHubError as err:
            return self._failure(err, "validation_error")
        return {"success": True, "entity": _record.to_dict()}

    def list_entities(self) -> dict:
        return {"success": True,
                "entities": [_rec.to_dict() for _rec in self.registry.list()]}

    def remove_entity(self, entity_id: str) -> dict:
        try:
            self.registry.remove(entity_id)
        except NotFound as err:
            return self._failure(err, "not_found")
        return {"success": True, "message": f"{entity_id} removed"}
