import copy
import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import List
from typing import Optional

logger = logging.getLogger(__name__)


class TrustChain(object):
    """
    A candidate chain of entity statements. The first statement is the leaf entity's
    configuration, the last one is issued by the trust anchor.
    """

    def __init__(self,
                 statements: List,
                 anchor: str = "",
                 anchor_configuration=None):
        self.statements = list(statements)
        self.anchor = anchor
        self.anchor_configuration = anchor_configuration

    @property
    def leaf(self):
        return self.statements[0]

    @property
    def iss_path(self):
        return [s["iss"] for s in self.statements]

    @property
    def exp(self):
        _exps = [s["exp"] for s in self.statements]
        if self.anchor_configuration is not None:
            _exps.append(self.anchor_configuration["exp"])
        return min(_exps)

    def export_chain(self):
        """
        Exports the chain in such a way that it can be used as value on the
        trust_chain claim in an authorization request.
        """
        _chain = [s.jwt for s in self.statements]
        if self.anchor_configuration is not None:
            if not self.statements[-1].is_self_issued():
                _chain.append(self.anchor_configuration.jwt)
        return _chain

    def __len__(self):
        return len(self.statements)

    def __repr__(self):
        return f"<TrustChain {' -> '.join(reversed(self.iss_path))}>"


def _freeze(item):
    if isinstance(item, dict):
        return MappingProxyType({k: _freeze(v) for k, v in item.items()})
    elif isinstance(item, list):
        return tuple(_freeze(v) for v in item)
    return item


def _thaw(item):
    if isinstance(item, Mapping):
        return {k: _thaw(v) for k, v in item.items()}
    elif isinstance(item, tuple):
        return [_thaw(v) for v in item]
    return item


class EffectiveMetadata(Mapping):
    """
    The metadata of an entity, per entity type, after all policies along a trust
    chain have been applied. Read-only.
    """

    __slots__ = ("_entity_id", "_metadata", "_anchor", "_expires_at", "_chain")

    def __init__(self, entity_id: str, metadata: dict, anchor: str = "",
                 expires_at: int = 0, chain: Optional[TrustChain] = None):
        object.__setattr__(self, "_entity_id", entity_id)
        object.__setattr__(self, "_metadata", _freeze(copy.deepcopy(metadata)))
        object.__setattr__(self, "_anchor", anchor)
        object.__setattr__(self, "_expires_at", expires_at)
        object.__setattr__(self, "_chain", chain)

    def __setattr__(self, key, value):
        raise AttributeError("EffectiveMetadata is immutable")

    def __getitem__(self, item):
        return self._metadata[item]

    def __iter__(self):
        return iter(self._metadata)

    def __len__(self):
        return len(self._metadata)

    @property
    def entity_id(self):
        return self._entity_id

    @property
    def anchor(self):
        return self._anchor

    @property
    def expires_at(self):
        return self._expires_at

    @property
    def chain(self):
        return self._chain

    def to_dict(self, entity_type: Optional[str] = None) -> dict:
        if entity_type:
            return _thaw(self._metadata[entity_type])
        return _thaw(self._metadata)

    def __repr__(self):
        return f"<EffectiveMetadata {self._entity_id} via {self._anchor}: {sorted(self)}>"
