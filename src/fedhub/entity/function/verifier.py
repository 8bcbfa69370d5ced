import logging
from typing import List
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac

from fedhub.defaults import ENTITY_TYPES
from fedhub.entity.function.policy import TrustChainPolicy
from fedhub.entity.function.trust_chain_builder import listed_subordinate
from fedhub.entity.trust_anchor import TrustAnchorRegistry
from fedhub.entity_statement.constraints import meets_restrictions
from fedhub.entity_statement.statement import EffectiveMetadata
from fedhub.entity_statement.statement import TrustChain
from fedhub.entity_statement.verify import SignatureVerifier
from fedhub.exception import ChainInvalid
from fedhub.exception import FedHubError
from fedhub.exception import NoChainFound
from fedhub.exception import UntrustedAnchor
from fedhub.exception import most_specific
from fedhub.utils import check_temporal_validity

logger = logging.getLogger(__name__)


class TrustChainVerifier(object):
    """
    Decides whether a candidate trust chain can be trusted and if so what the
    effective metadata of the leaf entity is.
    """

    def __init__(self,
                 registry: TrustAnchorRegistry,
                 verifier: Optional[SignatureVerifier] = None,
                 policy: Optional[TrustChainPolicy] = None,
                 clock_skew: int = 0,
                 clock=None):
        self.registry = registry
        self.verifier = verifier or SignatureVerifier()
        self.policy = policy or TrustChainPolicy()
        self.clock_skew = clock_skew
        self.clock = clock or utc_time_sans_frac

    def check_leaf(self, chain: TrustChain, entity_id: Optional[str] = None):
        if not chain.statements:
            raise ChainInvalid("Empty trust chain")
        _leaf = chain.leaf
        if not _leaf.is_self_issued():
            raise ChainInvalid("Chain does not start with an entity configuration")
        if entity_id and _leaf["sub"] != entity_id:
            raise ChainInvalid(f"Chain is about {_leaf['sub']} not {entity_id}")

    def check_temporal(self, chain: TrustChain):
        _now = self.clock()
        _statements = list(chain.statements)
        if chain.anchor_configuration is not None:
            _statements.append(chain.anchor_configuration)
        for statement in _statements:
            check_temporal_validity(statement, _now, self.clock_skew)

    def vouched_keys(self, statement, superior_statement) -> dict:
        """
        The keys a superior says the issuer of statement has.
        """
        if not superior_statement.is_self_issued():
            if superior_statement["sub"] != statement["iss"]:
                raise ChainInvalid(
                    f"Statement issued by {superior_statement['iss']} is about "
                    f"{superior_statement['sub']} not {statement['iss']}")
            return superior_statement.get("jwks")

        _entry = listed_subordinate(superior_statement, statement["iss"])
        if _entry is None:
            raise ChainInvalid(
                f"{superior_statement['iss']} does not list {statement['iss']} as subordinate")
        return _entry["jwks"]

    def anchor_keys(self, chain: TrustChain) -> dict:
        _anchor_id = chain.statements[-1]["iss"]
        if chain.anchor and chain.anchor != _anchor_id:
            raise ChainInvalid(f"Chain ends with {_anchor_id} not {chain.anchor}")

        _record = self.registry.get(_anchor_id)
        if _record is not None and _record.jwks:
            return _record.jwks

        _config = chain.anchor_configuration
        if _config is None:
            raise UntrustedAnchor(f"No keys known for {_anchor_id}")
        if _config["sub"] != _anchor_id or not _config.is_self_issued():
            raise ChainInvalid(f"Anchor configuration is not about {_anchor_id}")
        self.verifier.verify(_config, _config.get("jwks"))
        return _config.get("jwks")

    def check_signatures(self, chain: TrustChain):
        _statements = chain.statements
        for index, statement in enumerate(_statements[:-1]):
            self.verifier.verify(statement, self.vouched_keys(statement, _statements[index + 1]))

        self.verifier.verify(_statements[-1], self.anchor_keys(chain))

        if not meets_restrictions(_statements):
            raise ChainInvalid("Trust chain does not meet the constraints set in it")

    def check_anchor(self, chain: TrustChain):
        _anchor_id = chain.statements[-1]["iss"]
        if not self.registry.is_trust_anchor(_anchor_id):
            logger.warning(f"Trust chain ending in a trust anchor I do not know: {_anchor_id}")
            raise UntrustedAnchor(f"{_anchor_id} is not a registered trust anchor")

    def effective_metadata(self, chain: TrustChain) -> EffectiveMetadata:
        _metadata = {}
        for entity_type in ENTITY_TYPES:
            _res = self.policy(chain.statements, entity_type)
            if _res is not None:
                _metadata[entity_type] = _res

        return EffectiveMetadata(chain.leaf["sub"], _metadata, anchor=chain.statements[-1]["iss"],
                                 expires_at=chain.exp, chain=chain)

    def validate(self, chain: TrustChain, entity_id: Optional[str] = None) -> EffectiveMetadata:
        """
        Runs all checks on a chain, the first failing check raises an exception.

        :param chain: TrustChain instance
        :param entity_id: The entity the chain should be about
        :return: The effective metadata of the leaf entity
        """
        logger.debug(f"Evaluate trust chain {chain}")
        self.check_leaf(chain, entity_id)
        self.check_temporal(chain)
        self.check_signatures(chain)
        self.check_anchor(chain)
        _metadata = self.effective_metadata(chain)
        logger.info(f"Accepted trust chain {chain}")
        return _metadata

    def validate_chains(self, chains: List[TrustChain], entity_id: Optional[str] = None,
                        errors: Optional[list] = None) -> EffectiveMetadata:
        """
        Validate candidate chains in order, the first one accepted wins.

        :param chains: Candidate chains
        :param entity_id: The entity the chains should be about
        :param errors: Failures collected while building the chains
        :return: The effective metadata
        """
        _errors = list(errors or [])
        for chain in chains:
            try:
                return self.validate(chain, entity_id)
            except FedHubError as err:
                logger.info(f"Rejected trust chain {chain}: {err}")
                _errors.append(err)
            except (AttributeError, TypeError, KeyError, ValueError) as err:
                logger.warning(f"Trust chain {chain} broke on unexpected data: {err!r}")
                _errors.append(ChainInvalid(f"Unusable statement in {chain}: {err!r}"))

        _best = most_specific(_errors)
        if _best is None:
            raise NoChainFound(f"No trust chain found for {entity_id}")
        raise _best
