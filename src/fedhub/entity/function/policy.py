import copy
import logging
from typing import List
from typing import Optional

from fedhub.entity.function.policy_operator import OPERATOR
from fedhub.entity.function.policy_operator import POLICY_APPLICATION_ORDER
from fedhub.entity.function.policy_operator import as_list
from fedhub.entity.function.policy_operator import violation

logger = logging.getLogger(__name__)


def check_rule(claim: str, rule: dict):
    """
    Verifies that the operators of a combined claim policy can coexist.
    """
    if "one_of" in rule:
        if "subset_of" in rule or "superset_of" in rule:
            raise violation(claim, "one_of can not be combined with subset_of/superset_of")

    if rule.get("value") is not None:
        _value = as_list(claim, rule["value"])
        if "one_of" in rule and rule["value"] not in rule["one_of"]:
            raise violation(claim, "value not among one_of")
        if "subset_of" in rule and not set(_value).issubset(set(rule["subset_of"])):
            raise violation(claim, "value is not a sub set of subset_of")
        if "superset_of" in rule and not set(_value).issuperset(set(rule["superset_of"])):
            raise violation(claim, "value is not a super set of superset_of")

    if "subset_of" in rule:
        _subset = set(rule["subset_of"])
        if "superset_of" in rule and not set(rule["superset_of"]).issubset(_subset):
            raise violation(claim, "superset_of not a sub set of subset_of")
        if "add" in rule and not set(as_list(claim, rule["add"])).issubset(_subset):
            raise violation(claim, "add not a sub set of subset_of")


def combine_claim_policy(claim: str, superior: dict, subordinate: dict) -> dict:
    """
    Combine the policies of a superior and a subordinate for one claim.
    The result is at least as restrictive as either of them.

    :param claim: The claim the policies apply to
    :param superior: The superior's policy for the claim
    :param subordinate: The subordinate's policy for the claim
    :return: The combined policy
    """
    rule = {}
    for operator in set(superior).union(set(subordinate)):
        if operator in superior and operator in subordinate:
            if operator in OPERATOR:
                rule[operator] = OPERATOR[operator].combine(claim, superior[operator],
                                                            subordinate[operator])
            else:
                rule[operator] = superior[operator]
        elif operator in superior:
            rule[operator] = copy.deepcopy(superior[operator])
        else:
            rule[operator] = copy.deepcopy(subordinate[operator])

    check_rule(claim, rule)
    return rule


def combine_policy(superior: dict, subordinate: dict) -> dict:
    """
    :param superior: Metadata policy for one entity type, from closer to the trust anchor
    :param subordinate: Metadata policy for the same entity type from further down the chain
    :return: The combined metadata policy
    """
    _policy = {}
    for claim in set(superior).union(set(subordinate)):
        if claim in superior and claim in subordinate:
            _policy[claim] = combine_claim_policy(claim, superior[claim], subordinate[claim])
        elif claim in superior:
            _policy[claim] = copy.deepcopy(superior[claim])
        else:
            check_rule(claim, subordinate[claim])
            _policy[claim] = copy.deepcopy(subordinate[claim])
    return _policy


def apply_metadata_policy(metadata: dict, metadata_policy: dict) -> dict:
    """
    Apply a metadata policy to a metadata statement.
    Operators are evaluated in a fixed order, unknown operators are ignored.

    :return: A new metadata dictionary
    """
    _metadata = copy.deepcopy(metadata)
    for claim, rule in metadata_policy.items():
        for operator in POLICY_APPLICATION_ORDER:
            if operator in rule:
                OPERATOR[operator].apply(claim, _metadata, rule[operator])

    # This is a protocol specific adjustment
    return {k: v for k, v in _metadata.items() if v != []}


class TrustChainPolicy(object):
    """Calculates the effective metadata of the leaf entity in a trust chain."""

    def __init__(self, known_operators: Optional[List[str]] = None):
        self.known_operators = known_operators or list(OPERATOR.keys())

    def check_critical(self, statement, entity_type):
        _crit = statement.get("metadata_policy_crit", [])
        _policy = statement.get("metadata_policy", {}).get(entity_type, {})
        for claim, rule in _policy.items():
            for operator in rule:
                if operator in _crit and operator not in self.known_operators:
                    raise violation(claim, f"unsupported critical policy operator '{operator}'")

    def gather_policies(self, statements: List, entity_type: str) -> dict:
        """
        Gather and combine all the metadata policies that are defined in the trust chain.

        :param statements: Entity statements, leaf entity configuration first
        :param entity_type: The entity type
        :return: The combined metadata policy
        """
        _combined = {}
        # Start at the trust anchor end
        for statement in reversed(statements[1:]):
            self.check_critical(statement, entity_type)
            _policy = statement.get("metadata_policy", {}).get(entity_type)
            if _policy:
                _combined = combine_policy(_combined, _policy)
        logger.debug(f"Combined policy for {entity_type}: {_combined}")
        return _combined

    def superior_metadata(self, statements: List, entity_type: str) -> dict:
        """The metadata the immediate superior sets about the leaf entity."""
        if len(statements) < 2 or statements[1].is_self_issued():
            return {}

        _metadata = statements[1].entity_metadata(entity_type, {})
        _policy = statements[1].get("metadata_policy", {}).get(entity_type, {})
        _overlap = set(_metadata).intersection(set(_policy))
        if _overlap:
            raise violation(sorted(_overlap)[0],
                            "claim appearing both in metadata and metadata_policy")
        return _metadata

    def __call__(self, statements: List, entity_type: str) -> Optional[dict]:
        """
        :param statements: Entity statements, leaf entity configuration first
        :param entity_type: Which entity type the metadata is for
        :return: The effective metadata or None if the leaf has no such metadata
        """
        _leaf = statements[0].entity_metadata(entity_type)
        if _leaf is None:
            return None

        _metadata = copy.deepcopy(_leaf)
        _metadata.update(copy.deepcopy(self.superior_metadata(statements, entity_type)))
        _metadata = apply_metadata_policy(_metadata,
                                          self.gather_policies(statements, entity_type))
        logger.debug(f"After applied policy: {_metadata}")
        return _metadata
