import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List
from typing import Optional

from fedhub.defaults import MAX_DEPTH
from fedhub.defaults import MAX_WORKERS
from fedhub.entity.discovery import EntityDiscovery
from fedhub.entity.discovery import get_endpoint
from fedhub.entity.trust_anchor import TrustAnchorRegistry
from fedhub.entity_statement.statement import TrustChain
from fedhub.entity_statement.verify import SignatureVerifier
from fedhub.entity_statement.verify import verify_self_signed_signature
from fedhub.exception import Cancelled
from fedhub.exception import ChainInvalid
from fedhub.exception import ChainTooDeep
from fedhub.exception import FedHubError
from fedhub.exception import UntrustedAnchor

logger = logging.getLogger(__name__)


def listed_subordinate(anchor_configuration, subject_id: str) -> Optional[dict]:
    """
    The entry an anchor has about a subordinate in its own configuration.
    Only an entry that carries the subordinate's keys counts.

    :return: The entry or None
    """
    _listing = anchor_configuration.federation_entity().get("subordinate_entities", {})
    if not isinstance(_listing, dict):
        return None
    _entry = _listing.get(subject_id)
    if not isinstance(_entry, dict):
        return None
    _jwks = _entry.get("jwks")
    if isinstance(_jwks, dict) and isinstance(_jwks.get("keys"), list) and _jwks["keys"]:
        return _entry
    return None


class Branch(object):
    """A partial chain on its way from the leaf towards a trust anchor."""

    def __init__(self, statements: List, subject: str, authority_hints: List[str]):
        self.statements = statements
        self.subject = subject
        self.authority_hints = authority_hints
        self.seen = {s["iss"] for s in statements}

    def extend(self, statement, superior_configuration):
        _branch = Branch(self.statements + [statement], superior_configuration["sub"],
                         superior_configuration.get("authority_hints", []))
        return _branch


class TrustChainBuilder(object):
    """
    Follows authority hints upwards from a leaf entity and collects every chain of
    statements that ends at a registered trust anchor.
    """

    def __init__(self,
                 discovery: EntityDiscovery,
                 registry: TrustAnchorRegistry,
                 verifier: Optional[SignatureVerifier] = None,
                 max_depth: int = MAX_DEPTH,
                 max_workers: int = MAX_WORKERS):
        self.discovery = discovery
        self.registry = registry
        self.verifier = verifier or SignatureVerifier()
        self.max_depth = max_depth
        self.max_workers = max_workers

    def explore(self, branch: Branch, hint: str,
                cancel_event: Optional[threading.Event] = None):
        """
        Take one step up from the branch's current subject to one of its superiors.

        :return: A TrustChain if a trust anchor was reached, otherwise a longer Branch
        """
        if hint in branch.seen:
            raise ChainInvalid(f"Loop detected: {hint} already in {sorted(branch.seen)}")

        logger.debug(f"Exploring {hint} as superior of {branch.subject}")
        _superior = self.discovery.fetch_entity_configuration(hint, cancel_event)
        verify_self_signed_signature(_superior, self.verifier)
        _is_anchor = self.registry.is_trust_anchor(hint)

        _fetch_endpoint = get_endpoint("fetch", _superior)
        if _fetch_endpoint:
            _statement = self.discovery.fetch_subordinate_statement(
                hint, branch.subject, fetch_endpoint=_fetch_endpoint, cancel_event=cancel_event)
        elif _is_anchor and listed_subordinate(_superior, branch.subject):
            logger.debug(f"{hint} lists {branch.subject} in its configuration")
            return TrustChain(branch.statements + [_superior], anchor=hint,
                              anchor_configuration=_superior)
        else:
            raise ChainInvalid(
                f"{hint} has no fetch endpoint and does not unambiguously list {branch.subject}")

        if _is_anchor:
            return TrustChain(branch.statements + [_statement], anchor=hint,
                              anchor_configuration=_superior)

        if not _superior.get("authority_hints"):
            raise UntrustedAnchor(f"{hint} is not a trust anchor and has no superiors")
        return branch.extend(_statement, _superior)

    def _explore(self, branch, hint, cancel_event):
        try:
            return self.explore(branch, hint, cancel_event)
        except FedHubError as err:
            logger.info(f"Branch {branch.subject} -> {hint} failed: {err}")
            return err
        except (AttributeError, TypeError, KeyError, ValueError) as err:
            logger.warning(f"Branch {branch.subject} -> {hint} broke on unexpected data: {err!r}")
            return ChainInvalid(f"Unusable statements from {hint}: {err!r}")

    def build_chains(self, leaf_statement, errors: Optional[list] = None,
                     cancel_event: Optional[threading.Event] = None) -> List[TrustChain]:
        """
        :param leaf_statement: The leaf entity's configuration
        :param errors: If given, failures of individual branches are appended to it
        :param cancel_event: When set, no more fetches are made
        :return: Zero or more candidate trust chains, in authority hint order
        """
        if errors is None:
            errors = []

        _chains = []
        _frontier = [Branch([leaf_statement], leaf_statement["sub"],
                            leaf_statement.get("authority_hints", []))]
        if not _frontier[0].authority_hints:
            errors.append(UntrustedAnchor(f"{leaf_statement['sub']} has no authority hints"))
            return _chains

        depth = 0
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            while _frontier:
                if depth >= self.max_depth:
                    for _branch in _frontier:
                        errors.append(ChainTooDeep(
                            f"Gave up on {leaf_statement['sub']} at {_branch.subject} after "
                            f"{self.max_depth} superiors"))
                    break

                if cancel_event is not None and cancel_event.is_set():
                    errors.append(Cancelled("Chain building cancelled"))
                    break

                _tasks = [(_branch, _hint) for _branch in _frontier
                          for _hint in _branch.authority_hints]
                _results = list(executor.map(lambda t: self._explore(t[0], t[1], cancel_event),
                                             _tasks))

                _frontier = []
                for _result in _results:
                    if isinstance(_result, TrustChain):
                        logger.debug(f"Found chain {_result}")
                        _chains.append(_result)
                    elif isinstance(_result, Branch):
                        _frontier.append(_result)
                    else:
                        errors.append(_result)
                depth += 1

        logger.info(f"Found {len(_chains)} candidate chains for {leaf_statement['sub']}")
        return _chains
