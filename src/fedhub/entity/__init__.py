import logging
import threading
from typing import Callable
from typing import List
from typing import Optional

from idpyoidc.logging import configure_logging

from fedhub.configure import FedHubConfiguration
from fedhub.configure import load_configuration
from fedhub.defaults import EntityType
from fedhub.defaults import MAX_DEPTH
from fedhub.defaults import MAX_WORKERS
from fedhub.entity.discovery import EntityDiscovery
from fedhub.entity.function.trust_chain_builder import TrustChainBuilder
from fedhub.entity.function.verifier import TrustChainVerifier
from fedhub.entity.trust_anchor import TrustAnchorAdmin
from fedhub.entity.trust_anchor import TrustAnchorRegistry
from fedhub.entity_statement.cache import ESCache
from fedhub.entity_statement.codec import decode_trust_chain
from fedhub.entity_statement.statement import EffectiveMetadata
from fedhub.entity_statement.verify import SignatureVerifier
from fedhub.entity_statement.verify import UnverifiedSignatureVerifier
from fedhub.exception import Cancelled
from fedhub.exception import ChainTooDeep
from fedhub.exception import FedHubError
from fedhub.idp_core import IdPCoreClient
from fedhub.op.registration import DynamicRegistration
from fedhub.op.registration import RegistrationDecision
from fedhub.op.request_object import unverified_request_object
from fedhub.op.request_object import verify_request_object

__author__ = 'Roland Hedberg'

logger = logging.getLogger(__name__)

RP = EntityType.OPENID_RELYING_PARTY.value


class FederationEntity(object):
    """
    Ties discovery, chain building, chain validation and registration together.
    """

    def __init__(self,
                 entity_id: str = "",
                 registry: Optional[TrustAnchorRegistry] = None,
                 discovery: Optional[EntityDiscovery] = None,
                 verifier: Optional[SignatureVerifier] = None,
                 test_mode: bool = False,
                 max_depth: int = MAX_DEPTH,
                 max_workers: int = MAX_WORKERS,
                 clock_skew: int = 0,
                 idp_core: Optional[IdPCoreClient] = None):
        self.entity_id = entity_id
        self.registry = registry or TrustAnchorRegistry(test_mode=test_mode)
        self.discovery = discovery or EntityDiscovery(test_mode=test_mode)
        self.verifier = verifier or SignatureVerifier()
        self.clock_skew = clock_skew
        self.builder = TrustChainBuilder(self.discovery, self.registry, self.verifier,
                                         max_depth=max_depth, max_workers=max_workers)
        self.validator = TrustChainVerifier(self.registry, self.verifier, clock_skew=clock_skew)
        self.registration = DynamicRegistration()
        self.admin = TrustAnchorAdmin(self.registry)
        self.idp_core = idp_core

    @classmethod
    def from_config(cls, conf: FedHubConfiguration, httpc: Optional[Callable] = None):
        if conf.insecure_skip_signature_verification:
            _verifier = UnverifiedSignatureVerifier()
        else:
            _verifier = SignatureVerifier()

        _cache = ESCache(allowed_delta=conf.allowed_delta) if conf.statement_cache else None
        _discovery = EntityDiscovery(httpc=httpc, httpc_params=conf.httpc_params,
                                     test_mode=conf.test_mode,
                                     allow_json=conf.allow_json_statements, cache=_cache)

        _registry = TrustAnchorRegistry(test_mode=conf.test_mode)
        _registry.load_anchors(conf.trust_anchors)

        _idp_core = None
        if conf.idp_core:
            _idp_core = IdPCoreClient(**conf.idp_core)

        return cls(entity_id=conf.entity_id, registry=_registry, discovery=_discovery,
                   verifier=_verifier, test_mode=conf.test_mode, max_depth=conf.max_depth,
                   max_workers=conf.max_workers, clock_skew=conf.clock_skew,
                   idp_core=_idp_core)

    @classmethod
    def from_config_file(cls, filename: str, httpc: Optional[Callable] = None):
        conf = load_configuration(filename)
        if conf.logging:
            configure_logging(config=conf.logging)
        return cls.from_config(conf, httpc=httpc)

    def resolve(self, entity_id: str, timeout: Optional[float] = None,
                cancel_event: Optional[threading.Event] = None) -> EffectiveMetadata:
        """
        Find a trust chain from an entity to one of the trust anchors and return the
        entity's effective metadata.

        :param entity_id: The entity ID of the leaf entity
        :param timeout: Give up after this many seconds
        :param cancel_event: Set by the caller to abandon the resolution
        :return: EffectiveMetadata instance
        """
        cancel_event = cancel_event or threading.Event()
        _timer = None
        if timeout:
            _timer = threading.Timer(timeout, cancel_event.set)
            _timer.daemon = True
            _timer.start()

        try:
            _leaf = self.discovery.fetch_entity_configuration(entity_id, cancel_event)
            _errors = []
            _chains = self.builder.build_chains(_leaf, _errors, cancel_event)
            if cancel_event.is_set():
                raise Cancelled(f"Resolving {entity_id} was cancelled")
        finally:
            if _timer:
                _timer.cancel()

        return self.validator.validate_chains(_chains, entity_id, _errors)

    def validate_trust_chain(self, entity_id: str, trust_chain: List[str]) -> EffectiveMetadata:
        """
        Validate a trust chain handed to us by the entity itself.

        :param entity_id: The entity the chain should be about
        :param trust_chain: The chain as a list of statements, leaf entity's configuration first
        :return: EffectiveMetadata instance
        """
        _chain = decode_trust_chain(trust_chain, allow_json=self.discovery.allow_json)
        if len(_chain) - 1 > self.builder.max_depth:
            raise ChainTooDeep(f"Supplied trust chain has {len(_chain)} statements")
        return self.validator.validate_chains([_chain], entity_id)

    def client_keys(self, effective: EffectiveMetadata) -> Optional[dict]:
        if RP in effective and "jwks" in effective[RP]:
            return effective.to_dict(RP)["jwks"]
        return effective.chain.leaf.get("jwks")

    def register(self, request_object: str,
                 timeout: Optional[float] = None) -> RegistrationDecision:
        """
        Automatic registration of a relying party.

        :param request_object: Signed request object from the relying party
        :param timeout: Timeout for resolving the relying party's trust chain
        :return: A RegistrationDecision
        """
        try:
            _unverified = unverified_request_object(request_object)
            _client_id = _unverified["client_id"]
            _effective = None
            if _unverified.get("trust_chain"):
                try:
                    _effective = self.validate_trust_chain(_client_id, _unverified["trust_chain"])
                except FedHubError as err:
                    logger.info(f"Supplied trust chain for {_client_id} not usable: {err}")
            if _effective is None:
                _effective = self.resolve(_client_id, timeout=timeout)
            _request = verify_request_object(request_object, self.client_keys(_effective),
                                             self.verifier, audience=self.entity_id or None,
                                             clock_skew=self.clock_skew)
        except FedHubError as err:
            logger.info(f"Registration failed: {err}")
            return RegistrationDecision.reject(err)

        return self.registration.register(_request.to_dict(), _effective)
