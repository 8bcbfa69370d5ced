"""Automatic registration of relying parties based on a validated trust chain."""
import logging
from typing import Optional

from fedhub.defaults import EntityType
from fedhub.defaults import RP_METADATA_DEFAULTS
from fedhub.entity.function.policy_operator import as_list
from fedhub.entity_statement.statement import EffectiveMetadata
from fedhub.exception import EntityMismatch
from fedhub.exception import ErrorKind
from fedhub.exception import FedHubError
from fedhub.exception import MetadataMismatch

logger = logging.getLogger(__name__)

RP = EntityType.OPENID_RELYING_PARTY.value


class RegistrationDecision(object):

    def __init__(self, accepted: bool, client_metadata: Optional[dict] = None,
                 rejection_reason: Optional[ErrorKind] = None, message: str = ""):
        self.accepted = accepted
        self.client_metadata = client_metadata
        self.rejection_reason = rejection_reason
        self.message = message

    @classmethod
    def reject(cls, err: FedHubError):
        return cls(False, rejection_reason=err.kind, message=str(err))

    def to_dict(self):
        if self.accepted:
            return {"accepted": True, "client_metadata": self.client_metadata}
        return {"accepted": False, "rejection_reason": self.rejection_reason.value,
                "message": self.message}

    def __repr__(self):
        if self.accepted:
            return f"<RegistrationDecision accepted {self.client_metadata.get('client_id')}>"
        return f"<RegistrationDecision rejected {self.rejection_reason}>"


def _subset(claim, requested, allowed):
    _outside = [v for v in as_list(claim, requested) if v not in as_list(claim, allowed)]
    if _outside:
        raise MetadataMismatch(f"{claim}: {_outside} not in {list(allowed)}")


class DynamicRegistration(object):
    """
    Matches a registration request against the metadata a trust chain vouches for.
    Nothing is stored, that is left to the IdP core.
    """

    def __init__(self, metadata_defaults: Optional[dict] = None):
        self.metadata_defaults = metadata_defaults or RP_METADATA_DEFAULTS

    def check_entity(self, request_claims: dict, entity_id: str):
        _client_id = request_claims.get("client_id")
        if _client_id != entity_id:
            raise EntityMismatch(f"client_id {_client_id} does not match {entity_id}")
        _iss = request_claims.get("iss")
        if _iss is not None and _iss != entity_id:
            raise EntityMismatch(f"Issuer {_iss} does not match {entity_id}")

    def reconcile(self, request_claims: dict, effective: dict) -> dict:
        """
        :param request_claims: The claims of the request object
        :param effective: The relying party's effective metadata
        :return: The effective metadata narrowed down to what was requested
        """
        if not effective.get("redirect_uris"):
            raise MetadataMismatch("No redirect_uris in the relying party's metadata")

        _metadata = dict(effective)
        _client_metadata = request_claims.get("client_metadata") or {}
        for claim, value in _client_metadata.items():
            if claim not in effective:
                logger.debug(f"Ignoring {claim}, not vouched for")
                continue
            if isinstance(effective[claim], (list, tuple)):
                _subset(claim, value, effective[claim])
                _metadata[claim] = as_list(claim, value)
            elif claim == "scope":
                _subset(claim, value, effective[claim])
                _metadata[claim] = value
            elif value != effective[claim]:
                raise MetadataMismatch(f"{claim}: {value} differs from {effective[claim]}")

        if "redirect_uri" in request_claims:
            _subset("redirect_uris", [request_claims["redirect_uri"]], effective["redirect_uris"])
        if "scope" in request_claims and "scope" in effective:
            _subset("scope", request_claims["scope"], effective["scope"])
        if "response_type" in request_claims and "response_types" in effective:
            if request_claims["response_type"] not in effective["response_types"]:
                raise MetadataMismatch(
                    f"response_type {request_claims['response_type']} not registered")

        for claim, value in self.metadata_defaults.items():
            _metadata.setdefault(claim, value)
        return _metadata

    def register(self, request_claims: dict,
                 validated_metadata: EffectiveMetadata) -> RegistrationDecision:
        """
        :param request_claims: The claims of a request object
        :param validated_metadata: The effective metadata of the requesting entity
        :return: A RegistrationDecision
        """
        try:
            self.check_entity(request_claims, validated_metadata.entity_id)
            if RP not in validated_metadata:
                raise MetadataMismatch(f"{validated_metadata.entity_id} is not a relying party")
            _metadata = self.reconcile(request_claims, validated_metadata.to_dict(RP))
        except FedHubError as err:
            logger.info(f"Rejected registration of {request_claims.get('client_id')}: {err}")
            return RegistrationDecision.reject(err)

        _metadata["client_id"] = validated_metadata.entity_id
        logger.info(f"Accepted registration of {validated_metadata.entity_id}")
        return RegistrationDecision(True, client_metadata=_metadata)
