from enum import Enum


class ErrorKind(str, Enum):
    DISCOVERY_FAILED = "discovery_failed"
    SIGNATURE_INVALID = "signature_invalid"
    KEY_NOT_FOUND = "key_not_found"
    ALGORITHM_UNSUPPORTED = "algorithm_unsupported"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    UNTRUSTED_ANCHOR = "untrusted_anchor"
    POLICY_VIOLATION = "policy_violation"
    CHAIN_TOO_DEEP = "chain_too_deep"
    NO_CHAIN_FOUND = "no_chain_found"
    CHAIN_INVALID = "chain_invalid"
    ENTITY_MISMATCH = "entity_mismatch"
    METADATA_MISMATCH = "metadata_mismatch"
    INVALID_ENTITY_ID = "invalid_entity_id"
    INVALID_ENTITY_TYPE = "invalid_entity_type"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    INVALID_REQUEST_OBJECT = "invalid_request_object"
    CANCELLED = "cancelled"
    CONFIGURATION_ERROR = "configuration_error"


class FedHubError(Exception):
    kind = None

    def __init__(self, *args, **kwargs):
        Exception.__init__(self, *args)
        for key, val in kwargs.items():
            setattr(self, key, val)


class DiscoveryFailed(FedHubError):
    kind = ErrorKind.DISCOVERY_FAILED


class MalformedStatement(DiscoveryFailed):
    pass


class MissingPage(DiscoveryFailed):
    pass


class SignatureInvalid(FedHubError):
    kind = ErrorKind.SIGNATURE_INVALID


class KeyNotFound(FedHubError):
    kind = ErrorKind.KEY_NOT_FOUND


class AlgorithmUnsupported(FedHubError):
    kind = ErrorKind.ALGORITHM_UNSUPPORTED


class Expired(FedHubError):
    kind = ErrorKind.EXPIRED


class NotYetValid(FedHubError):
    kind = ErrorKind.NOT_YET_VALID


class UntrustedAnchor(FedHubError):
    kind = ErrorKind.UNTRUSTED_ANCHOR


class PolicyViolation(FedHubError):
    kind = ErrorKind.POLICY_VIOLATION
    claim = ""


class ChainTooDeep(FedHubError):
    kind = ErrorKind.CHAIN_TOO_DEEP


class NoChainFound(FedHubError):
    kind = ErrorKind.NO_CHAIN_FOUND


class ChainInvalid(FedHubError):
    kind = ErrorKind.CHAIN_INVALID


class EntityMismatch(FedHubError):
    kind = ErrorKind.ENTITY_MISMATCH


class MetadataMismatch(FedHubError):
    kind = ErrorKind.METADATA_MISMATCH


class InvalidEntityId(FedHubError):
    kind = ErrorKind.INVALID_ENTITY_ID


class InvalidEntityType(FedHubError):
    kind = ErrorKind.INVALID_ENTITY_TYPE


class AlreadyExists(FedHubError):
    kind = ErrorKind.ALREADY_EXISTS


class NotFound(FedHubError):
    kind = ErrorKind.NOT_FOUND


class InvalidRequestObject(FedHubError):
    kind = ErrorKind.INVALID_REQUEST_OBJECT


class Cancelled(FedHubError):
    kind = ErrorKind.CANCELLED


class ConfigurationError(FedHubError):
    kind = ErrorKind.CONFIGURATION_ERROR


# Most specific first
FAILURE_RANKING = [
    ErrorKind.POLICY_VIOLATION,
    ErrorKind.SIGNATURE_INVALID,
    ErrorKind.KEY_NOT_FOUND,
    ErrorKind.ALGORITHM_UNSUPPORTED,
    ErrorKind.EXPIRED,
    ErrorKind.NOT_YET_VALID,
    ErrorKind.UNTRUSTED_ANCHOR,
    ErrorKind.CHAIN_INVALID,
    ErrorKind.CHAIN_TOO_DEEP,
    ErrorKind.DISCOVERY_FAILED,
    ErrorKind.CANCELLED,
    ErrorKind.NO_CHAIN_FOUND,
]


def _rank(err):
    try:
        return FAILURE_RANKING.index(err.kind)
    except ValueError:
        return len(FAILURE_RANKING)


def most_specific(errors):
    """
    Picks the failure that best explains why no chain could be accepted.
    Among equally ranked failures the first one seen wins.

    :param errors: An iterable of FedHubError instances
    :return: A FedHubError instance or None if there were no errors
    """
    _best = None
    for err in errors:
        if _best is None or _rank(err) < _rank(_best):
            _best = err
    return _best
