import logging
from typing import List
from typing import Optional

from cryptojwt import KeyJar
from cryptojwt.exception import JWKESTException
from cryptojwt.jws.exception import NoSuitableSigningKeys
from cryptojwt.jws.exception import SignerAlgError
from cryptojwt.jws.jws import factory

from fedhub.defaults import SUPPORTED_SIGNING_ALGORITHMS
from fedhub.exception import AlgorithmUnsupported
from fedhub.exception import KeyNotFound
from fedhub.exception import SignatureInvalid

logger = logging.getLogger(__name__)


class SignatureVerifier(object):
    """Verifies the signature of a statement against a key set."""

    def __init__(self, supported_algorithms: Optional[List[str]] = None):
        self.supported_algorithms = supported_algorithms or SUPPORTED_SIGNING_ALGORITHMS

    def verification_keys(self, statement, jwks):
        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list) \
                or not jwks["keys"]:
            raise KeyNotFound(f"No keys to verify statement from {statement.get('iss')}")

        _key_jar = KeyJar()
        try:
            _key_jar.import_jwks(jwks, statement.get("iss", ""))
        except (JWKESTException, ValueError, TypeError, KeyError, AttributeError) as err:
            raise KeyNotFound(f"Unusable key set for {statement.get('iss')}: {err}")

        _jws = factory(statement.jwt)
        if _jws is None:
            raise SignatureInvalid("Not a signed JWT")

        _keys = _key_jar.get_jwt_verify_keys(_jws.jwt)
        if not _keys:
            raise KeyNotFound(
                f"No key with kid={statement.jws_header.get('kid')} for {statement.get('iss')}")
        return _jws, _keys

    def verify(self, statement, jwks) -> bool:
        """
        Verify the signature of a statement.

        :param statement: An EntityStatement instance as produced by decode_statement
        :param jwks: JWKS of the issuer as vouched for by a superior
        :return: True if the signature verified. Otherwise an exception is raised.
        """
        _alg = statement.jws_header.get("alg")
        if not _alg or _alg not in self.supported_algorithms:
            raise AlgorithmUnsupported(f"Signing algorithm '{_alg}' not supported")

        if not statement.jwt or not statement.jwt.rsplit(".", 1)[-1]:
            raise SignatureInvalid(f"Statement from {statement.get('iss')} not signed")

        _jws, _keys = self.verification_keys(statement, jwks)
        try:
            _jws.verify_compact(keys=_keys)
        except NoSuitableSigningKeys as err:
            raise KeyNotFound(f"{err}")
        except SignerAlgError as err:
            raise AlgorithmUnsupported(f"{err}")
        except (JWKESTException, ValueError) as err:
            raise SignatureInvalid(
                f"Signature on statement from {statement.get('iss')} about "
                f"{statement.get('sub')} did not verify: {err}")

        logger.debug(f"Signature by {statement.get('iss')} on statement about "
                     f"{statement.get('sub')} OK")
        return True


class UnverifiedSignatureVerifier(SignatureVerifier):
    """
    Accepts any statement without looking at the signature.
    Only for development setups with mock or unsigned statements.
    """

    def __init__(self, supported_algorithms: Optional[List[str]] = None):
        SignatureVerifier.__init__(self, supported_algorithms)
        logger.warning("Using UnverifiedSignatureVerifier, NO signatures will be checked")

    def verify(self, statement, jwks) -> bool:
        logger.warning(f"NOT verifying signature on statement from {statement.get('iss')} "
                       f"about {statement.get('sub')}")
        return True


def verify_self_signed_signature(statement, verifier=None):
    """
    Verify signature using only keys in the entity statement.
    Will raise exception if signature verification fails.

    :param statement: EntityStatement instance
    :param verifier: The signature verifier to use
    :return: The statement
    """
    verifier = verifier or SignatureVerifier()
    verifier.verify(statement, statement.get("jwks"))
    return statement
