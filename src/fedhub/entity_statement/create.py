import logging

from cryptojwt.jwt import JWT

logger = logging.getLogger(__name__)


def create_entity_statement(iss, sub, key_jar, metadata=None, metadata_policy=None,
                            authority_hints=None, lifetime=86400, aud='', jwks=None,
                            include_jwks=True, constraints=None, sign_alg="RS256", **kwargs):
    """

    :param iss: The issuer of the signed JSON Web Token
    :param sub: The subject which the metadata describes
    :param key_jar: A KeyJar instance holding the issuer's signing keys
    :param metadata: The entity's metadata organised as a dictionary with the
        entity type as key
    :param metadata_policy: Metadata policy
    :param authority_hints: A list of immediate superiors
    :param lifetime: The life time of the signed JWT.
    :param aud: Possible audience for the JWT
    :param jwks: The subject's public keys. If not given they are exported from key_jar.
    :param include_jwks: Add JWKS
    :param constraints: A dictionary with constraints.
    :param sign_alg: Signing algorithm
    :return: A signed JSON Web Token
    """

    msg = {'sub': sub}
    if metadata:
        msg['metadata'] = metadata

    if metadata_policy:
        msg['metadata_policy'] = metadata_policy

    if authority_hints:
        msg['authority_hints'] = authority_hints

    if aud:
        msg['aud'] = aud

    if constraints:
        msg['constraints'] = constraints

    if kwargs:
        msg.update(kwargs)

    if include_jwks:
        # The public signing keys of the subject
        msg['jwks'] = jwks or key_jar.export_jwks(issuer_id=sub)

    packer = JWT(key_jar=key_jar, iss=iss, lifetime=lifetime, sign_alg=sign_alg)

    return packer.pack(payload=msg)
