from enum import Enum

WELL_KNOWN_FEDERATION_ENDPOINT = "{}/.well-known/openid-federation"

ENTITY_STATEMENT_CONTENT_TYPE = "application/entity-statement+jwt"
DISCOVERY_ACCEPT = "application/entity-statement+jwt, application/jwt, */*"


class EntityType(str, Enum):
    OPENID_RELYING_PARTY = "openid_relying_party"
    OPENID_PROVIDER = "openid_provider"


ENTITY_TYPES = [_type.value for _type in EntityType]

SUPPORTED_SIGNING_ALGORITHMS = [
    "RS256", "RS384", "RS512",
    "PS256", "PS384", "PS512",
    "ES256", "ES384", "ES512",
]

DEFAULT_HTTPC_PARAMS = {"timeout": 10}

MAX_DEPTH = 5
MAX_WORKERS = 8
CLOCK_SKEW = 0
ALLOWED_DELTA = 300

# Outbound calls to the IdP core
RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 1
RETRY_MAX_DELAY = 32
RETRY_JITTER = 0.25
RETRY_STATUS_CODES = [429, 500, 501, 502, 503, 504]

RP_METADATA_DEFAULTS = {
    "response_types": ["code"],
    "grant_types": ["authorization_code"],
    "application_type": "web",
    "token_endpoint_auth_method": "private_key_jwt",
}
