import json
import logging
import os
from typing import Dict
from typing import List
from typing import Optional

from idpyoidc.configure import Base
from idpyoidc.util import load_config_file

from fedhub import defaults
from fedhub.exception import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_FEDHUB_FILE_ATTRIBUTE_NAMES = ['trust_anchors']


def _load_json_file(path: str, base_path: str = "") -> dict:
    if base_path and not os.path.isabs(path):
        path = os.path.join(base_path, path)
    try:
        with open(path) as fp:
            return json.load(fp)
    except (OSError, ValueError) as err:
        raise ConfigurationError(f"Could not read '{path}': {err}")


class FedHubConfiguration(Base):
    """Configuration of a federation hub."""

    def __init__(self,
                 conf: Dict,
                 base_path: str = '',
                 file_attributes: Optional[List[str]] = None,
                 domain: Optional[str] = "",
                 port: Optional[int] = 0,
                 dir_attributes: Optional[List[str]] = None,
                 ):
        file_attributes = file_attributes or DEFAULT_FEDHUB_FILE_ATTRIBUTE_NAMES

        Base.__init__(self, conf=conf, base_path=base_path, file_attributes=file_attributes,
                      dir_attributes=dir_attributes, domain=domain, port=port)

        self.entity_id = conf.get("entity_id", "")
        self.test_mode = bool(conf.get("test_mode", False))
        _allow_json = bool(conf.get("allow_json_statements", False))
        if _allow_json and not self.test_mode:
            logger.warning("'allow_json_statements' ignored outside test mode")
            _allow_json = False
        self.allow_json_statements = _allow_json

        self.insecure_skip_signature_verification = bool(
            conf.get("insecure_skip_signature_verification", False))
        if self.insecure_skip_signature_verification:
            logger.warning("Signature verification of entity statements is DISABLED. "
                           "Never run like this in production!")

        _httpc_params = dict(defaults.DEFAULT_HTTPC_PARAMS)
        _httpc_params.update(conf.get("httpc_params", {}))
        self.httpc_params = _httpc_params

        self.max_depth = int(conf.get("max_depth", defaults.MAX_DEPTH))
        self.max_workers = int(conf.get("max_workers", defaults.MAX_WORKERS))
        self.clock_skew = int(conf.get("clock_skew", defaults.CLOCK_SKEW))
        self.statement_cache = bool(conf.get("statement_cache", False))
        self.allowed_delta = int(conf.get("allowed_delta", defaults.ALLOWED_DELTA))

        _trust_anchors = conf.get("trust_anchors", {})
        if isinstance(_trust_anchors, str):
            _trust_anchors = _load_json_file(_trust_anchors, base_path)
        self.trust_anchors = _trust_anchors

        self.idp_core = conf.get("idp_core", {})
        self.logging = conf.get("logging")


def load_configuration(filename: str) -> FedHubConfiguration:
    conf = load_config_file(filename)
    return FedHubConfiguration(conf, base_path=os.path.dirname(os.path.abspath(filename)))
