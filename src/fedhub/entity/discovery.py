import logging
import threading
from typing import Callable
from typing import Optional
from urllib.parse import urlencode
from urllib.parse import urlparse

import requests

from fedhub.defaults import DISCOVERY_ACCEPT
from fedhub.defaults import DEFAULT_HTTPC_PARAMS
from fedhub.defaults import ENTITY_STATEMENT_CONTENT_TYPE
from fedhub.entity_statement.cache import ESCache
from fedhub.entity_statement.codec import decode_statement
from fedhub.exception import Cancelled
from fedhub.exception import DiscoveryFailed
from fedhub.exception import InvalidEntityId
from fedhub.exception import MalformedStatement
from fedhub.exception import MissingPage
from fedhub.message import EntityStatement
from fedhub.utils import check_entity_id
from fedhub.utils import is_local

logger = logging.getLogger(__name__)


def construct_well_known_url(entity_id, typ="openid-federation"):
    p = urlparse(entity_id)
    return f'{p.scheme}://{p.netloc}/.well-known/{typ}'


def construct_tenant_well_known_url(entity_id, typ="openid-federation"):
    p = urlparse(entity_id)
    return f'{p.scheme}://{p.netloc}{p.path.rstrip("/")}/.well-known/{typ}'


def construct_entity_statement_query(api_endpoint, issuer, subject):
    return f"{api_endpoint}?{urlencode({'iss': issuer, 'sub': subject})}"


def get_endpoint(endpoint_type, config):
    _endpoint = config.federation_entity().get(f"federation_{endpoint_type}_endpoint")
    if _endpoint is not None and not isinstance(_endpoint, str):
        raise MalformedStatement(
            f"federation_{endpoint_type}_endpoint of {config.get('iss')} is not a URL")
    return _endpoint


class EntityDiscovery(object):
    """Fetches entity configurations and subordinate statements."""

    def __init__(self,
                 httpc: Optional[Callable] = None,
                 httpc_params: Optional[dict] = None,
                 test_mode: bool = False,
                 allow_json: bool = False,
                 cache: Optional[ESCache] = None):
        self.httpc = httpc or requests.request
        self.httpc_params = httpc_params or dict(DEFAULT_HTTPC_PARAMS)
        self.test_mode = test_mode
        self.allow_json = allow_json and test_mode
        self.cache = cache

    def _target(self, url: str) -> str:
        if self.test_mode and url.startswith("https://") and is_local(url):
            return "http://" + url[8:]
        return url

    def get_document(self, url: str, cancel_event: Optional[threading.Event] = None) -> str:
        """
        :param url: Target URL
        :param cancel_event: When set no request is made
        :return: The document as a string
        """
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled(f"Not fetching {url}")

        _url = self._target(url)
        _headers = {"Accept": DISCOVERY_ACCEPT}
        logger.debug(f"GET {_url} using HTTPC Params: {self.httpc_params}")
        try:
            response = self.httpc("GET", _url, headers=_headers, **self.httpc_params)
        except requests.exceptions.Timeout as err:
            logger.error(f'Timeout fetching {_url}: {err}')
            raise DiscoveryFailed(f"Timeout fetching '{_url}'")
        except requests.exceptions.RequestException as err:
            logger.error(f'Could not connect to {_url}: {err}')
            raise DiscoveryFailed(f"Could not connect to '{_url}'")

        if 200 <= response.status_code < 300:
            _content_type = response.headers.get('Content-Type', '')
            if ENTITY_STATEMENT_CONTENT_TYPE not in _content_type:
                logger.warning(f"Wrong Content-Type: {_content_type}")
            return response.text
        elif response.status_code == 404:
            raise MissingPage(f"No such page: '{_url}'")
        else:
            raise DiscoveryFailed(f"Fetching '{_url}' returned {response.status_code}")

    def _fetch(self, url: str, cancel_event: Optional[threading.Event] = None) -> EntityStatement:
        if self.cache is not None:
            _cached = self.cache.get(url)
            if _cached:
                return decode_statement(_cached, allow_json=self.allow_json)

        _statement = decode_statement(self.get_document(url, cancel_event),
                                      allow_json=self.allow_json)
        if self.cache is not None and _statement.jwt:
            self.cache.store(url, _statement)
        return _statement

    def fetch_entity_configuration(self, entity_id: str,
                                   cancel_event: Optional[threading.Event] = None
                                   ) -> EntityStatement:
        """
        Get the entity configuration of an entity from itself.
        The signature is not verified.

        :param entity_id: About whom the entity statement should be
        :param cancel_event: Cancellation signal
        :return: An EntityStatement instance
        """
        try:
            check_entity_id(entity_id, self.test_mode)
        except InvalidEntityId as err:
            raise DiscoveryFailed(f"{err}")

        _url = construct_well_known_url(entity_id)
        logger.debug(f"Get configuration from: {_url}")
        try:
            _config = self._fetch(_url, cancel_event)
        except MissingPage:  # if tenant involved
            _tenant_url = construct_tenant_well_known_url(entity_id)
            if _tenant_url == _url:
                raise
            logger.debug(f"Get configuration from (tenant): '{_tenant_url}'")
            _config = self._fetch(_tenant_url, cancel_event)

        if _config["iss"] != entity_id or _config["sub"] != entity_id:
            raise DiscoveryFailed(
                f"Configuration from {entity_id} issued by {_config['iss']} "
                f"about {_config['sub']}")
        return _config

    def get_federation_fetch_endpoint(self, superior_id: str,
                                      cancel_event: Optional[threading.Event] = None) -> str:
        _config = self.fetch_entity_configuration(superior_id, cancel_event)
        return get_endpoint("fetch", _config)

    def fetch_subordinate_statement(self, superior_id: str, subordinate_id: str,
                                    fetch_endpoint: Optional[str] = "",
                                    cancel_event: Optional[threading.Event] = None
                                    ) -> EntityStatement:
        """
        Get a statement issued by a superior about one of its subordinates.

        :param superior_id: Entity ID of the issuer
        :param subordinate_id: Entity ID of the subject
        :param fetch_endpoint: The superior's fetch endpoint if already known
        :param cancel_event: Cancellation signal
        :return: An EntityStatement instance
        """
        if not fetch_endpoint:
            fetch_endpoint = self.get_federation_fetch_endpoint(superior_id, cancel_event)
            if not fetch_endpoint:
                raise DiscoveryFailed(f"{superior_id} has no federation fetch endpoint")

        _url = construct_entity_statement_query(fetch_endpoint, superior_id, subordinate_id)
        _statement = self._fetch(_url, cancel_event)
        if _statement["iss"] != superior_id or _statement["sub"] != subordinate_id:
            raise DiscoveryFailed(
                f"Asked {superior_id} about {subordinate_id}, got a statement issued by "
                f"{_statement['iss']} about {_statement['sub']}")
        return _statement
