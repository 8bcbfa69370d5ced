"""Client for the IdP core, the engine that persists clients and runs OAuth2."""
import logging
import random
import time
from datetime import datetime
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Callable
from typing import Optional

import requests

from fedhub import defaults
from fedhub.exception import FedHubError

logger = logging.getLogger(__name__)


class IdPCoreError(FedHubError):
    def __init__(self, status_code, body="", retry_after=None):
        FedHubError.__init__(self, f"IdP core responded {status_code}: {body}")
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after


def retry_after_seconds(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header value, either delta seconds or an HTTP date.

    :return: Number of seconds to wait or None if the value is missing or unusable
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        _when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Could not parse Retry-After: {value}")
        return None
    if _when.tzinfo is None:
        _when = _when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (_when - now).total_seconds())


def backoff_delay(attempt: int, jitter: Callable = random.uniform) -> float:
    """
    Exponential back off. 1s for the first retry, doubling up to at most 32s,
    with +/-25% jitter.

    :param attempt: The number of the attempt that just failed, starting at 1
    :param jitter: Function returning a random number between its two arguments
    """
    _delay = min(defaults.RETRY_BASE_DELAY * 2 ** (attempt - 1), defaults.RETRY_MAX_DELAY)
    return _delay * (1 + jitter(-defaults.RETRY_JITTER, defaults.RETRY_JITTER))


def is_retryable(err: Exception) -> bool:
    if isinstance(err, IdPCoreError):
        return err.status_code == 429 or 500 <= err.status_code < 600
    return isinstance(err, (requests.exceptions.ConnectionError, requests.exceptions.Timeout))


def call_with_retry(func: Callable, max_attempts: int = defaults.RETRY_ATTEMPTS,
                    sleep: Callable = time.sleep, jitter: Callable = random.uniform):
    """
    Call func until it succeeds, a non retryable error occurs or max_attempts
    calls have been made. The last error is raised unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except (IdPCoreError, requests.exceptions.RequestException) as err:
            if not is_retryable(err) or attempt >= max_attempts:
                raise
            _delay = getattr(err, "retry_after", None)
            if _delay is None:
                _delay = backoff_delay(attempt, jitter)
            logger.warning(f"Attempt {attempt} failed ({err}), retrying in {_delay:.2f}s")
            sleep(_delay)


class IdPCoreClient(object):

    def __init__(self, base_url: str, service_id: str, access_token: str,
                 timeout: int = 10, max_attempts: int = defaults.RETRY_ATTEMPTS,
                 httpc: Optional[Callable] = None, sleep: Callable = time.sleep):
        self.base_url = base_url.rstrip("/")
        self.service_id = service_id
        self.access_token = access_token
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.httpc = httpc or requests.request
        self.sleep = sleep

    def _call(self, method: str, path: str, json: Optional[dict] = None):
        _url = f"{self.base_url}/api/{self.service_id}{path}"
        _headers = {"Authorization": f"Bearer {self.access_token}"}
        logger.debug(f"{method} {_url}")
        response = self.httpc(method, _url, json=json, headers=_headers, timeout=self.timeout)
        if 200 <= response.status_code < 300:
            return response.json()
        raise IdPCoreError(response.status_code, response.text,
                           retry_after_seconds(response.headers.get("Retry-After")))

    def call(self, method: str, path: str, json: Optional[dict] = None):
        return call_with_retry(lambda: self._call(method, path, json), self.max_attempts,
                               sleep=self.sleep)

    def create_client(self, decision) -> dict:
        """
        Hand an accepted registration over to the IdP core.

        :param decision: An accepted RegistrationDecision
        :return: The client record as returned by the IdP core
        """
        if not decision.accepted:
            raise ValueError("Can only create clients from accepted registrations")
        return self.call("POST", "/client/create", decision.client_metadata)
