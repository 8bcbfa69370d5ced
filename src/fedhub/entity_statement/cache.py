import logging
from typing import Optional

from cryptojwt.jwt import utc_time_sans_frac
from idpyoidc.impexp import ImpExp

logger = logging.getLogger(__name__)


def cache_key(issuer, subject, jti):
    return f"{issuer}!!{subject}!!{jti}"


class ESCache(ImpExp):
    """
    Keeps fetched statements keyed on (iss, sub, jti). An entry is dropped
    when it is closer than allowed_delta seconds to its expiration time.
    """
    parameter = {
        "_db": {},
        "_url": {},
        "allowed_delta": 0
    }

    def __init__(self, allowed_delta=300):
        ImpExp.__init__(self)
        self._db = {}
        self._url = {}
        self.allowed_delta = allowed_delta

    def _usable(self, entry, now: Optional[int] = 0):
        now = now or utc_time_sans_frac()
        return now < (entry["exp"] - self.allowed_delta)

    def prune(self):
        """Remove all entries that are no longer usable."""
        _now = utc_time_sans_frac()
        for _key in [k for k, v in self._db.items() if not self._usable(v, _now)]:
            self._url.pop(self._db.pop(_key)["url"], None)

    def store(self, url: str, statement):
        self.prune()
        _key = cache_key(statement["iss"], statement["sub"],
                         statement.get("jti", statement["iat"]))
        _previous = self._url.get(url)
        if _previous and _previous != _key:
            self._db.pop(_previous, None)
        self._db[_key] = {"url": url, "exp": statement["exp"], "document": statement.jwt}
        self._url[url] = _key

    def get(self, url: str) -> Optional[str]:
        _key = self._url.get(url)
        if _key is None:
            return None
        _entry = self._db.get(_key)
        if _entry is not None and _entry["url"] == url and self._usable(_entry):
            logger.debug(f"Cache hit for {url}")
            return _entry["document"]

        self._url.pop(url, None)
        if _entry is not None and _entry["url"] == url:
            self._db.pop(_key, None)
        return None

    def __contains__(self, item):
        return item in self._db

    def __len__(self):
        return len(self._db)
