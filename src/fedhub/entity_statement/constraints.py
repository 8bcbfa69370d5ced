import logging
from typing import List
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def remove_scheme(url):
    if url.startswith('https://'):
        return url[8:]
    elif url.startswith('http://'):
        return url[7:]
    else:
        raise ValueError(f'Wrong scheme: {url}')


def more_specific(entity_id, name):
    """
    Whether entity_id falls within name. A name starting with a '.' in the host part
    matches every sub domain.

    :param entity_id: An entity identifier
    :param name: A constraint, e.g. 'https://.example.com' or 'https://op.example.com'
    """
    _host = urlparse(entity_id).hostname or ""
    _name = remove_scheme(name).split('/')[0]
    if _name.startswith('.'):
        return _host.endswith(_name)
    return _host == _name


def excluded(subject_id, excluded_ids):
    for excl in excluded_ids:
        if more_specific(subject_id, excl):
            return True
    return False


def permitted(subject_id, permitted_ids):
    for perm in permitted_ids:
        if more_specific(subject_id, perm):
            return True
    return False


def meets_restrictions(statements: List) -> bool:
    """
    Verifies that the chain fulfills the constraints issued within it.

    :param statements: The statements of a trust chain, leaf entity configuration first.
    :return: True if the constraints are fulfilled. False otherwise
    """
    for index, statement in enumerate(statements):
        if statement.is_self_issued():
            continue
        _constraints = statement.get('constraints')
        if not _constraints:
            continue

        _max_len = _constraints.get('max_path_length')
        # Number of intermediates between the issuer and the leaf
        if _max_len is not None and index - 1 > _max_len:
            logger.info(f"max_path_length={_max_len} set by {statement['iss']} exceeded")
            return False

        _naming = _constraints.get('naming_constraints', {})
        _subjects = [s['sub'] for s in statements[1:index + 1]]
        for _sub in _subjects:
            if _naming.get('excluded') and excluded(_sub, _naming['excluded']):
                logger.info(f"{_sub} excluded by {statement['iss']}")
                return False
            if _naming.get('permitted') and not permitted(_sub, _naming['permitted']):
                logger.info(f"{_sub} not permitted by {statement['iss']}")
                return False

    return True
