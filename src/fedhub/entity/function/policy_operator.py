"""
The metadata policy operators. Each operator knows how to apply itself to a
metadata claim and how to combine two of its own kind.
"""
import copy

from fedhub.exception import PolicyViolation

POLICY_APPLICATION_ORDER = ['value', 'add', 'default', 'one_of', 'subset_of', 'superset_of',
                            'essential']

# Claims whose value is a space separated list of strings
SPACE_SEPARATED_CLAIMS = ['scope']


def as_list(claim, value):
    if isinstance(value, list):
        return value
    elif isinstance(value, tuple):
        return list(value)
    elif isinstance(value, str) and claim in SPACE_SEPARATED_CLAIMS:
        return value.split()
    return [value]


def from_list(claim, values, original=None):
    if claim in SPACE_SEPARATED_CLAIMS and (original is None or isinstance(original, str)):
        return " ".join(values)
    return values


def union(val1, val2):
    _res = list(val1)
    for val in val2:
        if val not in _res:
            _res.append(val)
    return _res


def intersection(val1, val2):
    return [val for val in val1 if val in val2]


def violation(claim, message):
    return PolicyViolation(f"{claim}: {message}", claim=claim)


class PolicyOperator(object):
    name = ""

    def apply(self, claim, metadata, argument):
        raise NotImplementedError()

    def combine(self, claim, superior, subordinate):
        raise NotImplementedError()

    def __repr__(self):
        return f"<{self.__class__.__name__}>"


class Value(PolicyOperator):
    name = "value"

    def apply(self, claim, metadata, argument):
        if argument is None:
            metadata.pop(claim, None)
        else:
            # value overrides everything
            metadata[claim] = copy.deepcopy(argument)

    def combine(self, claim, superior, subordinate):
        if superior != subordinate:
            raise violation(claim, f"conflicting values {superior} and {subordinate}")
        return superior


class Add(PolicyOperator):
    name = "add"

    def apply(self, claim, metadata, argument):
        _add = as_list(claim, argument)
        if claim in metadata:
            _orig = metadata[claim]
            metadata[claim] = from_list(claim, union(as_list(claim, _orig), _add), _orig)
        else:
            metadata[claim] = from_list(claim, list(_add))

    def combine(self, claim, superior, subordinate):
        return union(as_list(claim, superior), as_list(claim, subordinate))


class Default(PolicyOperator):
    name = "default"

    def apply(self, claim, metadata, argument):
        if claim not in metadata:
            metadata[claim] = copy.deepcopy(argument)

    def combine(self, claim, superior, subordinate):
        if superior != subordinate:
            raise violation(claim, f"conflicting defaults {superior} and {subordinate}")
        return superior


class OneOf(PolicyOperator):
    name = "one_of"

    def apply(self, claim, metadata, argument):
        if claim not in metadata:
            return
        if isinstance(metadata[claim], list):
            raise violation(claim, "one_of can only be applied to a single value")
        if metadata[claim] not in argument:
            raise violation(claim, f"{metadata[claim]} not among {argument}")

    def combine(self, claim, superior, subordinate):
        _res = intersection(superior, subordinate)
        if not _res:
            raise violation(claim, f"no common value in {superior} and {subordinate}")
        return _res


class SubsetOf(PolicyOperator):
    name = "subset_of"

    def apply(self, claim, metadata, argument):
        if claim not in metadata:
            return
        _outside = [v for v in as_list(claim, metadata[claim]) if v not in argument]
        if _outside:
            raise violation(claim, f"{_outside} not in permitted {argument}")

    def combine(self, claim, superior, subordinate):
        _res = intersection(superior, subordinate)
        if not _res:
            raise violation(claim, f"no common value in {superior} and {subordinate}")
        return _res


class SupersetOf(PolicyOperator):
    name = "superset_of"

    def apply(self, claim, metadata, argument):
        if claim not in metadata:
            return
        _missing = [v for v in argument if v not in as_list(claim, metadata[claim])]
        if _missing:
            raise violation(claim, f"required values {_missing} missing")

    def combine(self, claim, superior, subordinate):
        return union(superior, subordinate)


class Essential(PolicyOperator):
    name = "essential"

    def apply(self, claim, metadata, argument):
        if argument and claim not in metadata:
            raise violation(claim, "essential claim missing")

    def combine(self, claim, superior, subordinate):
        return bool(superior) or bool(subordinate)


OPERATOR = {op.name: op for op in [Value(), Add(), Default(), OneOf(), SubsetOf(),
                                   SupersetOf(), Essential()]}
