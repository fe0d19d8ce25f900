"""Value matching used by builtin assertion steps.

Exact matching requires the same type and equality; booleans never
match integers. Partial matching recurses into containers: every
expected mapping key must exist in the actual mapping with a partially
matching value, and every expected sequence item must match at least
one actual item.
"""

from contextlib import suppress
from itertools import product
from typing import TYPE_CHECKING

from pytest_stagehand.errors import InfrastructureError
from pytest_stagehand.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from pytest_stagehand.values import RuntimeValue


def _require(condition: bool, message: str) -> None:  # noqa: FBT001
    """Raise `AssertionError` unless the condition holds.

    Explicit raises keep matching intact under `python -O`.
    """
    if not condition:
        raise AssertionError(message)


def exact_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Perform strict equality comparison.

    Raises:
        AssertionError: If values differ or types do not match.
    """
    if expected is None:
        _require(actual is None, f'{actual!r} is not None')
        return True

    _require(
        isinstance(actual, type(expected))
        and isinstance(actual, bool) == isinstance(expected, bool),
        f'{type(actual).__name__} is not {type(expected).__name__}',
    )
    _require(actual == expected, f'{actual!r} != {expected!r}')

    return True


def _seq_partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Perform partial match for sequences.

    A partial sequence match succeeds if *each expected element*
    matches *at least one* element in the actual sequence.

    Raises:
        AssertionError: If inputs are not sequences.
    """
    _require(isinstance(actual, SEQUENCES), f'{actual!r} is not a sequence')
    _require(isinstance(expected, SEQUENCES), f'{expected!r} is not a sequence')

    matched = set()
    for actual_item, (expected_index, expected_item) in product(actual, enumerate(expected)):
        with suppress(AssertionError):
            if partial_match(actual_item, expected_item):
                matched.add(expected_index)

    return len(matched) >= len(expected)


def _map_partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Perform partial match for mappings.

    Raises:
        AssertionError: If inputs are not mappings or keys are missing.
    """
    _require(isinstance(actual, MAPPINGS), f'{actual!r} is not a mapping')
    _require(isinstance(expected, MAPPINGS), f'{expected!r} is not a mapping')

    result = True
    for key, value in expected.items():
        _require(key in actual, f'missing key {key!r}')
        result &= partial_match(actual[key], value)

    return result


def partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Recursively perform partial matching.

    Matching strategy depends on the type of the expected value.

    Raises:
        AssertionError: If a nested comparison fails.
        InfrastructureError: If the expected value type is unsupported.
    """
    if expected is None or isinstance(expected, SCALARS):
        return exact_match(actual, expected)

    if isinstance(expected, SEQUENCES):
        return _seq_partial_match(actual, expected)

    if isinstance(expected, MAPPINGS):
        return _map_partial_match(actual, expected)

    raise InfrastructureError(f'Unsupported type {expected.__class__!r}')


def matches(actual: 'RuntimeValue', expected: 'RuntimeValue', *,
            partial: bool = False) -> bool:
    """Check whether a value matches without raising on mismatch.

    Args:
        actual: Observed value.
        expected: Expected value.
        partial: Use partial instead of exact matching.

    Returns:
        True if the value matches.
    """
    check = partial_match if partial else exact_match

    try:
        return check(actual, expected)
    except AssertionError:
        return False
