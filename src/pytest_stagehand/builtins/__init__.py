"""Builtin steps for HTTP services.

The builtins send requests through the client bound to the scenario
context and assert on stored responses and context values.
"""

from .lookups import PathLookup
from .matchers import exact_match, matches, partial_match
from .steps import ExpectJson, ExpectStatus, ExpectValue, SendRequest, SetValue

__all__ = (
    'ExpectJson',
    'ExpectStatus',
    'ExpectValue',
    'PathLookup',
    'SendRequest',
    'SetValue',
    'exact_match',
    'matches',
    'partial_match',
)
