"""Context key primitive types and validation rules.

This module defines the naming rules for keys in the scenario context
store. Steps use these keys to relay values to one another, so a typo
in a key must fail loudly at the write site instead of surfacing later
as a missing value.
"""

from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for all identifiers.
#: Identifiers must start with a letter and may contain letters, digits, or underscores
_NAME_PATTERN = r'[a-zA-Z][\w]*'

#: Compiled pattern for context keys.
#: Supports plain keys ("user_id") and namespaced keys ("http.last_response").
KEY_PATTERN = regexp(
    rf'^{_NAME_PATTERN}(\.{_NAME_PATTERN})*$',
    flags=ASCII,
)

#: Default key under which request steps store the last response.
LAST_RESPONSE = 'last_response'

#: Default header carrying the per-test isolation key.
ISOLATION_HEADER = 'X-Isolation-Key'


ContextKey = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}(\.{_NAME_PATTERN})*$',
        title='Context key',
        description=(
            'Name of a value stored in the scenario context. '
            'Keys must start with a letter and may contain letters, '
            'digits, underscores and dots separating namespaces. '
            'Keys are restricted to ASCII characters.'
        ),
        examples=[
            'user_id',
            'last_response',
            'events.created',
        ],
    ),
]


def is_valid_key(key: object) -> bool:
    """Check whether a value may be used as a context key."""
    return isinstance(key, str) and KEY_PATTERN.match(key) is not None
