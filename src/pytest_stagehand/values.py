"""Value classification and compact representation.

Steps, context values and failure details end up in log lines and
error snippets. This module turns arbitrary runtime objects into a
compact, serialization-safe form: scalars pass through, containers are
walked recursively, and opaque objects are replaced with a placeholder
so that logs never leak executable or oversized data.
"""

from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, SecretBytes, SecretStr

#: A value is considered representable if it can be safely
#: serialized to JSON or YAML without custom encoders.
type Value = str | int | float | bool | Sequence['Value'] | Mapping[str, 'Value'] | None

#: A value in runtime represents any Python object received from
#: steps, applications under test or user-defined code.
type RuntimeValue = Any

MAPPINGS = (dict,)
SCALARS = (str, int, float, bool)
SEQUENCES = (list, tuple, set, frozenset)
TEMPORALS = (datetime, date, time)
SECRETS = (SecretStr, SecretBytes)

PLACEHOLDER = '<runtime object>'
SECRET_PLACEHOLDER = '**********'


def represent(value: RuntimeValue) -> Value:
    """Recursively convert a runtime value into a compact `Value`.

    Args:
        value: Runtime value to convert.

    Returns:
        A JSON and YAML safe representation of the value.
    """
    if isinstance(value, Enum):
        return represent(value.value)

    if value is None or isinstance(value, SCALARS):
        return value

    if isinstance(value, SECRETS):
        return SECRET_PLACEHOLDER

    if isinstance(value, TEMPORALS):
        return value.isoformat()

    if isinstance(value, timedelta):
        return value.total_seconds()

    if isinstance(value, UUID):
        return str(value)

    if isinstance(value, BaseModel):
        return represent(value.model_dump(exclude_none=True))

    if isinstance(value, MAPPINGS):
        return {
            str(key): represent(item)
            for key, item in value.items()
        }

    if isinstance(value, SEQUENCES):
        items = [represent(item) for item in value]
        if isinstance(value, (set, frozenset)):
            items.sort(key=str)
        return items

    if isinstance(value, type):
        return value.__qualname__

    return PLACEHOLDER
