"""Resource identifier formatting.

All resource identifiers are built from ordered name parts through
:func:`format_resource_id`, so the same parts always produce the same
identifier no matter where in the run they are formatted.
"""

import re

_WORD_BOUNDARY = re.compile(
    r"(?<=[a-z])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])|(?<=[a-zA-Z])(?=[0-9])|(?<=[0-9])(?=[a-zA-Z])"
)
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]+")


def split_words(value: str) -> list[str]:
    """Split a string into lower-case words on case, digit and separator boundaries."""
    spaced = _WORD_BOUNDARY.sub(" ", value)
    return [word.lower() for word in _NON_ALNUM.split(spaced) if word]


def pascal_case(value: str) -> str:
    return "".join(word.capitalize() for word in split_words(value))


def camel_case(value: str) -> str:
    pascal = pascal_case(value)
    return pascal[:1].lower() + pascal[1:]


def param_case(value: str) -> str:
    return "-".join(split_words(value))


def format_resource_id(*parts: str | None) -> str:
    """Join non-empty name parts and PascalCase the result.

    Falsy parts are skipped, so an optional suffix can be passed as ``None``.

    Examples:
        >>> format_resource_id("my-app", "dev", "orders")
        'MyAppDevOrders'
        >>> format_resource_id("ddb", "", "DataSource")
        'DdbDataSource'
    """
    return pascal_case("-".join(str(part) for part in parts if part))
