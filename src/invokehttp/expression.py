"""Attribute expression evaluation.

Configured values such as the method, URL and content type may reference
work item attributes with ``${name}`` placeholders. Unknown attributes
evaluate to an empty string.
"""

import re
from collections.abc import Mapping


_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def evaluate(expression: str | None, attributes: Mapping[str, str]) -> str | None:
    """Evaluate an expression against work item attributes.

    Args:
        expression: Expression text, or None.
        attributes: Attributes available to placeholders.

    Returns:
        The expanded text, or None when the expression is None.
    """
    if expression is None:
        return None
    return _PLACEHOLDER.sub(
        lambda match: attributes.get(match.group(1).strip(), ""), expression
    )
