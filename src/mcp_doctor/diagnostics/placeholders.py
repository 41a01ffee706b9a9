"""`${VAR}` template tokens in launch commands and arguments.

Declarations may reference the environment as ``${VAR}`` or
``${VAR:-default}``. Validation only needs to know whether a token is
present; probing substitutes real values before launching.
"""

import re
from collections.abc import Mapping

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]*)\}")


def has_placeholder(text: str) -> bool:
    """Whether the text contains at least one ``${...}`` token."""
    return PLACEHOLDER_PATTERN.search(text) is not None


def expand_placeholders(text: str, env: Mapping[str, str]) -> tuple[str, list[str]]:
    """Substitute ``${VAR}`` and ``${VAR:-default}`` tokens from `env`.

    Tokens that cannot be resolved are left in place.

    Returns:
        The expanded text and the list of tokens left unresolved
    """
    unresolved: list[str] = []

    def _substitute(match: re.Match) -> str:
        body = match.group(1)
        name, sep, default = body.partition(":-")
        value = env.get(name)
        if value:
            return value
        if sep:
            return default
        if value is not None:
            return value
        unresolved.append(match.group(0))
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_substitute, text), unresolved
