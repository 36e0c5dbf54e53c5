"""
Utility functions for querygate
"""
import logging
import os
import re
from typing import Any, Pattern

logger = logging.getLogger(__name__)

# ${VAR_NAME} placeholders inside configuration values
ENV_VAR_PATTERN: Pattern[str] = re.compile(r'\$\{([^}]+)\}')


def substitute_env_vars(value: str, warn_missing: bool = True) -> str:
    """Substitute environment variables in a string.

    Args:
        value: String that may contain ${VAR_NAME} placeholders
        warn_missing: Whether to log warnings for missing variables

    Returns:
        String with environment variables substituted. Unset variables are
        left as their original ${VAR_NAME} text.

    Example:
        >>> os.environ['DB_PASSWORD'] = 'secret123'
        >>> substitute_env_vars('${DB_PASSWORD}')
        'secret123'
    """
    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)

        if (var_value := os.environ.get(var_name)) is not None:
            return var_value

        if warn_missing:
            logger.warning(f"Environment variable ${{{var_name}}} is not set")
        return match.group(0)

    return ENV_VAR_PATTERN.sub(replace_var, value)


def substitute_env_vars_deep(data: Any, warn_missing: bool = True) -> Any:
    """Apply substitute_env_vars to every string inside nested dicts and lists"""
    match data:
        case str():
            return substitute_env_vars(data, warn_missing)
        case dict():
            return {key: substitute_env_vars_deep(value, warn_missing) for key, value in data.items()}
        case list():
            return [substitute_env_vars_deep(item, warn_missing) for item in data]
        case _:
            return data


def has_unresolved_placeholder(value: str) -> bool:
    """Check whether a string still carries a ${VAR_NAME} placeholder"""
    return bool(ENV_VAR_PATTERN.search(value))
