# Environment variable reference utilities
import os
import re

# ABOUTME: Pattern matches ${VAR_NAME} where VAR_NAME is uppercase with underscores
ENV_VAR_PATTERN = re.compile(r'\$\{([A-Z_][A-Z0-9_]*)\}')


def find_env_references(value: str) -> list[str]:
    """Return the variable names referenced as ${VAR} in value, in order.

    Examples:
        >>> find_env_references("Bearer ${API_TOKEN}")
        ['API_TOKEN']
    """
    return ENV_VAR_PATTERN.findall(value)


def find_unset_env_vars(values: list[str], environ: dict[str, str] | None = None) -> list[str]:
    """Return referenced variables that are not set, without duplicates.

    ABOUTME: Live files are expanded by the target tools at their startup,
    ABOUTME: so ccswitch only reports missing variables and never substitutes them
    """
    env = os.environ if environ is None else environ
    missing: list[str] = []
    for value in values:
        for name in find_env_references(value):
            if name not in env and name not in missing:
                missing.append(name)
    return missing
