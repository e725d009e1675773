"""Input validation helpers for hldeploy."""

import re
from typing import Dict, Iterable, Tuple

from hldeploy.errors import InputValidationError

DURATION_PATTERN = re.compile(r"^(\d+)(ms|s|m)$")
ENV_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
APP_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")
# docker tag grammar, leaving room for "-<short sha>"
BRANCH_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,119}$")
SHORT_SHA_LENGTH = 7

_UNIT_MULTIPLIERS = {"ms": 1, "s": 1000, "m": 60_000}


def parse_duration(value) -> int:
    """Parse ``2s`` / ``100ms`` / ``1m`` style durations into milliseconds."""
    if not isinstance(value, str):
        raise InputValidationError(f"Bad duration: {value!r}")

    match = DURATION_PATTERN.match(value)
    if not match:
        raise InputValidationError(f"Bad duration: {value!r}. Use <digits><ms|s|m>, e.g. 2s.")

    amount, unit = match.groups()
    return int(amount) * _UNIT_MULTIPLIERS[unit]


def parse_env_assignment(value: str) -> Tuple[str, str]:
    key, sep, raw = value.partition("=")
    key = key.strip()
    if not sep or not ENV_KEY_PATTERN.match(key):
        raise InputValidationError(f"Bad environment assignment: {value!r}. Use KEY=VALUE.")
    return key, raw


def parse_env_assignments(values: Iterable[str]) -> Dict[str, str]:
    parsed: Dict[str, str] = {}
    for value in values:
        key, raw = parse_env_assignment(value)
        parsed[key] = raw
    return parsed


def validate_commit_ref(commit_ref: str) -> str:
    clean = (commit_ref or "").strip()
    if len(clean) < SHORT_SHA_LENGTH:
        raise InputValidationError(
            f"Commit reference '{commit_ref}' is too short; at least {SHORT_SHA_LENGTH} characters are required."
        )
    return clean


def validate_app_name(app: str) -> str:
    if not app or not APP_NAME_PATTERN.match(app):
        raise InputValidationError(
            f"Invalid app name '{app}'. Use lowercase letters, digits, '.', '_' or '-'."
        )
    return app


def is_hex_sha(value: str) -> bool:
    return len(value) >= SHORT_SHA_LENGTH and all(c in "0123456789abcdef" for c in value.lower())


def validate_branch_name(branch: str) -> str:
    if not branch or not BRANCH_TAG_PATTERN.match(branch):
        raise InputValidationError(
            f"Branch '{branch}' cannot be used in an image tag. "
            "Use letters, digits, '.', '_' or '-' (no '/'), at most 120 characters."
        )
    return branch
