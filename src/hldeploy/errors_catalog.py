"""Actionable error catalog for hldeploy."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "config_invalid": {
        "what": "Configuration for {app} could not be loaded.",
        "next": "Check `{path}` exists and matches the homelab.yml schema.",
    },
    "deploy_in_progress": {
        "what": "Another deploy or rollback is running for {app}.",
        "next": "Wait for it to finish, or remove a stale `{path}` if no run is active.",
    },
    "build_failed": {
        "what": "Image build for {app} failed.",
        "next": "Review the buildx output above; nothing was promoted.",
    },
    "migrate_failed": {
        "what": "Migrations for {app} failed.",
        "next": "The previous `latest` image is still serving. Fix the migration and redeploy.",
    },
    "retag_failed": {
        "what": "Promoting the new image of {app} to latest failed.",
        "next": "The registry `latest` tag is unchanged. Re-run the deploy or rollback to retry.",
    },
    "restart_failed": {
        "what": "Restarting the {app} stack failed.",
        "next": "Inspect `docker compose ps` in the app directory; the stack may be partially recreated.",
    },
    "health_failed": {
        "what": "{app} did not become healthy.",
        "next": "Check container logs, then `hl rollback {app} <previous-sha>` if needed.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
