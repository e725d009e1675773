"""Promotion of a commit-tagged image to the production tag."""

from typing import Callable

from hldeploy.errors import CommandError, InputValidationError, RetagError
from hldeploy.services.tag_planner import latest_ref
from hldeploy.services.validation import SHORT_SHA_LENGTH, is_hex_sha


class RetagService:
    """Pulls a source reference, tags it ``latest`` and pushes that tag.

    The three registry operations are not atomic. A failure before push leaves
    the registry's ``latest`` untouched, and repeating the promotion is safe.
    """

    def __init__(self, logger, console):
        self.logger = logger
        self.console = console

    def resolve_rollback_ref(self, repository: str, target: str) -> str:
        target = (target or "").strip()
        if not target:
            raise InputValidationError("Rollback target must not be empty.")

        if target.startswith(f"{repository}:"):
            return target
        if ":" in target or "/" in target:
            raise InputValidationError(
                f"Rollback target '{target}' does not belong to repository {repository}."
            )
        if is_hex_sha(target):
            return f"{repository}:{target[:SHORT_SHA_LENGTH]}"
        return f"{repository}:{target}"

    def promote(self, repository: str, source_ref: str, run_cmd: Callable) -> str:
        target_ref = latest_ref(repository)
        if source_ref == target_ref:
            raise InputValidationError(f"Refusing to promote {source_ref} onto itself.")

        steps = (
            ("pull", ["docker", "pull", source_ref]),
            ("tag", ["docker", "tag", source_ref, target_ref]),
            ("push", ["docker", "push", target_ref]),
        )
        for sub_reason, cmd in steps:
            self.logger.debug("Retag %s: %s", sub_reason, " ".join(cmd))
            try:
                run_cmd(cmd)
            except CommandError as exc:
                raise RetagError(
                    f"docker {sub_reason} failed while promoting {source_ref} to {target_ref}.\n{exc}",
                    sub_reason=sub_reason,
                ) from exc

        self.logger.info("Promoted %s to %s", source_ref, target_ref)
        return target_ref
