"""Image tag planning for hldeploy."""

from hldeploy.errors import InputValidationError
from hldeploy.models import ImageTagSet
from hldeploy.services.validation import SHORT_SHA_LENGTH, validate_branch_name, validate_commit_ref

LATEST_TAG = "latest"


def plan_tags(repository: str, commit_ref: str, branch: str) -> ImageTagSet:
    """Derive ``repo:<short>``, ``repo:<branch>-<short>`` and ``repo:latest``."""
    if not repository:
        raise InputValidationError("Image repository must not be empty.")
    validate_branch_name(branch)

    short_sha = validate_commit_ref(commit_ref)[:SHORT_SHA_LENGTH]
    return ImageTagSet(
        sha_tag=f"{repository}:{short_sha}",
        branch_sha_tag=f"{repository}:{branch}-{short_sha}",
        latest_tag=latest_ref(repository),
    )


def latest_ref(repository: str) -> str:
    return f"{repository}:{LATEST_TAG}"


def tag_of(image_ref: str) -> str:
    """Return the tag portion of ``repo[:port]/name:tag``, or '' if untagged."""
    last_segment = image_ref.rsplit("/", 1)[-1]
    if ":" not in last_segment:
        return ""
    return last_segment.rsplit(":", 1)[-1]
