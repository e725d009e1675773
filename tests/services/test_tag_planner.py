import pytest

from hldeploy.errors import InputValidationError
from hldeploy.services.tag_planner import latest_ref, plan_tags, tag_of


def test_plan_tags_for_recipes_commit():
    tags = plan_tags("registry.example/recipes", "abc123def4567", "master")

    assert tags.sha_tag == "registry.example/recipes:abc123d"
    assert tags.branch_sha_tag == "registry.example/recipes:master-abc123d"
    assert tags.latest_tag == "registry.example/recipes:latest"
    assert tags.all() == [tags.sha_tag, tags.branch_sha_tag, tags.latest_tag]


@pytest.mark.parametrize(
    "commit_ref",
    ["abc123d", "eef6fc6a9b", "0123456789abcdef0123456789abcdef01234567"],
)
def test_plan_tags_uses_first_seven_characters(commit_ref):
    tags = plan_tags("ghcr.io/me/app", commit_ref, "main")

    assert tags.sha_tag == f"ghcr.io/me/app:{commit_ref[:7]}"
    assert tags.branch_sha_tag == f"ghcr.io/me/app:main-{commit_ref[:7]}"
    assert commit_ref[:7] not in tags.latest_tag


def test_plan_tags_is_deterministic():
    first = plan_tags("repo/app", "abc123def4567", "master")
    second = plan_tags("repo/app", "abc123def4567", "master")

    assert first == second


def test_plan_tags_rejects_short_commit():
    with pytest.raises(InputValidationError):
        plan_tags("repo/app", "abc12", "master")


def test_plan_tags_rejects_empty_repository_or_branch():
    with pytest.raises(InputValidationError):
        plan_tags("", "abc123def4567", "master")
    with pytest.raises(InputValidationError):
        plan_tags("repo/app", "abc123def4567", "")


def test_tag_of_ignores_registry_port():
    assert tag_of("localhost:5000/app:abc123d") == "abc123d"
    assert tag_of("localhost:5000/app") == ""
    assert tag_of(latest_ref("repo/app")) == "latest"


@pytest.mark.parametrize("branch", ["feature/login", "-hotfix", "release 1", "x" * 121])
def test_plan_tags_rejects_branch_that_is_not_a_valid_tag(branch):
    with pytest.raises(InputValidationError, match="cannot be used in an image tag"):
        plan_tags("repo/app", "abc123def4567", branch)


def test_plan_tags_accepts_longest_branch_that_fits_a_tag():
    tags = plan_tags("repo/app", "abc123def4567", "b" * 120)

    assert len(tag_of(tags.branch_sha_tag)) == 128
