"""Tests for vault git sync, run against throwaway local repositories."""

import shutil
import subprocess

import pytest

from obsigram.gitsync import NOT_A_GIT_REPO, build_commit_message, sync

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(repo, *args):
    subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True)


@pytest.fixture
def repo(vault):
    git(vault, "init", "-q")
    git(vault, "config", "user.email", "bot@example.com")
    git(vault, "config", "user.name", "ObsiGram Test")
    return vault


@pytest.fixture
def remote_repo(repo, tmp_path):
    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "-q", "--bare", str(remote))
    git(repo, "remote", "add", "origin", str(remote))
    (repo / "seed.md").write_text("seed\n", encoding="utf-8")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "seed")
    git(repo, "push", "-q", "-u", "origin", "HEAD")
    return repo


def test_commit_message():
    assert build_commit_message("/vault/projects/acme-tool.md") == "Auto-dump: acme-tool.md"


@pytest.mark.asyncio
async def test_not_a_git_repo(vault):
    result = await sync(vault, vault / "note.md")

    assert not result.success
    assert result.error == NOT_A_GIT_REPO


@requires_git
@pytest.mark.asyncio
async def test_commit_and_push(remote_repo):
    note = remote_repo / "note.md"
    note.write_text("# Note\n", encoding="utf-8")

    result = await sync(remote_repo, note)

    assert result.success
    assert not result.skipped
    assert len(result.commit_hash) == 7
    log = subprocess.run(
        ["git", "log", "-1", "--format=%s"], cwd=remote_repo, check=True, capture_output=True, text=True
    )
    assert log.stdout.strip() == "Auto-dump: note.md"


@requires_git
@pytest.mark.asyncio
async def test_nothing_to_commit_is_skipped(remote_repo):
    result = await sync(remote_repo, remote_repo / "seed.md")

    assert result.success
    assert result.skipped
    assert result.commit_hash is None


@requires_git
@pytest.mark.asyncio
async def test_push_failure_reports_error(repo):
    note = repo / "note.md"
    note.write_text("# Note\n", encoding="utf-8")

    result = await sync(repo, note)

    assert not result.success
    assert result.error
