"""
Git synchronisation of the vault.

Commits everything after a note lands and pushes it to the vault's remote.
"""

import asyncio
import logging
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)

NOT_A_GIT_REPO = "not-a-git-repo"


class GitSyncResult(BaseModel):
    success: bool
    commit_hash: str | None = None
    skipped: bool = False
    error: str | None = None


class GitCommandError(Exception):
    """A git command exited non-zero."""


def build_commit_message(file_path: str | Path) -> str:
    return f"Auto-dump: {Path(file_path).name}"


async def _git(vault_path: Path, *args: str) -> tuple[int, str, str]:
    process = await asyncio.create_subprocess_exec(
        "git",
        *args,
        cwd=str(vault_path),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    return process.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")


async def _checked(vault_path: Path, *args: str) -> str:
    code, stdout, stderr = await _git(vault_path, *args)
    if code != 0:
        raise GitCommandError((stderr or stdout).strip() or f"git {args[0]} exited with {code}")
    return stdout


async def _has_staged_changes(vault_path: Path) -> bool:
    # --quiet exits 1 when the index differs from HEAD
    code, _, _ = await _git(vault_path, "diff", "--cached", "--quiet")
    return code != 0


async def sync(vault_path: str | Path, file_path: str | Path) -> GitSyncResult:
    """Add, commit and push the vault. Nothing to commit means skipped."""
    root = Path(vault_path)
    if not (root / ".git").exists():
        return GitSyncResult(success=False, error=NOT_A_GIT_REPO)

    try:
        await _checked(root, "add", ".")
        if not await _has_staged_changes(root):
            logger.info("Git sync skipped: nothing to commit")
            return GitSyncResult(success=True, skipped=True)

        await _checked(root, "commit", "-m", build_commit_message(file_path))
        await _checked(root, "push")
        commit_hash = (await _checked(root, "rev-parse", "HEAD")).strip()[:7]
    except (GitCommandError, OSError) as e:
        logger.warning(f"Git sync failed for {root}: {e}")
        return GitSyncResult(success=False, error=str(e))

    logger.info(f"Git sync complete: {commit_hash}")
    return GitSyncResult(success=True, commit_hash=commit_hash)
