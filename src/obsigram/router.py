"""
Router module for ObsiGram.

Repairs the folder the agent wrote a note into, using the classification's
policy hints. The agent treats folder suggestions loosely, so the final say
on placement happens here.
"""

import logging
import re
from pathlib import Path
from typing import Callable, Iterable

from obsigram.classifier import (
    AVOID_WORKFLOW_FOR_GITHUB,
    PREFER_BACKEND,
    PREFER_FRONTEND,
    PREFER_WORKFLOW,
    ClassificationResult,
)

logger = logging.getLogger(__name__)

WORKFLOW = re.compile("workflow", re.IGNORECASE)
REFERENCE = re.compile("reference", re.IGNORECASE)

FRONTEND_FOLDER_TOKENS = ["frontend", "react", "javascript", "typescript", "css", "web", "ui"]
BACKEND_FOLDER_TOKENS = ["backend", "api", "server", "database", "db", "infra", "node"]


def _first(folders: Iterable[str], accept: Callable[[str], bool]) -> str | None:
    return next((folder for folder in folders if accept(folder)), None)


def _wants(classification: ClassificationResult, hint: str, theme: str) -> bool:
    return hint in classification.policy_hints or f"theme={theme}" in classification.signals


def apply_path_policy(
    file_path: str | Path,
    vault_path: str | Path,
    classification: ClassificationResult,
) -> Path:
    """
    Return where a written note should live.

    Rules run in order and the first one that picks a new location wins:
    1. GitHub repo notes leave `workflow` folders.
    2. Frontend/backend notes leave `reference` folders.
    3. Workflow notes move into a `workflow` candidate.

    A destination that another active rule would reject is never chosen, so
    rule 1 skips a `reference` candidate while a frontend/backend preference
    holds. This keeps the policy a fixed point.

    Pure: no filesystem access. Paths outside the vault are returned as-is.
    """
    path = Path(file_path)
    root = Path(vault_path)
    try:
        rel = path.relative_to(root)
    except ValueError:
        return path

    folder_parts = rel.parts[:-1]
    candidates = classification.candidates

    avoid_workflow = AVOID_WORKFLOW_FOR_GITHUB in classification.policy_hints
    prefer_frontend = _wants(classification, PREFER_FRONTEND, "frontend")
    prefer_backend = _wants(classification, PREFER_BACKEND, "backend")
    prefer_workflow = _wants(classification, PREFER_WORKFLOW, "workflow")

    def acceptable(folder: str) -> bool:
        # A destination must not trip another active rule
        if avoid_workflow and WORKFLOW.search(folder):
            return False
        if (prefer_frontend or prefer_backend) and REFERENCE.search(folder):
            return False
        return True

    def move_to(folder: str) -> Path:
        return root / folder / path.name

    # 1. GitHub repos don't belong in workflow folders
    if avoid_workflow and any(WORKFLOW.search(part) for part in folder_parts):
        preferred = _first(candidates, acceptable)
        if preferred:
            return move_to(preferred)
        # Every workflow segment, not just the first
        folders = [
            ("Projects" if part[:1].isupper() else "projects") if WORKFLOW.search(part) else part
            for part in folder_parts
        ]
        return root.joinpath(*folders, path.name)

    # 2. Topical notes don't belong in reference folders
    if (prefer_frontend or prefer_backend) and any(REFERENCE.search(part) for part in folder_parts):
        intent_tokens = FRONTEND_FOLDER_TOKENS if prefer_frontend else BACKEND_FOLDER_TOKENS
        preferred = _first(
            candidates,
            lambda folder: acceptable(folder)
            and any(token in folder.lower() for token in intent_tokens),
        ) or _first(candidates, acceptable)
        if preferred:
            return move_to(preferred)

    # 3. Workflow notes go to a workflow folder
    if prefer_workflow and not avoid_workflow and not WORKFLOW.search(rel.as_posix()):
        preferred = _first(candidates, lambda folder: bool(WORKFLOW.search(folder)) and acceptable(folder))
        if preferred:
            return move_to(preferred)

    return path


def relocate_note(
    file_path: str | Path,
    vault_path: str | Path,
    classification: ClassificationResult,
) -> Path:
    """
    Apply the path policy and move the note on disk.

    Returns the note's final path. The note stays put if it is missing or if
    the target file already exists.
    """
    source = Path(file_path)
    target = apply_path_policy(source, vault_path, classification)
    if target == source or not source.exists():
        return source

    if target.exists():
        logger.warning(f"Path policy target already exists, keeping {source}")
        return source

    target.parent.mkdir(parents=True, exist_ok=True)
    source.rename(target)
    logger.info(f"Relocated note: {source} -> {target}")
    return target
