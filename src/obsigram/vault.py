"""
Vault filesystem helpers: root/path validation and folder discovery.
"""

import os
from pathlib import Path

from obsigram.errors import VaultNotFoundError, VaultSecurityError

# Reserved folder for generated artifacts (catalog snapshot)
RESERVED_DIR = ".obsigram"


def validate_vault_path(vault_path: str | Path) -> Path:
    """Return the vault root, raising if it does not exist."""
    root = Path(vault_path)
    if not root.exists():
        raise VaultNotFoundError(f"Vault path not found: {vault_path}")
    return root


def validate_file_path(file_path: str | Path, vault_path: str | Path) -> Path:
    """Return the resolved file path, raising if it escapes the vault."""
    resolved = Path(os.path.abspath(file_path))
    root = Path(os.path.abspath(vault_path))
    if resolved != root and root not in resolved.parents:
        raise VaultSecurityError(
            f'Security error: file path "{file_path}" is outside vault "{vault_path}"'
        )
    return resolved


def scan_folders(vault_path: str | Path, max_depth: int = 2) -> list[str]:
    """
    List vault folders as POSIX paths relative to the root.

    Hidden folders are skipped. Depth 0 is the root's children; folders are
    listed down to `max_depth` levels below that. A missing root yields [].
    """
    root = Path(vault_path)
    if not root.is_dir():
        return []

    folders: list[str] = []

    def walk(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            children = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError:
            return
        for child in children:
            if child.name.startswith(".") or not child.is_dir():
                continue
            folders.append(child.relative_to(root).as_posix())
            walk(child, depth + 1)

    walk(root, 0)
    return folders
