"""
Vault catalog for ObsiGram.

Snapshots titles and tags of recent notes in the candidate folders into a
markdown index. The agent reads it before choosing a folder, and the graph
linker scores it afterwards.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from obsigram.classifier import ClassificationResult
from obsigram.tokens import normalize_word
from obsigram.vault import RESERVED_DIR

logger = logging.getLogger(__name__)

CATALOG_FILENAME = "vault-catalog.md"
CANDIDATE_FOLDER_LIMIT = 10
BACKFILL_FOLDER_LIMIT = 30
HEAD_CHARS = 8000

_FRONTMATTER_TITLE = re.compile(r"^\s*title:\s*(.+)$", re.MULTILINE)
_H1 = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_INLINE_TAGS = re.compile(r"^\s*tags:\s*\[(.+)\]\s*$", re.MULTILINE)
_ENTRY_LINE = re.compile(r"^- (.+?\.md)\s+\|\s+title:\s*(.+?)(?:\s+\|\s+tags:\s*(.+))?$")


class CatalogEntry(BaseModel):
    """One note listed in a catalog snapshot."""

    note_base: str = Field(description="File name without .md")
    title: str
    tags: frozenset[str] = frozenset()
    is_moc: bool = False


def get_catalog_path(vault_path: str | Path) -> Path:
    return Path(vault_path) / RESERVED_DIR / CATALOG_FILENAME


def _read_head(file_path: Path) -> str:
    with open(file_path, "r", encoding="utf-8", errors="replace") as f:
        return f.read(HEAD_CHARS)


def strip_quotes(value: str) -> str:
    return re.sub(r"^[\"']|[\"']$", "", value.strip())


def parse_inline_tags(raw: str) -> list[str]:
    """Split a `tags: [a, "#b"]` payload into lower-case tag names."""
    tags = []
    for tag in raw.split(","):
        cleaned = re.sub(r"^[\"'#]+|[\"']+$", "", tag.strip()).lower()
        if cleaned:
            tags.append(cleaned)
    return tags


def extract_title(file_path: Path) -> str:
    """Frontmatter title, then first H1, then the file name."""
    try:
        content = _read_head(file_path)
        if match := _FRONTMATTER_TITLE.search(content):
            title = strip_quotes(match.group(1))
            if title:
                return title
        if match := _H1.search(content):
            return match.group(1).strip()
    except OSError:
        pass  # Fall back to the file name
    return file_path.stem


def extract_tags(file_path: Path) -> list[str]:
    try:
        content = _read_head(file_path)
    except OSError:
        return []
    if match := _INLINE_TAGS.search(content):
        return parse_inline_tags(match.group(1))
    return []


def format_entry(vault_path: Path, file_path: Path) -> str:
    rel = file_path.relative_to(vault_path).as_posix()
    line = f"- {rel} | title: {extract_title(file_path)}"
    tags = extract_tags(file_path)
    if tags:
        line += f" | tags: {','.join(tags)}"
    return line


def _recent_notes(folder: Path, limit: int) -> list[Path]:
    notes = []
    for child in folder.iterdir():
        if child.is_file() and child.suffix == ".md":
            notes.append((child.stat().st_mtime, child))
    notes.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in notes[:limit]]


def _header(extra: list[str]) -> list[str]:
    return [
        "# Vault Catalog",
        f"generated_at: {datetime.now(timezone.utc).isoformat()}",
        *extra,
        "",
    ]


def _write(vault_path: Path, lines: list[str]) -> Path:
    catalog_path = get_catalog_path(vault_path)
    catalog_path.parent.mkdir(parents=True, exist_ok=True)
    with open(catalog_path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))
    return catalog_path


def build_catalog(vault_path: str | Path, classification: ClassificationResult) -> Path | None:
    """
    Write a catalog of the candidate folders (and their parents).

    Returns the snapshot path, or None if the snapshot could not be built.
    """
    root = Path(vault_path)
    try:
        folders: set[str] = set()
        for folder in classification.candidates:
            folders.add(folder)
            parent = Path(folder).parent.as_posix()
            if parent and parent != ".":
                folders.add(parent)

        lines = _header([f"note_type_hint: {classification.note_type}"])

        for folder in sorted(folders):
            absolute = root / folder
            if not absolute.is_dir():
                continue

            lines.append(f"## {folder}")
            notes = _recent_notes(absolute, CANDIDATE_FOLDER_LIMIT)
            if not notes:
                lines.append("- (no markdown files found)")
            for note in notes:
                lines.append(format_entry(root, note))
            lines.append("")

        catalog_path = _write(root, lines)
        logger.info(f"Catalog written: {catalog_path} ({len(folders)} folders)")
        return catalog_path

    except (OSError, ValueError) as e:
        logger.warning(f"Catalog build failed for {vault_path}: {e}")
        return None


def collect_markdown_files(vault_path: str | Path) -> list[Path]:
    """Every note in the vault, skipping the reserved folder and hidden folders."""
    root = Path(vault_path)
    files = []
    for path in sorted(root.rglob("*.md")):
        rel_parts = path.relative_to(root).parts
        if any(part.startswith(".") for part in rel_parts[:-1]):
            continue
        files.append(path)
    return files


def build_full_catalog(vault_path: str | Path, files: list[Path] | None = None) -> Path:
    """Catalog every folder of the vault (used when backfilling links)."""
    root = Path(vault_path)
    files = files if files is not None else collect_markdown_files(root)

    grouped: dict[str, list[tuple[float, Path]]] = {}
    for file_path in files:
        folder = file_path.parent.relative_to(root).as_posix()
        grouped.setdefault(folder, []).append((file_path.stat().st_mtime, file_path))

    lines = _header(["mode: backfill"])
    for folder in sorted(grouped):
        lines.append(f"## {folder}")
        entries = sorted(grouped[folder], key=lambda item: item[0], reverse=True)
        for _, file_path in entries[:BACKFILL_FOLDER_LIMIT]:
            lines.append(format_entry(root, file_path))
        lines.append("")

    return _write(root, lines)


def parse_catalog(catalog_path: str | Path, exclude: str | Path | None = None) -> list[CatalogEntry]:
    """
    Parse a catalog snapshot into entries.

    `exclude` is a note path whose own entry should be skipped.
    """
    exclude_base = Path(exclude).stem if exclude else ""
    with open(catalog_path, "r", encoding="utf-8") as f:
        lines = f.read().split("\n")

    entries = []
    for line in lines:
        match = _ENTRY_LINE.match(line)
        if not match:
            continue
        note_base = Path(match.group(1)).stem
        if not note_base or note_base == exclude_base:
            continue
        title = match.group(2).strip()
        tags = frozenset(
            tag for tag in (normalize_word(raw.strip()) for raw in (match.group(3) or "").split(",")) if tag
        )
        is_moc = "moc" in f"{note_base} {title}".lower()
        entries.append(CatalogEntry(note_base=note_base, title=title, tags=tags, is_moc=is_moc))
    return entries
