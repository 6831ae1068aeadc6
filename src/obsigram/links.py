"""
Graph links for ObsiGram.

Makes sure a freshly written note links into the existing vault: notes with
fewer than two wiki links get a related-notes section filled from the
catalog entries that overlap them most.
"""

import logging
import re
from pathlib import Path

from pydantic import BaseModel

from obsigram.catalog import (
    CatalogEntry,
    build_full_catalog,
    collect_markdown_files,
    parse_catalog,
    parse_inline_tags,
    strip_quotes,
)
from obsigram.tokens import normalize_word, overlap_score, tokenize_words

logger = logging.getLogger(__name__)

WIKILINK = re.compile(r"\[\[([^\]]+)\]\]")
HEADING = re.compile(r"^#{1,6}\s")
_FRONTMATTER_TITLE = re.compile(r"^\s*title:\s*(.+)$", re.MULTILINE)
_INLINE_TAGS = re.compile(r"^\s*tags:\s*\[(.+)\]\s*$", re.MULTILINE)

MOC_HEADING = "## Related Map (MOC)"
NOTES_HEADING = "## Related Notes"
RELATED_HEADINGS = (MOC_HEADING, NOTES_HEADING)
NONE_MARKER = "none"

MIN_EXISTING_LINKS = 2
MIN_LINK_SCORE = 3
MAX_LINKS = 3


class NoteContext(BaseModel):
    """What the linker knows about the note being linked."""

    title: str = ""
    tags: frozenset[str] = frozenset()
    tokens: frozenset[str] = frozenset()


def parse_note_context(content: str) -> NoteContext:
    title = ""
    if match := _FRONTMATTER_TITLE.search(content):
        title = strip_quotes(match.group(1))

    tags: frozenset[str] = frozenset()
    if match := _INLINE_TAGS.search(content):
        tags = frozenset(tag for tag in map(normalize_word, parse_inline_tags(match.group(1))) if tag)

    tokens = frozenset(tokenize_words(title)) | frozenset(tokenize_words(content))
    return NoteContext(title=title, tags=tags, tokens=tokens)


def score_entry(entry: CatalogEntry, note: NoteContext) -> int:
    """
    Score a catalog entry against the note.

    +2 per shared title/file-name word, +4 per shared tag, and +5 once for a
    MOC entry that overlaps the note at all.
    """
    title_tokens = tokenize_words(entry.title)
    base_tokens = tokenize_words(entry.note_base)

    score = overlap_score([*title_tokens, *base_tokens], note.tokens, 2)
    score += overlap_score(entry.tags, note.tags, 4)
    if entry.is_moc and (set(title_tokens) | entry.tags) & note.tokens:
        score += 5
    return score


def find_related_notes(file_path: str | Path, catalog_path: str | Path | None) -> list[str]:
    """Top catalog entries (by note base name) for the note at file_path."""
    note_path = Path(file_path)
    if not catalog_path or not Path(catalog_path).exists() or not note_path.exists():
        return []

    note = parse_note_context(note_path.read_text(encoding="utf-8", errors="replace"))
    scored = [
        (score, entry.note_base)
        for entry in parse_catalog(catalog_path, exclude=note_path)
        if (score := score_entry(entry, note)) >= MIN_LINK_SCORE
    ]
    scored.sort(key=lambda item: (-item[0], item[1]))

    related: list[str] = []
    for _, name in scored:
        if name not in related:
            related.append(name)
    return related[:MAX_LINKS]


def fill_related_section(content: str, targets: list[str]) -> str:
    """
    Write link targets into the note's related-notes section.

    An existing section keeps what it has and gains the new links (replacing
    a bare `none`). With nothing to add, an empty section gets `none`.
    """
    lines = content.split("\n")
    link_lines = [f"- [[{name}]]" for name in targets]

    heading_idx = next(
        (i for i, line in enumerate(lines) if line.strip() in RELATED_HEADINGS), None
    )
    if heading_idx is None:
        body = link_lines or [NONE_MARKER]
        return f"{content.rstrip()}\n\n{MOC_HEADING}\n" + "\n".join(body) + "\n"

    end = next(
        (i for i in range(heading_idx + 1, len(lines)) if HEADING.match(lines[i])), len(lines)
    )
    current = [line for line in lines[heading_idx + 1:end] if line.strip()]

    if not link_lines:
        if current:
            return content
        body = [NONE_MARKER]
    else:
        body = [line for line in current if line.strip() != NONE_MARKER] + link_lines

    rest = lines[end:]
    return "\n".join(lines[: heading_idx + 1] + body + [""] + rest)


def enforce_links(file_path: str | Path, catalog_path: str | Path | None = None) -> None:
    """
    Give a note its related-notes links, in place.

    No-op for notes that already carry two or more wiki links.
    """
    note_path = Path(file_path)
    if not note_path.exists():
        return

    try:
        content = note_path.read_text(encoding="utf-8")
        existing = WIKILINK.findall(content)
        if len(existing) >= MIN_EXISTING_LINKS:
            return

        linked = {name.split("|")[0].strip() for name in existing}
        targets = [
            name for name in find_related_notes(note_path, catalog_path) if name not in linked
        ]

        updated = fill_related_section(content, targets)
        if updated != content:
            note_path.write_text(updated, encoding="utf-8")
            logger.info(f"Linked {note_path.name}: {targets or NONE_MARKER}")
    except UnicodeDecodeError as e:
        # Rewriting would replace the undecodable bytes, so leave the note alone
        logger.warning(f"Skipping links for {note_path}: not valid UTF-8 ({e.reason})")
    except OSError as e:
        logger.warning(f"Could not enforce links for {note_path}: {e}")


def backfill_links(vault_path: str | Path) -> int:
    """Rebuild a full catalog and enforce links on every note. Returns note count."""
    files = collect_markdown_files(vault_path)
    catalog_path = build_full_catalog(vault_path, files)
    for file_path in files:
        enforce_links(file_path, catalog_path)
    logger.info(f"Backfilled graph links for {len(files)} notes using {catalog_path}")
    return len(files)
