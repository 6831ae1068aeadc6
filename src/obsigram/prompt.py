"""
Prompt builder for ObsiGram.

Turns buffered fragments plus the local pre-classification into the
instructions the drafting agent receives.
"""

from pathlib import Path
from typing import Sequence

from obsigram.buffer import BufferItem
from obsigram.classifier import ClassificationResult
from obsigram.links import MOC_HEADING, NONE_MARKER

NOTE_PROMPT = """You are the note writer for a personal Obsidian vault.
Turn the captured items below into ONE well-structured markdown note and save it inside the vault.

## Vault
Vault root: {vault_path}
All paths you write must be absolute and inside the vault root.
Never write into the `.obsigram` folder; it holds generated indexes only.

## Context
- Catalog hint: read the catalog index first and compare existing titles before choosing a folder.
{catalog_hint}
{search_hint}
{classification_text}{policy_text}
## Rules
1. Write exactly one note. Use a short, descriptive English file name in kebab-case ending in `.md`.
{folder_rule}
{note_type_rule}
4. Start the note with YAML frontmatter containing `title`, `tags: [...]`, `type` and `created` (ISO date).
5. Summarise every source faithfully; keep original URLs as markdown links.
6. For YouTube links call the `get_youtube_transcript` tool; before creating a note call `search_vault` to detect duplicates.
7. End the note with a `{moc_heading}` section listing related notes as `- [[note-name]]` wiki links. Write `{none_marker}` if nothing fits.
8. After saving, print one line `FILE_WRITTEN: <absolute path>` for every file you wrote.

## Input
{input_content}

[Coverage requirement]
You must explicitly analyze all input items (Item 1..N). Do not ignore any URL/item.
"""


def format_items(items: Sequence[BufferItem]) -> str:
    blocks = []
    for i, item in enumerate(items, 1):
        header = f"### Item {i} ({item.kind})"
        if item.source:
            header += f"\nSource: {item.source}"
        blocks.append(f"{header}\n{item.content}")
    return "\n\n".join(blocks)


def _classification_text(classification: ClassificationResult | None) -> str:
    if classification is None:
        return ""
    candidates = ", ".join(classification.candidates) or "(none)"
    return (
        "\n**Pre-classification (local heuristic)**:\n"
        f"- Suggested note type: {classification.note_type}\n"
        f"- Candidate folders (priority order): {candidates}\n"
        f"- Signals: {', '.join(classification.signals)}\n"
    )


def _policy_text(classification: ClassificationResult | None) -> str:
    if classification is None or not classification.policy_hints:
        return ""
    hints = "\n".join(f"- {hint}" for hint in classification.policy_hints)
    return f"\n**Classification policy hints**:\n{hints}\n"


def _folder_rule(classification: ClassificationResult | None) -> str:
    if classification is not None and classification.candidates:
        return (
            "2. Choose the target folder from these candidate folders first: "
            f"{', '.join(classification.candidates)}. Prefer content-topic folders "
            "(frontend/backend/workflow/data/ai/idea and other domain folders) over generic reference. "
            "Only if none is truly suitable, explain why and then pick another existing folder."
        )
    return (
        "2. Choose the most appropriate existing topical folder by content domain first; "
        "use reference only as fallback. Only create a new folder if no existing one fits."
    )


def _note_type_rule(classification: ClassificationResult | None) -> str:
    if classification is None:
        return "3. Determine a suitable note type and keep metadata consistent with content."
    return (
        f'3. Respect the suggested note type "{classification.note_type}" unless the content clearly '
        'contradicts it; if overridden, explain the reason in frontmatter field "classification_reason".'
    )


def build_prompt(
    items: Sequence[BufferItem],
    vault_path: str | Path,
    classification: ClassificationResult | None = None,
    catalog_path: str | Path | None = None,
    search_hint: str | None = None,
) -> str:
    """Render the agent prompt for one aggregation."""
    catalog_hint = (
        f"- Priority context file: {catalog_path} (read this index and the existing titles before deciding)"
        if catalog_path
        else "- Priority context file: (none)"
    )
    search_text = f"- Vault search results for related notes:\n{search_hint}" if search_hint else ""

    return NOTE_PROMPT.format(
        vault_path=vault_path,
        catalog_hint=catalog_hint,
        search_hint=search_text,
        classification_text=_classification_text(classification),
        policy_text=_policy_text(classification),
        folder_rule=_folder_rule(classification),
        note_type_rule=_note_type_rule(classification),
        moc_heading=MOC_HEADING,
        none_marker=NONE_MARKER,
        input_content=format_items(items),
    )
