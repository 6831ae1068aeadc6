"""Tests for the agent prompt builder."""

from obsigram.buffer import BufferItem
from obsigram.classifier import PREFER_FRONTEND, ClassificationResult
from obsigram.links import MOC_HEADING
from obsigram.prompt import build_prompt, format_items


def test_prompt_includes_classification_and_catalog():
    classification = ClassificationResult(
        note_type="project",
        candidates=["Development/Projects", "Development/Tools"],
        signals=["source=github", "theme=frontend"],
        policy_hints=[PREFER_FRONTEND],
    )

    prompt = build_prompt(
        [BufferItem(kind="url", content="https://github.com/acme/tool")],
        "/vault",
        classification,
        "/vault/.obsigram/vault-catalog.md",
        "Found 1 matching note:\n- /vault/Development/Projects/tool.md",
    )

    assert "Catalog hint" in prompt
    assert "Vault root: /vault" in prompt
    assert "Suggested note type: project" in prompt
    assert "Candidate folders (priority order): Development/Projects, Development/Tools" in prompt
    assert "classification_reason" in prompt
    assert "/vault/.obsigram/vault-catalog.md" in prompt
    assert "- /vault/Development/Projects/tool.md" in prompt
    assert f"- {PREFER_FRONTEND}" in prompt
    assert MOC_HEADING in prompt
    assert "FILE_WRITTEN: <absolute path>" in prompt


def test_prompt_without_classification_falls_back():
    prompt = build_prompt([BufferItem(kind="text", content="an idea")], "/vault")

    assert "Suggested note type" not in prompt
    assert "reference only as fallback" in prompt
    assert "Priority context file: (none)" in prompt
    assert "Classification policy hints" not in prompt


def test_format_items_numbers_and_sources():
    text = format_items([
        BufferItem(kind="url", content="page text", source="https://example.com"),
        BufferItem(kind="text", content="my thought"),
    ])

    assert text == (
        "### Item 1 (url)\nSource: https://example.com\npage text\n\n"
        "### Item 2 (text)\nmy thought"
    )


def test_prompt_requires_full_coverage():
    prompt = build_prompt([BufferItem(kind="text", content="a")], "/vault")
    assert "Do not ignore any URL/item." in prompt
