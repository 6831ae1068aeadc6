"""Tests for graph-link enforcement."""

import pytest

from obsigram.catalog import CatalogEntry, get_catalog_path
from obsigram.links import (
    MOC_HEADING,
    NOTES_HEADING,
    backfill_links,
    enforce_links,
    fill_related_section,
    find_related_notes,
    parse_note_context,
    score_entry,
)


@pytest.fixture
def write_catalog(vault):
    def _write(body: str):
        path = get_catalog_path(vault)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("# Vault Catalog\n\n" + body, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_note(vault):
    def _write(rel: str, content: str):
        path = vault / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


class TestEnforceLinks:

    def test_links_note_sharing_a_tag(self, write_note, write_catalog):
        note = write_note(
            "projects/2026-02-21-react-doctor.md",
            "---\ntitle: React Doctor\ntags: [react, tool]\n---\n\n## Details\n- text\n",
        )
        catalog = write_catalog(
            "## projects\n"
            "- projects/2026-02-21-react-performance-guide.md | title: React performance guide | tags: react,performance\n"
            "- projects/2026-02-21-claude-code-system-prompts.md | title: Claude prompts | tags: prompts\n"
        )

        enforce_links(note, catalog)

        content = note.read_text(encoding="utf-8")
        assert MOC_HEADING in content
        assert "- [[2026-02-21-react-performance-guide]]" in content
        assert "claude-code-system-prompts" not in content

    def test_note_with_two_links_is_untouched(self, write_note):
        original = "## Key concepts\n- [[React]]\n- [[TypeScript]]\n"
        note = write_note("projects/note.md", original)

        enforce_links(note)

        assert note.read_text(encoding="utf-8") == original

    def test_no_overlap_writes_none_marker(self, write_note, write_catalog):
        note = write_note("projects/note.md", "---\ntitle: Unique Topic\n---\n\n## Details\n- text\n")
        catalog = write_catalog("## projects\n- projects/alpha.md | title: Totally Different Subject | tags: unrelated\n")

        enforce_links(note, catalog)

        content = note.read_text(encoding="utf-8")
        assert f"{MOC_HEADING}\nnone" in content
        assert "[[" not in content

    def test_missing_catalog_still_fills_section(self, write_note):
        note = write_note("projects/note.md", "# Lonely\n")
        enforce_links(note, None)
        assert note.read_text(encoding="utf-8") == f"# Lonely\n\n{MOC_HEADING}\nnone\n"

    def test_prefers_relevant_moc(self, write_note, write_catalog):
        note = write_note(
            "projects/js-types.md",
            "---\ntitle: JavaScript Types Guide\ntags: [javascript, learning]\n---\n\n## Details\n- text\n",
        )
        catalog = write_catalog(
            "## programming/javascript\n"
            "- programming/javascript/JavaScript MOC.md | title: JavaScript MOC | tags: javascript,moc\n"
            "- projects/react-notes.md | title: React Notes | tags: react\n"
        )

        enforce_links(note, catalog)

        content = note.read_text(encoding="utf-8")
        assert "[[JavaScript MOC]]" in content
        assert "[[react-notes]]" not in content

    def test_fills_existing_section_in_place(self, write_note, write_catalog):
        note = write_note(
            "projects/react-doctor.md",
            "---\ntitle: React Doctor\ntags: [react]\n---\n\n"
            f"{NOTES_HEADING}\n\n## Source\nhttps://github.com/acme/react-doctor\n",
        )
        catalog = write_catalog("## projects\n- projects/react-hooks.md | title: React hooks | tags: react\n")

        enforce_links(note, catalog)

        content = note.read_text(encoding="utf-8")
        assert MOC_HEADING not in content
        assert f"{NOTES_HEADING}\n- [[react-hooks]]\n\n## Source" in content

    def test_enforcing_twice_is_idempotent(self, write_note, write_catalog):
        note = write_note("projects/note.md", "---\ntitle: Unique Topic\n---\n\nbody\n")
        catalog = write_catalog("## projects\n- projects/alpha.md | title: Other | tags: unrelated\n")

        enforce_links(note, catalog)
        once = note.read_text(encoding="utf-8")
        enforce_links(note, catalog)

        assert note.read_text(encoding="utf-8") == once

    def test_existing_link_is_not_repeated(self, write_note, write_catalog):
        note = write_note(
            "projects/react-doctor.md",
            "---\ntitle: React Doctor\ntags: [react]\n---\n\nSee [[react-hooks]].\n",
        )
        catalog = write_catalog(
            "## projects\n"
            "- projects/react-hooks.md | title: React hooks | tags: react\n"
            "- projects/react-router.md | title: React router | tags: react\n"
        )

        enforce_links(note, catalog)

        content = note.read_text(encoding="utf-8")
        assert content.count("[[react-hooks]]") == 1
        assert "- [[react-router]]" in content

    def test_missing_note_is_ignored(self, vault):
        enforce_links(vault / "nope.md")
        assert not (vault / "nope.md").exists()

    def test_invalid_utf8_note_is_left_untouched(self, vault):
        note = vault / "broken.md"
        raw = b"# Broken\n\xff\xfe react\n"
        note.write_bytes(raw)

        enforce_links(note)

        assert note.read_bytes() == raw

    def test_scoring_tolerates_invalid_utf8(self, vault, write_catalog):
        note = vault / "broken.md"
        note.write_bytes(b"---\ntags: [react]\n---\n\xff react\n")
        catalog = write_catalog("## x\n- x/react-guide.md | title: React guide | tags: react\n")

        assert find_related_notes(note, catalog) == ["react-guide"]


class TestScoring:

    def test_score_weights(self):
        note = parse_note_context("---\ntitle: React Doctor\ntags: [react]\n---\nreact tool\n")
        entry = CatalogEntry(note_base="react-guide", title="React guide", tags=frozenset({"react"}))
        # "react" title word +2, shared tag +4
        assert score_entry(entry, note) == 6

    def test_moc_bonus_applies_once(self):
        note = parse_note_context("javascript types\n")
        entry = CatalogEntry(
            note_base="JavaScript MOC", title="JavaScript MOC", tags=frozenset({"javascript"}), is_moc=True,
        )
        # "javascript" in title and base name +4, MOC overlap +5, no note tags
        assert score_entry(entry, note) == 9

    def test_related_notes_sorted_and_capped(self, write_note, write_catalog):
        note = write_note("n.md", "---\ntitle: Alpha\ntags: [alpha]\n---\n")
        catalog = write_catalog(
            "## x\n"
            "- x/d.md | title: d | tags: alpha\n"
            "- x/c.md | title: c | tags: alpha\n"
            "- x/b.md | title: b alpha | tags: alpha\n"
            "- x/a.md | title: a | tags: alpha\n"
        )
        assert find_related_notes(note, catalog) == ["b", "a", "c"]

    def test_note_excludes_itself(self, write_note, write_catalog):
        note = write_note("x/alpha.md", "---\ntitle: Alpha\ntags: [alpha]\n---\n")
        catalog = write_catalog("## x\n- x/alpha.md | title: Alpha | tags: alpha\n")
        assert find_related_notes(note, catalog) == []


class TestFillRelatedSection:

    def test_replaces_bare_none(self):
        content = f"body\n\n{MOC_HEADING}\nnone\n"
        assert fill_related_section(content, ["x"]) == f"body\n\n{MOC_HEADING}\n- [[x]]\n"

    def test_filled_section_without_new_links_is_unchanged(self):
        content = f"body\n\n{MOC_HEADING}\n- [[x]]\n"
        assert fill_related_section(content, []) == content


def test_backfill_links_processes_every_note(write_note, vault):
    write_note("frontend/react-hooks.md", "---\ntitle: React hooks\ntags: [react]\n---\n")
    write_note("frontend/react-router.md", "---\ntitle: React router\ntags: [react]\n---\n")
    write_note(".obsidian/ignored.md", "# hidden\n")

    assert backfill_links(vault) == 2

    hooks = (vault / "frontend" / "react-hooks.md").read_text(encoding="utf-8")
    assert "[[react-router]]" in hooks
    assert get_catalog_path(vault).exists()


def test_backfill_links_continues_past_invalid_utf8(write_note, vault):
    (vault / "frontend").mkdir()
    (vault / "frontend" / "a-broken.md").write_bytes(b"# Broken\n\xff\xfe\n")
    write_note("frontend/react-hooks.md", "---\ntitle: React hooks\ntags: [react]\n---\n")
    write_note("frontend/react-router.md", "---\ntitle: React router\ntags: [react]\n---\n")

    assert backfill_links(vault) == 3

    assert "[[react-router]]" in (vault / "frontend" / "react-hooks.md").read_text(encoding="utf-8")
    assert (vault / "frontend" / "a-broken.md").read_bytes() == b"# Broken\n\xff\xfe\n"
