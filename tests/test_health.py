"""Tests for the health report."""

from obsigram.catalog import get_catalog_path
from obsigram.health import (
    check_catalog,
    check_git,
    check_telegram,
    check_vault,
    format_health_report,
    run_health_check,
)


def test_vault_missing(tmp_path, monkeypatch):
    monkeypatch.setenv("OBSIGRAM_VAULT_PATH", str(tmp_path / "missing"))
    status, message = check_vault()
    assert status == "✗"
    assert "Not found" in message


def test_vault_counts_notes(make_vault, monkeypatch):
    vault = make_vault(notes={"a/one.md": "x", "b/two.md": "y"})
    monkeypatch.setenv("OBSIGRAM_VAULT_PATH", str(vault))
    assert check_vault() == ("✓", f"OK (2 notes in {vault})")


def test_catalog_status(vault, monkeypatch):
    monkeypatch.setenv("OBSIGRAM_VAULT_PATH", str(vault))
    assert check_catalog() == ("-", "No snapshot yet")

    catalog_path = get_catalog_path(vault)
    catalog_path.parent.mkdir()
    catalog_path.write_text("# catalog\n", encoding="utf-8")
    assert check_catalog()[0] == "✓"


def test_git_warns_without_repo(vault, monkeypatch):
    monkeypatch.setenv("OBSIGRAM_VAULT_PATH", str(vault))
    monkeypatch.setattr("obsigram.health.shutil.which", lambda name: "/usr/bin/git")
    assert check_git()[0] == "!"

    (vault / ".git").mkdir()
    assert check_git() == ("✓", "OK")


def test_telegram_status(monkeypatch):
    assert check_telegram() == ("-", "Not configured")

    monkeypatch.setenv("OBSIGRAM_TELEGRAM_TOKEN", "123:abc")
    assert check_telegram() == ("!", "No authorized users")

    monkeypatch.setenv("OBSIGRAM_TELEGRAM_USERS", "1, 2")
    assert check_telegram() == ("✓", "OK (2 users)")


def test_report_lists_every_check(vault, monkeypatch):
    monkeypatch.setenv("OBSIGRAM_VAULT_PATH", str(vault))

    report = format_health_report(run_health_check())

    assert report.startswith("ObsiGram Health Check")
    for name in ("Vault", "Catalog", "Git", "Agent", "Telegram"):
        assert f" {name}: " in report
