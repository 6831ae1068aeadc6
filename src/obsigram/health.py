"""
Health check module for ObsiGram.

Reports system status across all components.
"""

import os
import shutil
from datetime import datetime, timezone

from obsigram.catalog import get_catalog_path
from obsigram.config import get_agent_settings, get_vault_path, load_config


def check_vault() -> tuple[str, str]:
    """Check vault status."""
    vault_path = get_vault_path()
    if not vault_path.is_dir():
        return "✗", f"Not found ({vault_path})"

    try:
        notes = sum(1 for _ in vault_path.rglob("*.md"))
        return "✓", f"OK ({notes} notes in {vault_path})"
    except OSError as e:
        return "✗", f"Error: {e}"


def check_catalog() -> tuple[str, str]:
    """Check the last catalog snapshot."""
    catalog_path = get_catalog_path(get_vault_path())
    if not catalog_path.exists():
        return "-", "No snapshot yet"

    modified = datetime.fromtimestamp(catalog_path.stat().st_mtime, tz=timezone.utc)
    return "✓", f"OK (updated {modified.strftime('%Y-%m-%d %H:%M')} UTC)"


def check_git() -> tuple[str, str]:
    """Check that the vault is a git repository."""
    if shutil.which("git") is None:
        return "✗", "git not installed"
    if not (get_vault_path() / ".git").exists():
        return "!", "Vault is not a git repository (notes will not sync)"
    return "✓", "OK"


def check_agent() -> tuple[str, str]:
    """Check the drafting agent binary."""
    settings = get_agent_settings()
    binary = settings["command"][0]
    resolved = shutil.which(binary)
    if resolved is None:
        return "✗", f"{binary} not found on PATH"
    return "✓", f"OK ({resolved}, model {settings['model']})"


def check_telegram() -> tuple[str, str]:
    """Check Telegram bot status."""
    config = load_config()
    tg_config = config.get("telegram", {})

    token = (
        tg_config.get("token")
        or os.environ.get("OBSIGRAM_TELEGRAM_TOKEN")
        or os.environ.get("TELEGRAM_BOT_TOKEN")
    )
    if not token:
        return "-", "Not configured"

    users = tg_config.get("authorized_users", [])
    if not users:
        env_users = os.environ.get("OBSIGRAM_TELEGRAM_USERS", "")
        if env_users:
            users = [u.strip() for u in env_users.split(",") if u.strip()]

    if not users:
        return "!", "No authorized users"

    return "✓", f"OK ({len(users)} users)"


def run_health_check() -> dict[str, tuple[str, str]]:
    """Run all health checks."""
    return {
        "Vault": check_vault(),
        "Catalog": check_catalog(),
        "Git": check_git(),
        "Agent": check_agent(),
        "Telegram": check_telegram(),
    }


def format_health_report(checks: dict[str, tuple[str, str]]) -> str:
    """Format health check results."""
    lines = ["ObsiGram Health Check", "-" * 40]

    for name, (status, message) in checks.items():
        lines.append(f"{status} {name}: {message}")

    return "\n".join(lines)
