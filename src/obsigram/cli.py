"""
CLI for ObsiGram.

Minimal CLI using stdlib argv dispatch. Subcommands are imported lazily so
`obsigram --help` does not pull in the bot or agent stacks.

Usage:
    obsigram bot                        # Run the Telegram bot
    obsigram classify "some text"       # Show the local classification
    obsigram --help                     # Show help
"""

import sys


def print_help() -> None:
    """Print help message."""
    print("""obsigram - Telegram to Obsidian note pipeline

Commands:
    obsigram bot                      Run the Telegram bot
    obsigram classify <text>          Classify text against the vault folders
    obsigram catalog <text>           Build the catalog snapshot for text
    obsigram backfill-links [vault]   Add related-note links to every note
    obsigram health                   Show system health

Options:
    obsigram --help, -h               Show this help
    obsigram --version, -v            Show version

Examples:
    obsigram classify "github.com/acme/api fastapi backend service"
    obsigram backfill-links ~/vault

The vault is read from OBSIGRAM_VAULT_PATH or ~/.config/obsigram/config.toml.""")


def print_version() -> None:
    """Print version."""
    from obsigram import __version__
    print(f"obsigram {__version__}")


def _read_text(args: list[str]) -> str:
    text = " ".join(args)
    if not text and not sys.stdin.isatty():
        text = sys.stdin.read()
    return text.strip()


def _items_from(text: str) -> list:
    from obsigram.buffer import BufferItem
    from obsigram.fetcher import extract_urls, strip_urls

    items = [BufferItem(kind="url", content=url, source=url) for url in extract_urls(text)]
    if remaining := strip_urls(text):
        items.append(BufferItem(kind="text", content=remaining))
    return items


def cmd_classify(args: list[str]) -> int:
    """Print the classification for text."""
    from obsigram.classifier import classify_for_prompt
    from obsigram.config import get_vault_path

    text = _read_text(args)
    if not text:
        print("Usage: obsigram classify <text>", file=sys.stderr)
        return 1

    vault_path = get_vault_path()
    result = classify_for_prompt(_items_from(text), vault_path)

    print(f"Note type:  {result.note_type}")
    print(f"Theme:      {result.theme}")
    print(f"Candidates: {', '.join(result.candidates) or '(none)'}")
    print(f"Signals:    {', '.join(result.signals)}")
    print(f"Hints:      {', '.join(result.policy_hints) or '(none)'}")
    return 0


def cmd_catalog(args: list[str]) -> int:
    """Build a catalog snapshot for text and print its path."""
    from obsigram.catalog import build_catalog
    from obsigram.classifier import classify_for_prompt
    from obsigram.config import get_vault_path

    text = _read_text(args)
    if not text:
        print("Usage: obsigram catalog <text>", file=sys.stderr)
        return 1

    vault_path = get_vault_path()
    catalog_path = build_catalog(vault_path, classify_for_prompt(_items_from(text), vault_path))
    if catalog_path is None:
        print(f"Error: could not build catalog for {vault_path}", file=sys.stderr)
        return 1

    print(catalog_path)
    return 0


def cmd_backfill_links(args: list[str]) -> int:
    """Enforce graph links on every note of a vault."""
    from pathlib import Path

    from obsigram.config import get_vault_path
    from obsigram.errors import VaultNotFoundError
    from obsigram.links import backfill_links
    from obsigram.vault import validate_vault_path

    vault_path = Path(args[0]).expanduser() if args else get_vault_path()
    try:
        validate_vault_path(vault_path)
    except VaultNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    count = backfill_links(vault_path)
    print(f"Backfilled graph links for {count} notes in {vault_path}")
    return 0


def cmd_health() -> int:
    """Show health report."""
    from obsigram.health import format_health_report, run_health_check

    checks = run_health_check()
    print(format_health_report(checks))
    return 1 if any(status == "✗" for status, _ in checks.values()) else 0


def cmd_bot() -> int:
    """Run the Telegram bot."""
    from obsigram.telegram_bot import main as bot_main
    return bot_main()


def main() -> int:
    """Main entry point."""
    args = sys.argv[1:]

    if not args:
        print_help()
        return 0

    first_arg = args[0]

    if first_arg in ("--help", "-h", "help"):
        print_help()
        return 0

    if first_arg in ("--version", "-v", "version"):
        print_version()
        return 0

    # Subcommands (lazy import to keep startup fast)
    if first_arg == "bot":
        return cmd_bot()

    if first_arg == "classify":
        return cmd_classify(args[1:])

    if first_arg == "catalog":
        return cmd_catalog(args[1:])

    if first_arg == "backfill-links":
        import logging
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            level=logging.INFO,
        )
        return cmd_backfill_links(args[1:])

    if first_arg == "health":
        return cmd_health()

    print(f"Error: unknown command '{first_arg}'. See obsigram --help.", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
