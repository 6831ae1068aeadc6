"""
Telegram bot for ObsiGram.

Mobile capture: links and ideas sent to the bot go into a per-user buffer,
and /aggregate (or the inline button) turns the buffer into a vault note.
"""

import logging
import os
from typing import Any

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from obsigram.aggregate import Aggregator
from obsigram.buffer import BufferItem, SessionBuffer
from obsigram.config import get_vault_path, load_config
from obsigram.errors import BufferFullError
from obsigram.fetcher import extract_urls, fetch_url, is_youtube_url, strip_urls

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

AGGREGATE_CALLBACK = "aggregate"
PREVIEW_CHARS = 60

HELP_TEXT = (
    "ObsiGram Commands:\n\n"
    "/buffer - Show buffered items\n"
    "/delete <n> - Remove item n from the buffer\n"
    "/clear - Empty the buffer\n"
    "/aggregate - Turn the buffer into an Obsidian note\n"
    "/id - Show your user ID\n"
    "/help - Show this message\n\n"
    "Send any text or link to add it to the buffer."
)


def get_bot_config() -> dict[str, Any]:
    """Get bot configuration."""
    config = load_config()
    bot_config = config.get("telegram", {})

    # Token from config or environment
    token = (
        bot_config.get("token")
        or os.environ.get("OBSIGRAM_TELEGRAM_TOKEN")
        or os.environ.get("TELEGRAM_BOT_TOKEN")
    )
    if not token:
        raise ValueError(
            "Telegram bot token not found. "
            "Set OBSIGRAM_TELEGRAM_TOKEN env var or add to config.toml"
        )

    # Authorized user IDs (comma-separated in env, list in config)
    authorized = bot_config.get("authorized_users", [])
    if not authorized:
        env_users = os.environ.get("OBSIGRAM_TELEGRAM_USERS", "")
        if env_users:
            authorized = [int(uid.strip()) for uid in env_users.split(",") if uid.strip()]

    return {
        "token": token,
        "authorized_users": set(authorized),
        "vault_path": get_vault_path(config),
        "config": config,
    }


def is_authorized(user_id: int, authorized_users: set[int]) -> bool:
    """Check if user is authorized."""
    # If no users configured, deny all (secure default)
    if not authorized_users:
        return False
    return user_id in authorized_users


def aggregate_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton("Turn into an Obsidian note", callback_data=AGGREGATE_CALLBACK)]]
    )


def format_buffer(items: list[BufferItem]) -> str:
    """Numbered buffer listing for Telegram (plain text, compact)."""
    if not items:
        return "Your buffer is empty. Send a link or an idea first."

    lines = [f"Buffer has {len(items)} item(s):", ""]
    for i, item in enumerate(items, 1):
        preview = (item.source or item.content)[:PREVIEW_CHARS].replace("\n", " ")
        lines.append(f"{i}. [{item.kind}] {preview}")
    return "\n".join(lines)


async def _authorized_user(update: Update, context: ContextTypes.DEFAULT_TYPE) -> str | None:
    """Return the sender's id as a buffer key, or None after refusing them."""
    if not update.effective_user:
        return None

    user_id = update.effective_user.id
    authorized_users = context.bot_data.get("authorized_users", set())

    # Security: only serve authorized users
    if not is_authorized(user_id, authorized_users):
        logger.warning(f"Unauthorized access attempt from user {user_id}")
        if update.effective_message:
            await update.effective_message.reply_text(f"Unauthorized. Your ID: {user_id}")
        return None
    return str(user_id)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command."""
    if not update.effective_user:
        return

    user_id = update.effective_user.id
    authorized_users = context.bot_data.get("authorized_users", set())

    if is_authorized(user_id, authorized_users):
        await update.message.reply_text(
            "ObsiGram ready. Send links or ideas to buffer them, "
            "then tap the button under my reply to file them as an Obsidian note.\n\n"
            + HELP_TEXT
        )
    else:
        await update.message.reply_text(
            f"Unauthorized. Your user ID: {user_id}\n"
            "Add this ID to OBSIGRAM_TELEGRAM_USERS to authorize."
        )


async def id_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /id command - show user's Telegram ID."""
    if not update.effective_user:
        return

    user_id = update.effective_user.id
    await update.message.reply_text(f"Your Telegram user ID: {user_id}")


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command."""
    if not update.effective_user:
        return

    await update.message.reply_text(HELP_TEXT)


async def buffer_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /buffer command - list buffered items."""
    user_id = await _authorized_user(update, context)
    if user_id is None:
        return

    buffer: SessionBuffer = context.bot_data["buffer"]
    await update.message.reply_text(format_buffer(buffer.get(user_id)))


async def delete_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete command - remove one item by its 1-based number."""
    user_id = await _authorized_user(update, context)
    if user_id is None:
        return

    try:
        number = int(context.args[0]) if context.args else 0
    except ValueError:
        number = 0
    if number < 1:
        await update.message.reply_text("Usage: /delete <n>, e.g. /delete 2")
        return

    buffer: SessionBuffer = context.bot_data["buffer"]
    if not buffer.remove(user_id, number - 1):
        await update.message.reply_text(f"No item {number}. Check the list with /buffer.")
        return

    await update.message.reply_text(f"Deleted item {number}. {buffer.count(user_id)} item(s) left.")


async def clear_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /clear command - empty the buffer."""
    user_id = await _authorized_user(update, context)
    if user_id is None:
        return

    buffer: SessionBuffer = context.bot_data["buffer"]
    buffer.clear(user_id)
    await update.message.reply_text("Buffer cleared.")


async def aggregate_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /aggregate command."""
    user_id = await _authorized_user(update, context)
    if user_id is None:
        return

    aggregator: Aggregator = context.bot_data["aggregator"]
    await aggregator.aggregate_and_save(user_id, update.effective_message.reply_text)


async def aggregate_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle the inline aggregate button."""
    query = update.callback_query
    try:
        await query.answer()
    except BadRequest as e:
        # Buttons outlive their callback queries; aggregating still works
        if "query is too old" not in str(e):
            raise

    user_id = await _authorized_user(update, context)
    if user_id is None:
        return

    aggregator: Aggregator = context.bot_data["aggregator"]
    await aggregator.aggregate_and_save(user_id, update.effective_message.reply_text)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle incoming messages - fetch links and buffer everything."""
    if not update.message:
        return
    user_id = await _authorized_user(update, context)
    if user_id is None:
        return

    text = update.message.text
    if not text:
        await update.message.reply_text("Only text messages are supported.")
        return

    buffer: SessionBuffer = context.bot_data["buffer"]
    urls = extract_urls(text)
    remaining = strip_urls(text)
    added = 0

    if urls:
        if any(is_youtube_url(url) for url in urls):
            await update.message.reply_text("YouTube link detected. The transcript is fetched when you aggregate.")
        else:
            await update.message.reply_text("Reading links...")

    try:
        for url in urls:
            if is_youtube_url(url):
                # Stored raw; aggregation swaps in the transcript
                item = BufferItem(kind="url", content=url)
            else:
                try:
                    content = await fetch_url(url)
                except ValueError as e:
                    logger.info(f"Skipping unreadable link: {e}")
                    content = url
                item = BufferItem(kind="url", content=content, source=url)
            buffer.push(user_id, item)
            added += 1

        if remaining:
            buffer.push(user_id, BufferItem(kind="text", content=remaining))
            added += 1
    except BufferFullError as e:
        logger.warning(str(e))
        await update.message.reply_text(
            f"Buffer is full ({buffer.max_size} items). Aggregate or /clear it first."
        )

    count = buffer.count(user_id)
    logger.info(f"Buffered {added} item(s) for user {user_id} ({count} total)")
    await update.message.reply_text(f"Added {added} item(s). Buffer now holds {count}.")
    if count > 0:
        await update.message.reply_text("Ready?", reply_markup=aggregate_keyboard())


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log handler errors and tell the user something went wrong."""
    logger.error(f"Error handling update: {context.error}", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text("Internal error, please try again later.")


def build_application(config: dict[str, Any]) -> Application:
    """Create the bot application with its handlers and shared state."""
    # Aggregations run for minutes; other updates must keep flowing
    app = Application.builder().token(config["token"]).concurrent_updates(True).build()

    buffer = SessionBuffer()
    app.bot_data["authorized_users"] = config["authorized_users"]
    app.bot_data["buffer"] = buffer
    app.bot_data["aggregator"] = Aggregator(buffer, config["vault_path"])

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("id", id_command))
    app.add_handler(CommandHandler("buffer", buffer_command))
    app.add_handler(CommandHandler("delete", delete_command))
    app.add_handler(CommandHandler("clear", clear_command))
    app.add_handler(CommandHandler("aggregate", aggregate_command))
    app.add_handler(CallbackQueryHandler(aggregate_callback, pattern=f"^{AGGREGATE_CALLBACK}$"))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))
    app.add_error_handler(error_handler)
    return app


def run_bot() -> None:
    """Run the Telegram bot."""
    config = get_bot_config()
    app = build_application(config)

    # Log startup info
    if config["authorized_users"]:
        logger.info(f"Bot starting. Authorized users: {config['authorized_users']}")
    else:
        logger.warning("No authorized users configured! Bot will deny all messages.")
    logger.info(f"Vault: {config['vault_path']}")

    # Run bot
    app.run_polling(allowed_updates=Update.ALL_TYPES)


def main() -> int:
    """Entry point for CLI."""
    try:
        run_bot()
        return 0
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nBot stopped.")
        return 0


if __name__ == "__main__":
    import sys
    sys.exit(main())
