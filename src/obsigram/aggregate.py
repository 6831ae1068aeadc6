"""
Aggregation flow for ObsiGram.

Takes everything a user has buffered and turns it into one filed, linked and
synced vault note:

classify -> catalog -> prompt -> agent -> path policy -> graph links -> git

Progress and outcome are reported through a `reply` coroutine so the flow
stays independent of the chat transport.
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Sequence

from obsigram import gitsync
from obsigram.bridge import AgentBridge, AgentBridgeResult
from obsigram.buffer import BufferItem, SessionBuffer
from obsigram.catalog import build_catalog
from obsigram.classifier import ClassificationResult, Classifier
from obsigram.errors import VaultNotFoundError, VaultSecurityError
from obsigram.fetcher import is_youtube_url
from obsigram.links import enforce_links
from obsigram.prompt import build_prompt
from obsigram.router import relocate_note
from obsigram.tools import NO_MATCHING_NOTES, ToolName, ToolRegistry, create_registry, dispatch
from obsigram.vault import validate_file_path, validate_vault_path

logger = logging.getLogger(__name__)

Reply = Callable[[str], Awaitable[Any]]
GitSync = Callable[[Path, Path], Awaitable[gitsync.GitSyncResult]]

BUSY_MESSAGE = "Still working on your previous note, please wait for it to finish."
EMPTY_MESSAGE = "Your buffer is empty. Send a link or an idea first."
WORKING_MESSAGE = "Analysing the vault and drafting your note..."
NO_VAULT_MESSAGE = "Obsidian vault not found. Check the configured vault path."
UNSAFE_PATH_MESSAGE = "Security error: the note was written outside the vault. Sync cancelled."


class Aggregator:
    """Runs aggregations, at most one at a time per user."""

    def __init__(
        self,
        buffer: SessionBuffer,
        vault_path: str | Path,
        bridge: AgentBridge | None = None,
        classifier: Classifier | None = None,
        registry: ToolRegistry | None = None,
        git_sync: GitSync = gitsync.sync,
    ):
        self.buffer = buffer
        self.vault_path = Path(os.path.abspath(vault_path))
        self.registry = registry if registry is not None else create_registry(self.vault_path)
        self.bridge = bridge or AgentBridge(registry=self.registry)
        self.classifier = classifier or Classifier()
        self.git_sync = git_sync
        self.in_flight: set[str] = set()

    @contextmanager
    def claim(self, user_id: str) -> Iterator[bool]:
        """Yield True if the user was free and is now marked in flight."""
        if user_id in self.in_flight:
            yield False
            return
        self.in_flight.add(user_id)
        try:
            yield True
        finally:
            self.in_flight.discard(user_id)

    async def enrich_items(self, items: Sequence[BufferItem]) -> list[BufferItem]:
        """Swap raw YouTube links for their transcripts."""
        enriched = []
        for item in items:
            if item.kind == "url" and is_youtube_url(item.content):
                transcript = await dispatch(
                    self.registry, ToolName.GET_YOUTUBE_TRANSCRIPT.value, {"url": item.content}
                )
                item = item.model_copy(update={
                    "content": f"[YouTube URL: {item.content}]\n\n{transcript}",
                    "source": item.source or item.content,
                })
            enriched.append(item)
        return enriched

    async def search_hint(self, classification: ClassificationResult) -> str | None:
        """Existing notes named like the top candidate folder (or the theme)."""
        if classification.candidates:
            keyword = Path(classification.candidates[0]).name
        elif classification.theme != "general":
            keyword = classification.theme
        else:
            return None

        result = await dispatch(self.registry, ToolName.SEARCH_VAULT.value, {"keyword": keyword})
        if not result or result == NO_MATCHING_NOTES:
            return None
        return result

    async def aggregate_and_save(self, user_id: str, reply: Reply) -> Path | None:
        """
        Aggregate a user's buffer into a vault note.

        Returns the final note path, or None when nothing was written.
        """
        with self.claim(user_id) as claimed:
            if not claimed:
                await reply(BUSY_MESSAGE)
                return None
            return await self._aggregate(user_id, reply)

    async def _aggregate(self, user_id: str, reply: Reply) -> Path | None:
        items = self.buffer.get(user_id)
        if not items:
            await reply(EMPTY_MESSAGE)
            return None

        await reply(WORKING_MESSAGE)
        try:
            validate_vault_path(self.vault_path)
        except VaultNotFoundError as e:
            logger.error(str(e))
            await reply(NO_VAULT_MESSAGE)
            return None

        classification = self.classifier.classify(items, self.vault_path)
        logger.info(f"Classified {len(items)} item(s) for {user_id}: {classification.signals}")
        catalog_path = build_catalog(self.vault_path, classification)
        enriched = await self.enrich_items(items)
        hint = await self.search_hint(classification)

        prompt = build_prompt(enriched, self.vault_path, classification, catalog_path, hint)
        result: AgentBridgeResult = await self.bridge.run(prompt, cwd=self.vault_path)

        if not result.success or not result.file_path:
            await reply(f"OpenCode failed: {result.error or 'no note was written'}")
            return None

        try:
            written = validate_file_path(result.file_path, self.vault_path)
        except VaultSecurityError as e:
            logger.error(str(e))
            await reply(UNSAFE_PATH_MESSAGE)
            return None

        final_path = relocate_note(written, self.vault_path, classification)
        enforce_links(final_path, catalog_path)

        relative = _relative(final_path, self.vault_path)
        git_result = await self.git_sync(self.vault_path, final_path)

        if not git_result.success:
            await reply(
                f"Note written to the vault: {relative}\n"
                f"Git sync failed: {git_result.error}. Please run git push manually."
            )
            return final_path

        self.buffer.clear(user_id)
        if git_result.skipped:
            await reply(f"Note filed in the vault!\nPath: {relative}\n(unchanged, nothing to commit)")
        else:
            await reply(
                f"Note filed in the vault and synced!\n"
                f"Path: {relative}\n"
                f"Commit: {git_result.commit_hash}"
            )
        return final_path


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)
