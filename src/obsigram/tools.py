"""
Client-side tools for ObsiGram.

Tools the agent may call while drafting: a YouTube transcript fetch and a
vault file-name search. Definitions are MCP tool schemas, shared by the
agent bridge (advertised at handshake) and the MCP server.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import parse_qs, urlsplit

from mcp.types import Tool

logger = logging.getLogger(__name__)

NO_TRANSCRIPT = "No transcript available for this video."
NO_MATCHING_NOTES = "No matching notes found. Please create a new file."
PREVIEW_LINES = 3


class ToolName(str, Enum):
    GET_YOUTUBE_TRANSCRIPT = "get_youtube_transcript"
    SEARCH_VAULT = "search_vault"


ToolHandler = Callable[[dict[str, Any]], Awaitable[str]]
ToolRegistry = Mapping[ToolName, ToolHandler]


TOOL_DEFINITIONS: list[Tool] = [
    Tool(
        name=ToolName.GET_YOUTUBE_TRANSCRIPT.value,
        description=(
            "Fetches the full transcript/captions of a YouTube video. "
            "Use this whenever a YouTube URL is present in the input."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The full YouTube video URL (e.g. https://www.youtube.com/watch?v=xxxxx)",
                },
            },
            "required": ["url"],
        },
    ),
    Tool(
        name=ToolName.SEARCH_VAULT.value,
        description=(
            "Searches the Obsidian vault for existing notes whose filename contains the given keyword. "
            "Use this before creating a new note to detect duplicates and decide whether to create "
            "a new file or append to an existing one."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "keyword": {
                    "type": "string",
                    "description": "The keyword to search for in note filenames (case-insensitive)",
                },
            },
            "required": ["keyword"],
        },
    ),
]


def normalize_tool_name(name: str) -> str:
    """'Search Vault' -> 'search_vault'."""
    return name.strip().lower().replace(" ", "_")


def resolve_tool_name(name: str) -> ToolName | None:
    try:
        return ToolName(normalize_tool_name(name))
    except ValueError:
        return None


# ── YouTube transcript ────────────────────────────────────────────────


def extract_video_id(url: str) -> str | None:
    """Video id from watch, youtu.be, shorts, embed and live URLs."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None

    host = (parts.hostname or "").lower()
    segments = [segment for segment in parts.path.split("/") if segment]

    if host.endswith("youtu.be"):
        return segments[0] if segments else None
    if "youtube.com" in host:
        if video_ids := parse_qs(parts.query).get("v"):
            return video_ids[0]
        if len(segments) >= 2 and segments[0] in ("shorts", "embed", "live", "v"):
            return segments[1]
    return None


def _fetch_transcript(video_id: str) -> str:
    # Lazy import: only needed when a YouTube link is aggregated
    from youtube_transcript_api import YouTubeTranscriptApi

    fetched = YouTubeTranscriptApi().fetch(video_id)
    return " ".join(snippet.text for snippet in fetched)


async def youtube_transcript(params: dict[str, Any]) -> str:
    """Transcript text, or the NO_TRANSCRIPT sentinel."""
    video_id = extract_video_id(str(params.get("url", "")))
    if not video_id:
        return NO_TRANSCRIPT
    try:
        text = await asyncio.to_thread(_fetch_transcript, video_id)
    except Exception as e:
        # Captions disabled, video gone, network down: all mean "no transcript"
        logger.info(f"Transcript unavailable for {video_id}: {e}")
        return NO_TRANSCRIPT
    return text.strip() or NO_TRANSCRIPT


# ── Vault search ──────────────────────────────────────────────────────


def _read_first_lines(file_path: Path, n: int) -> str:
    try:
        with open(file_path, "r", encoding="utf-8", errors="replace") as f:
            return "\n".join(line.rstrip("\n") for _, line in zip(range(n), f))
    except OSError:
        return ""


def search_vault_files(vault_path: str | Path, keyword: str) -> str:
    """Notes whose file name contains keyword, with short previews."""
    root = Path(vault_path)
    needle = keyword.lower()
    try:
        hits = [path for path in sorted(root.rglob("*.md")) if needle in path.name.lower()]
    except OSError:
        hits = []

    if not hits:
        return NO_MATCHING_NOTES

    lines = [f"Found {len(hits)} matching note{'s' if len(hits) > 1 else ''}:"]
    for path in hits:
        preview = _read_first_lines(path, PREVIEW_LINES).replace("\n", "\\n")
        lines.append(f"- {path}")
        lines.append(f"  (preview: {preview})")
    return "\n".join(lines)


def create_registry(vault_path: str | Path) -> ToolRegistry:
    """Build the read-only tool registry for one vault."""

    async def search_vault(params: dict[str, Any]) -> str:
        keyword = str(params.get("keyword", "")).strip()
        if not keyword:
            return NO_MATCHING_NOTES
        return await asyncio.to_thread(search_vault_files, vault_path, keyword)

    return MappingProxyType({
        ToolName.GET_YOUTUBE_TRANSCRIPT: youtube_transcript,
        ToolName.SEARCH_VAULT: search_vault,
    })


async def dispatch(registry: ToolRegistry, name: str, params: dict[str, Any]) -> str | None:
    """
    Run the handler registered under name.

    Returns None for unknown tools. Handler errors propagate to the caller.
    """
    tool = resolve_tool_name(name)
    if tool is None or tool not in registry:
        return None
    return await registry[tool](params)
