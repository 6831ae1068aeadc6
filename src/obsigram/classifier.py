"""
Heuristic classifier for ObsiGram.

Infers a note type, a topical theme and ranked destination folders from the
buffered fragments. Keyword scoring only: no model calls, no hidden state.
The only I/O is a read-only listing of the vault's folders.
"""

import re
from pathlib import Path
from typing import Any, Literal, Sequence
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

from obsigram.buffer import BufferItem
from obsigram.config import load_config
from obsigram.tokens import count_hits, overlap_score, tokenize
from obsigram.vault import scan_folders

NoteType = Literal["daily", "meeting", "idea", "project", "general"]

# Enumeration order doubles as the tie-break order
NOTE_TYPES: tuple[NoteType, ...] = ("daily", "meeting", "idea", "project", "general")

NOTE_TYPE_KEYWORDS: dict[str, list[str]] = {
    "daily": ["daily", "journal", "today", "log", "reflection"],
    "meeting": ["meeting", "minutes", "attendees", "agenda", "1:1", "standup"],
    "idea": ["idea", "brainstorm", "hypothesis", "concept", "thought"],
    "project": [
        "project", "github", "repo", "release", "library", "tool",
        "api", "implementation", "architecture",
    ],
    "general": [],
}

# Table order is the theme tie-break order
THEME_MARKERS: dict[str, list[str]] = {
    "frontend": ["frontend", "react", "nextjs", "javascript", "typescript", "css", "tailwind", "ui", "web"],
    "backend": ["backend", "api", "server", "database", "sql", "node", "express", "auth", "cache", "queue"],
    "workflow": ["workflow", "workflows", "pipeline", "ci", "cd", "automation", "github-actions", "actions"],
    "idea": ["idea", "brainstorm", "concept", "hypothesis", "draft"],
    "daily": ["daily", "journal", "today", "log", "reflection"],
    "data": ["data", "analytics", "warehouse", "etl", "clickhouse", "metrics"],
    "ai": ["ai", "llm", "agent", "prompt", "rag", "embedding", "inference", "model"],
}

FOLDER_HINTS: dict[str, list[str]] = {
    "daily": ["daily", "journal"],
    "meeting": ["meeting", "meetings"],
    "idea": ["idea", "ideas", "brainstorm"],
    "project": ["project", "projects", "dev", "engineering", "code", "repo", "tool", "tools", "opensource"],
    "general": ["inbox", "notes", "general"],
}

PROJECT_THEMES = ("frontend", "backend", "workflow", "data", "ai")

# Policy hints consumed by the path policy
AVOID_WORKFLOW_FOR_GITHUB = "avoid_workflow_folder_for_github_repo"
PREFER_FRONTEND = "prefer_frontend_folder"
PREFER_BACKEND = "prefer_backend_folder"
PREFER_WORKFLOW = "prefer_workflow_folder"

THEME_PREFERENCES = {
    "frontend": PREFER_FRONTEND,
    "backend": PREFER_BACKEND,
    "workflow": PREFER_WORKFLOW,
}

# Heuristic constants, overridable via the [classifier] config section
DEFAULT_THEME_THRESHOLD = 2
DEFAULT_MAX_CANDIDATES = 5
DEFAULT_SCAN_DEPTH = 2

URL_REGEX = re.compile(r"https?://[^\s)]+")
GITHUB_HOSTS = ("github.com", "www.github.com")


class ClassificationResult(BaseModel):
    """Outcome of classifying one aggregation request."""

    model_config = ConfigDict(frozen=True)

    note_type: NoteType = "general"
    candidates: list[str] = Field(default_factory=list, description="Folders in priority order")
    signals: list[str] = Field(default_factory=list, description="Diagnostic key=value strings")
    policy_hints: list[str] = Field(default_factory=list)

    @property
    def theme(self) -> str:
        for signal in self.signals:
            if signal.startswith("theme="):
                return signal.split("=", 1)[1]
        return "general"


def collect_urls(items: Sequence[BufferItem]) -> list[str]:
    """Gather every URL the fragments carry (source URLs and embedded links)."""
    urls: list[str] = []
    for item in items:
        if item.source:
            urls.append(item.source.strip())
        urls.extend(URL_REGEX.findall(item.content))
    return urls


def is_github_url(url: str) -> bool:
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return False
    return host in GITHUB_HOSTS


def dedupe(values: Sequence[str]) -> list[str]:
    """Drop repeats, keeping first occurrences in order."""
    seen: set[str] = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class Classifier:
    """Keyword/heuristic classifier for buffered fragments."""

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = config or load_config()
        classifier_config = self.config.get("classifier", {})
        self.theme_threshold = classifier_config.get("theme_threshold", DEFAULT_THEME_THRESHOLD)
        self.max_candidates = classifier_config.get("max_candidates", DEFAULT_MAX_CANDIDATES)
        self.scan_depth = classifier_config.get("scan_depth", DEFAULT_SCAN_DEPTH)

    def classify(self, items: Sequence[BufferItem], vault_path: str | Path) -> ClassificationResult:
        """
        Classify fragments against the folders of a vault.

        Never raises: a missing vault just means no folder candidates.
        """
        text = "\n".join(item.content for item in items)
        tokens = tokenize(text)
        token_set = set(tokens)
        urls = collect_urls(items)
        has_github = any(is_github_url(url) for url in urls)

        theme = self.infer_theme(token_set)
        note_type = self.score_note_type(token_set, has_github, theme)
        has_workflow_intent = theme == "workflow" or count_hits(token_set, THEME_MARKERS["workflow"]) > 0

        folders = scan_folders(vault_path, self.scan_depth)
        ranked = self.rank_folders(folders, note_type, tokens, theme, has_github, has_workflow_intent)
        candidates = self.with_theme_candidate(ranked, theme)

        signals = [
            f"note_type={note_type}",
            f"theme={theme}",
            "source=github" if has_github else "source=generic",
            f"candidate_count={len(candidates)}",
        ]

        policy_hints = []
        if has_github and not has_workflow_intent:
            policy_hints.append(AVOID_WORKFLOW_FOR_GITHUB)
        if theme in THEME_PREFERENCES:
            policy_hints.append(THEME_PREFERENCES[theme])

        return ClassificationResult(
            note_type=note_type,
            candidates=candidates,
            signals=signals,
            policy_hints=policy_hints,
        )

    def infer_theme(self, tokens: set[str]) -> str:
        best, best_score = "general", 0
        for theme, markers in THEME_MARKERS.items():
            score = count_hits(tokens, markers)
            if score > best_score:
                best, best_score = theme, score
        return best if best_score >= self.theme_threshold else "general"

    def score_note_type(self, tokens: set[str], has_github: bool, theme: str) -> NoteType:
        scores = {note_type: 0 for note_type in NOTE_TYPES}
        for note_type, keywords in NOTE_TYPE_KEYWORDS.items():
            scores[note_type] += 2 * count_hits(tokens, keywords)

        if has_github:
            scores["project"] += 4
        if theme in PROJECT_THEMES:
            scores["project"] += 3
        if theme == "idea":
            scores["idea"] += 3
        if theme == "daily":
            scores["daily"] += 3

        # max() keeps the first of equal scores, i.e. enumeration order
        winner = max(NOTE_TYPES, key=lambda note_type: scores[note_type])
        return winner if scores[winner] > 0 else "general"

    def rank_folders(
        self,
        folders: Sequence[str],
        note_type: str,
        tokens: Sequence[str],
        theme: str,
        has_github: bool,
        has_workflow_intent: bool,
    ) -> list[str]:
        theme_markers = THEME_MARKERS.get(theme, [])
        project_hints = FOLDER_HINTS["project"]
        scored = []

        for folder in folders:
            folder_tokens = set(tokenize(folder))
            score = 4 * count_hits(folder_tokens, FOLDER_HINTS[note_type])
            score += overlap_score(tokens, folder_tokens, 2)
            score += 4 * count_hits(folder_tokens, theme_markers)

            if has_github:
                if folder_tokens & set(project_hints):
                    score += 2
                if "workflow" in folder_tokens and not has_workflow_intent:
                    score -= 4

            if theme != "general" and "reference" in folder_tokens:
                score -= 3

            if score > 0:
                scored.append((score, folder))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return dedupe([folder for _, folder in scored])[: self.max_candidates]

    def with_theme_candidate(self, candidates: list[str], theme: str) -> list[str]:
        """Put the theme itself first when no candidate mentions it."""
        if theme == "general":
            return candidates
        if any(theme in candidate.lower() for candidate in candidates):
            return candidates
        return dedupe([theme, *candidates])[: self.max_candidates]


def classify_for_prompt(items: Sequence[BufferItem], vault_path: str | Path) -> ClassificationResult:
    """Convenience function to classify with the configured constants."""
    classifier = Classifier()
    return classifier.classify(items, vault_path)
