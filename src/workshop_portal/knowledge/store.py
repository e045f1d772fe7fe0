"""
Keyword-searchable knowledge base.

The collection is a JSON list of ``{"id", "title", "content"}`` objects.  It is read on the first
retrieval and kept for the life of the process; restart the service to pick up edits on disk.

Scoring is purely lexical: a document scores one point per *distinct* query token that also occurs
in its title or content.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from pathlib import Path
from typing import (
    Iterable,
    List,
    Optional,
    Set,
)

from pydantic import (
    TypeAdapter,
    ValidationError,
)

from workshop_portal.config import settings
from workshop_portal.core.schema import (
    KnowledgeEntry,
    RetrievedSnippet,
)
from workshop_portal.errors import DataUnavailable

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_ENTRIES = TypeAdapter(List[KnowledgeEntry])


def tokenize(text: str) -> List[str]:
    """Lowercase, blank out everything but ``[a-z0-9]`` and whitespace, split."""
    return _NON_ALNUM.sub(" ", text.lower()).split()


def build_excerpt(content: str, terms: Set[str]) -> str:
    """First sentence of *content* mentioning any of *terms*, else the first sentence."""
    sentences = _SENTENCE_BOUNDARY.split(content)
    for sentence in sentences:
        if any(token in terms for token in tokenize(sentence)):
            return sentence.strip()
    return sentences[0].strip() if sentences else ""


class KnowledgeStore:
    """Lazily loaded, write-once collection of :class:`KnowledgeEntry`."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._entries: Optional[List[KnowledgeEntry]] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def entries(self) -> List[KnowledgeEntry]:
        """Return the cached collection, loading it on first use."""
        if self._entries is None:
            with self._lock:
                if self._entries is None:
                    self._entries = self._load()
        return self._entries

    def _load(self) -> List[KnowledgeEntry]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise DataUnavailable(
                "Knowledge base file is missing. "
                f"Populate {self.path} to enable retrieval."
            ) from exc
        except OSError as exc:
            raise DataUnavailable(
                "Knowledge base file could not be read.", details=str(exc)
            ) from exc

        try:
            entries = _ENTRIES.validate_python(json.loads(raw))
        except json.JSONDecodeError as exc:
            raise DataUnavailable(
                "Knowledge base file is not valid JSON.", details=str(exc)
            ) from exc
        except ValidationError as exc:
            raise DataUnavailable(
                "Knowledge base entries must be objects with id, title and content.",
                details=str(exc),
            ) from exc

        logger.info("Loaded %d knowledge base entries from %s", len(entries), self.path)
        return entries

    # ------------------------------------------------------------------ #
    # Retrieval
    # ------------------------------------------------------------------ #
    def retrieve(self, query: str, top_k: int) -> List[RetrievedSnippet]:
        """
        Return at most *top_k* snippets relevant to *query*.

        Parameters
        ----------
        query:
            Free text; tokenized the same way as the documents.
        top_k:
            Upper bound on the number of snippets.

        Returns
        -------
        list[RetrievedSnippet]
            Matching entries by descending score.  Ties keep collection order; entries that share
            no token with the query are never returned.

        Raises
        ------
        DataUnavailable
            If the backing file is missing or malformed.
        """
        terms = set(tokenize(query))
        if not terms:
            return []

        scored = [
            snippet for snippet in self._score_all(self.entries(), terms) if snippet.score > 0
        ]
        # sorted() is stable, so equal scores keep their collection order
        scored = sorted(scored, key=lambda snippet: snippet.score, reverse=True)
        logger.debug("Query %r matched %d entries", query, len(scored))
        return scored[: max(top_k, 0)]

    @staticmethod
    def _score_all(
        entries: Iterable[KnowledgeEntry], terms: Set[str]
    ) -> Iterable[RetrievedSnippet]:
        for entry in entries:
            entry_tokens = set(tokenize(f"{entry.title} {entry.content}"))
            score = len(terms & entry_tokens)
            yield RetrievedSnippet(
                **entry.model_dump(),
                score=score,
                excerpt=build_excerpt(entry.content, terms) if score else "",
            )


# ---------------------------------------------------------------------------
# Process-wide store
# ---------------------------------------------------------------------------
_store_lock = threading.Lock()
_default_store: Optional[KnowledgeStore] = None


def get_knowledge_store() -> KnowledgeStore:
    """Return the store backed by ``settings.KNOWLEDGE_BASE_PATH`` (created once)."""
    global _default_store  # pylint: disable=global-statement
    with _store_lock:
        if _default_store is None:
            _default_store = KnowledgeStore(settings.KNOWLEDGE_BASE_PATH)
        return _default_store
