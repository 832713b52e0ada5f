# Document store consulted before dispatch.
# The agent only needs two things from it: "are there any documents" and
# "best-matching document text for a query, or None".

from __future__ import annotations

import asyncio
import logging
import math
import re
from collections import Counter
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"\w+", re.UNICODE)
DOCUMENT_SUFFIXES = {".txt", ".md"}


@runtime_checkable
class DocumentStore(Protocol):
    async def has_documents(self) -> bool: ...

    async def search_similar(self, query: str) -> Optional[str]: ...


def _vectorize(text: str) -> Counter:
    return Counter(t.lower() for t in _TOKEN.findall(text))


def _cosine(a: Counter, b: Counter) -> float:
    if not a or not b:
        return 0.0
    dot = sum(count * b[token] for token, count in a.items() if token in b)
    if not dot:
        return 0.0
    norm_a = math.sqrt(sum(v * v for v in a.values()))
    norm_b = math.sqrt(sum(v * v for v in b.values()))
    return dot / (norm_a * norm_b)


class InMemoryDocumentStore:
    """Term-frequency vectors compared by cosine similarity."""

    def __init__(self, *, min_score: float = 0.2) -> None:
        self._docs: Dict[str, str] = {}
        self._vectors: Dict[str, Counter] = {}
        self._lock = asyncio.Lock()
        self._min_score = min_score

    async def add(self, doc_id: str, text: str) -> None:
        async with self._lock:
            self._docs[doc_id] = text
            self._vectors[doc_id] = _vectorize(text)
        logger.info("document %s added", doc_id)

    async def remove(self, doc_id: str) -> bool:
        async with self._lock:
            self._vectors.pop(doc_id, None)
            return self._docs.pop(doc_id, None) is not None

    async def count(self) -> int:
        return len(self._docs)

    async def has_documents(self) -> bool:
        return bool(self._docs)

    async def search_similar(self, query: str) -> Optional[str]:
        q = _vectorize(query)
        async with self._lock:
            scored = [(_cosine(q, vec), doc_id) for doc_id, vec in self._vectors.items()]
        if not scored:
            return None
        score, doc_id = max(scored)
        if score < self._min_score:
            return None
        logger.debug("document %s matched with score %.3f", doc_id, score)
        return self._docs[doc_id].strip()

    async def load_directory(self, directory: str | Path) -> int:
        root = Path(directory)
        if not root.is_dir():
            logger.warning("documents directory %s does not exist", root)
            return 0
        loaded = 0
        for path in sorted(root.rglob("*")):
            if path.suffix.lower() not in DOCUMENT_SUFFIXES or not path.is_file():
                continue
            text = path.read_text(encoding="utf-8", errors="replace").strip()
            if text:
                await self.add(str(path.relative_to(root)), text)
                loaded += 1
        return loaded
