from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List

MIN_CHUNK_CHARS = 24
DEFAULT_SECTION = "Introduction"

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "has",
        "have", "how", "in", "is", "it", "of", "on", "or", "that", "the", "this",
        "to", "was", "were", "what", "when", "where", "which", "who", "why",
        "with", "you", "your",
    }
)

_HEADING = re.compile(r"^#{1,6}\s+(.+?)\s*$")
_MARKDOWN_PUNCTUATION = re.compile(r"[`*_>#()\[\]{}|~]")
_NON_TOKEN = re.compile(r"[^\w/.-]+", re.ASCII)


@dataclass(frozen=True)
class KnowledgeChunk:
    id: str
    source_file: str
    section: str
    text: str


@dataclass(frozen=True)
class IndexedChunk:
    chunk: KnowledgeChunk
    normalized_text: str
    token_counts: Dict[str, int]
    token_set: FrozenSet[str]


def tokenize(text: str) -> List[str]:
    normalized = _MARKDOWN_PUNCTUATION.sub(" ", text.lower())
    normalized = _NON_TOKEN.sub(" ", normalized)
    tokens = (token.strip(".-") for token in normalized.split())
    return [token for token in tokens if len(token) > 1 and token not in STOP_WORDS]


def chunk_markdown(file_name: str, content: str, min_chars: int = MIN_CHUNK_CHARS) -> List[KnowledgeChunk]:
    chunks: List[KnowledgeChunk] = []
    section = DEFAULT_SECTION
    buffer: List[str] = []

    def flush() -> None:
        text = "\n".join(buffer).strip()
        buffer.clear()
        if len(text) < min_chars:
            return
        chunks.append(
            KnowledgeChunk(
                id=f"{file_name}:{len(chunks)}",
                source_file=file_name,
                section=section,
                text=text,
            )
        )

    for line in content.splitlines():
        heading = _HEADING.match(line)
        if heading:
            flush()
            section = heading.group(1).strip()
            continue
        buffer.append(line)
    flush()

    whole = content.strip()
    if not chunks and whole:
        chunks.append(KnowledgeChunk(id=f"{file_name}:0", source_file=file_name, section="Document", text=whole))
    return chunks


def index_chunk(chunk: KnowledgeChunk) -> IndexedChunk:
    normalized_text = f"{chunk.section}\n{chunk.text}".lower()
    counts: Dict[str, int] = {}
    for token in tokenize(normalized_text):
        counts[token] = counts.get(token, 0) + 1
    return IndexedChunk(
        chunk=chunk,
        normalized_text=normalized_text,
        token_counts=counts,
        token_set=frozenset(counts),
    )
