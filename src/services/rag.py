from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Dict, List

from src.ingestion.parsers import IndexedChunk, tokenize
from src.ingestion.pipeline import IngestionPipeline, LoadedCorpus

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
MIN_TOP_K = 3
MAX_TOP_K = 6
QUERY_IN_TEXT_BONUS = 1.2
QUERY_IN_SECTION_BONUS = 0.9
ROUTE_TOKEN_BONUS = 0.75


@dataclass(frozen=True)
class RetrievedChunk:
    id: str
    source_file: str
    section: str
    text: str
    score: float

    @property
    def source_label(self) -> str:
        return f"{self.source_file} > {self.section}"


class KnowledgeRetriever:
    """TF-IDF style ranking over heading-delimited knowledge chunks."""

    def __init__(self, pipeline: IngestionPipeline) -> None:
        self._pipeline = pipeline
        self._chunks: List[IndexedChunk] = []
        self._loaded = False
        self._lock = threading.Lock()

    def reload(self) -> LoadedCorpus:
        corpus = self._pipeline.run()
        with self._lock:
            self._chunks = list(corpus.chunks)
            self._loaded = True
        return corpus

    def search(self, question: str, top_k: int = DEFAULT_TOP_K) -> List[RetrievedChunk]:
        chunks = self._snapshot()
        if not chunks:
            return []

        effective_k = min(MAX_TOP_K, max(MIN_TOP_K, top_k))
        normalized_question = question.strip().lower()
        query_tokens = tokenize(normalized_question)
        if not query_tokens:
            return self._unscored(chunks, effective_k)

        doc_frequency: Dict[str, int] = {
            token: sum(1 for chunk in chunks if token in chunk.token_set) for token in set(query_tokens)
        }
        total = len(chunks)
        route_tokens = [token for token in query_tokens if token.startswith("/")]

        scored = []
        for position, chunk in enumerate(chunks):
            score = 0.0
            for token in query_tokens:
                tf = chunk.token_counts.get(token, 0)
                if tf == 0:
                    continue
                idf = math.log((total + 1) / (doc_frequency[token] + 1)) + 1.0
                score += (1.0 + math.log(tf)) * idf
            if normalized_question and normalized_question in chunk.normalized_text:
                score += QUERY_IN_TEXT_BONUS
            if normalized_question and normalized_question in chunk.chunk.section.lower():
                score += QUERY_IN_SECTION_BONUS
            if any(token in chunk.normalized_text for token in route_tokens):
                score += ROUTE_TOKEN_BONUS
            if score > 0:
                scored.append((score, position, chunk))

        if not scored:
            return self._unscored(chunks, effective_k)

        scored.sort(key=lambda entry: (-entry[0], entry[1]))
        return [self._project(chunk, score) for score, _, chunk in scored[:effective_k]]

    def _snapshot(self) -> List[IndexedChunk]:
        if not self._loaded:
            self.reload()
        with self._lock:
            return self._chunks

    @staticmethod
    def _unscored(chunks: List[IndexedChunk], limit: int) -> List[RetrievedChunk]:
        return [KnowledgeRetriever._project(chunk, 0.0) for chunk in chunks[:limit]]

    @staticmethod
    def _project(indexed: IndexedChunk, score: float) -> RetrievedChunk:
        chunk = indexed.chunk
        return RetrievedChunk(
            id=chunk.id,
            source_file=chunk.source_file,
            section=chunk.section,
            text=chunk.text,
            score=score,
        )


def format_knowledge_block(chunks: List[RetrievedChunk]) -> str:
    if not chunks:
        return "No knowledge chunks retrieved."
    return "\n\n".join(
        f"[K{index}] Source: {chunk.source_label}\n{chunk.text}" for index, chunk in enumerate(chunks, start=1)
    )
