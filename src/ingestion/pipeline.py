from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from src.ingestion.parsers import IndexedChunk, chunk_markdown, index_chunk

logger = logging.getLogger(__name__)

ROUTE_MAP_FILE = "route_map.md"


@dataclass(frozen=True)
class LoadedCorpus:
    files: List[str]
    chunks: List[IndexedChunk]


class IngestionPipeline:
    """Reads the markdown corpus from disk and produces indexed chunks."""

    def __init__(
        self,
        knowledge_dir: Path,
        route_map_renderer: Optional[Callable[[], str]] = None,
    ) -> None:
        self._knowledge_dir = Path(knowledge_dir)
        self._render_route_map = route_map_renderer

    def run(self) -> LoadedCorpus:
        if not self._knowledge_dir.is_dir():
            logger.warning("Knowledge directory %s not found. RAG context will be empty.", self._knowledge_dir)
            return LoadedCorpus(files=[], chunks=[])

        self._write_route_map()
        files = sorted(
            (entry for entry in self._knowledge_dir.iterdir() if entry.is_file() and entry.suffix.lower() == ".md"),
            key=lambda entry: entry.name,
        )

        chunks: List[IndexedChunk] = []
        for path in files:
            content = path.read_text(encoding="utf-8")
            chunks.extend(index_chunk(chunk) for chunk in chunk_markdown(path.name, content))

        logger.info("Knowledge base loaded (%d files, %d chunks)", len(files), len(chunks))
        return LoadedCorpus(files=[path.name for path in files], chunks=chunks)

    def _write_route_map(self) -> None:
        if self._render_route_map is None:
            return
        target = self._knowledge_dir / ROUTE_MAP_FILE
        generated = self._render_route_map()
        try:
            existing = target.read_text(encoding="utf-8") if target.exists() else None
            if existing != generated:
                target.write_text(generated, encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to generate %s: %s", ROUTE_MAP_FILE, exc)
