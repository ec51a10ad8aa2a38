"""
Document Chunking Service
==========================
Loads the markdown corpus and splits each document into overlapping,
sentence-aligned chunks for embedding.

Chunking rules:
- Text is split into sentences on runs of '.', '!' and '?'
- Sentences are accumulated greedily until the next one would push the
  buffer past max_chunk_size
- The next buffer is seeded with the trailing words of the previous chunk
- A single sentence longer than max_chunk_size is kept whole

Author: Context Agent
"""

import re
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Dict, Any, Tuple, Union

import yaml

from .models import Document, DocumentChunk

logger = logging.getLogger(__name__)

SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?]+")
FRONT_MATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

# Rough average characters per word, used to turn the overlap budget into words
CHARS_PER_WORD = 6


def count_words(text: str) -> int:
    return len(text.split())


def split_into_sentences(text: str) -> List[str]:
    return [s.strip() for s in SENTENCE_SPLIT_PATTERN.split(text) if s.strip()]


def generate_document_id(file_path: Union[str, Path]) -> str:
    return re.sub(r"[^a-z0-9]", "-", Path(file_path).stem.lower())


def parse_front_matter(raw: str) -> Tuple[Dict[str, Any], str]:
    """
    Split optional YAML front matter from the document body.

    Returns:
        (metadata dict, body text). Malformed front matter is ignored.
    """
    match = FRONT_MATTER_PATTERN.match(raw)
    if not match:
        return {}, raw

    try:
        data = yaml.safe_load(match.group(1) or "") or {}
    except yaml.YAMLError as e:
        logger.warning(f"⚠️ Ignoring malformed front matter: {e}")
        return {}, raw

    if not isinstance(data, dict):
        return {}, raw[match.end():]
    return data, raw[match.end():]


class DocumentChunker:
    """
    Chunks documents into sentence-aligned windows for vector storage
    """

    def __init__(
        self,
        max_chunk_size: int = 1000,
        overlap_size: int = 200,
    ):
        """
        Initialize document chunker

        Args:
            max_chunk_size: Maximum characters per chunk
            overlap_size: Overlap budget in characters, carried over as
                the last overlap_size // 6 words of the previous chunk
        """
        self.max_chunk_size = max_chunk_size
        self.overlap_size = overlap_size
        self.overlap_words = overlap_size // CHARS_PER_WORD

    # =========================================================================
    # CHUNKING
    # =========================================================================

    def split_text(self, text: str) -> List[str]:
        """
        Split text into chunk strings.

        Args:
            text: Full document text

        Returns:
            Ordered chunk contents
        """
        chunks: List[str] = []
        current = ""

        for sentence in split_into_sentences(text):
            candidate = f"{current} {sentence}" if current else sentence

            if len(candidate) > self.max_chunk_size and current:
                chunks.append(current.strip())
                current = self._seed_with_overlap(current, sentence)
            else:
                current = candidate

        if current.strip():
            chunks.append(current.strip())

        return chunks

    def _seed_with_overlap(self, previous: str, sentence: str) -> str:
        """
        Start a new buffer from the trailing words of the previous chunk.

        Overlap words are dropped from the front until the seeded buffer
        fits max_chunk_size. An oversized sentence is seeded alone.
        """
        if len(sentence) >= self.max_chunk_size or self.overlap_words <= 0:
            return sentence

        words = previous.split(" ")[-self.overlap_words:]
        while words:
            seeded = " ".join(words) + " " + sentence
            if len(seeded) <= self.max_chunk_size:
                return seeded
            words = words[1:]
        return sentence

    def chunk_document(self, document: Document) -> List[DocumentChunk]:
        """
        Build the chunk list for a document.

        total_chunks is filled in after every chunk has been created.
        """
        chunks = [
            DocumentChunk(
                id=f"{document.id}-chunk-{index}",
                content=content,
                source=document.source,
                chunk_index=index,
                word_count=count_words(content),
                title=document.title,
            )
            for index, content in enumerate(self.split_text(document.content))
        ]

        for chunk in chunks:
            chunk.total_chunks = len(chunks)

        return chunks

    # =========================================================================
    # CORPUS LOADING
    # =========================================================================

    def load_document(self, file_path: Union[str, Path]) -> Document:
        """Read one markdown file and chunk it"""
        path = Path(file_path)
        raw = path.read_text(encoding="utf-8")
        front_matter, content = parse_front_matter(raw)

        document = Document(
            id=generate_document_id(path),
            title=str(front_matter.get("title") or path.stem),
            content=content,
            source=str(path),
            word_count=count_words(content),
            last_modified=datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc),
        )
        document.chunks = self.chunk_document(document)
        return document

    def load_documents(self, docs_path: Union[str, Path]) -> List[Document]:
        """
        Load every markdown document in a directory.

        Raises:
            FileNotFoundError: If the corpus directory does not exist
            OSError: If a document cannot be read
        """
        directory = Path(docs_path)
        if not directory.is_dir():
            raise FileNotFoundError(f"Document corpus not found: {directory}")

        documents = [self.load_document(p) for p in sorted(directory.glob("*.md"))]

        total_chunks = sum(len(d.chunks) for d in documents)
        logger.info(f"📄 Loaded {len(documents)} documents ({total_chunks} chunks) from {directory}")
        return documents
