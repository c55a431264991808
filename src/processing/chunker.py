from typing import Iterator, List, Optional, Tuple
from langchain_text_splitters import RecursiveCharacterTextSplitter
from src.core.models.documents import Chunk, Document
from src.config.settings import RagConfig
from src.utils.errors import ConfigurationError
from src.utils.logging import logger

DEFAULT_SEPARATORS = ["\n\n", "\n", " ", ""]


class Chunker:
    """Split documents into overlapping windows of at most ``chunk_size`` characters.

    Splitting prefers paragraph breaks, then line breaks, then spaces, and only
    falls back to single characters for text without any of those. Chunks are
    exact slices of the source text: ``chunk.text[chunk.overlap:]`` is the part
    not covered by earlier chunks, so joining those parts in sequence order
    gives back the document text.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: Optional[List[str]] = None
    ):
        if chunk_size < 1:
            raise ConfigurationError("chunk_size must be >= 1")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ConfigurationError("chunk_overlap must be in [0, chunk_size)")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = separators or list(DEFAULT_SEPARATORS)
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            separators=self.separators,
            keep_separator=True,
            strip_whitespace=False
        )

    @classmethod
    def from_config(cls, config: RagConfig) -> "Chunker":
        return cls(chunk_size=config.chunk_size, chunk_overlap=config.chunk_overlap)

    def split_text(self, text: str) -> List[Tuple[int, str]]:
        """Split text into ``(start_index, piece)`` pairs in source order."""
        if not text:
            return []

        pieces = self.text_splitter.split_text(text)
        starts = self._locate(text, pieces) if pieces else None
        if starts is None:
            logger.warning("Split pieces could not be aligned with the source text, using fixed windows")
            return self._fixed_windows(text)
        return list(zip(starts, pieces))

    def _candidates(
        self,
        text: str,
        piece: str,
        prev_start: Optional[int],
        covered_end: int,
        last: bool
    ) -> Iterator[int]:
        """Offsets where ``piece`` may start, earliest first.

        A piece starts after the previous piece's start, no earlier than
        ``chunk_overlap`` characters before the covered end and no later than
        the covered end. The last piece must end at the end of the text.
        """
        if prev_start is None:
            low = high = 0
        else:
            low = max(prev_start + 1, covered_end - self.chunk_overlap)
            high = covered_end
        if last:
            pos = len(text) - len(piece)
            if low <= pos <= high and text.startswith(piece, pos):
                yield pos
            return

        pos = text.find(piece, low, high + len(piece))
        while pos != -1:
            yield pos
            pos = text.find(piece, pos + 1, high + len(piece))

    def _locate(self, text: str, pieces: List[str]) -> Optional[List[int]]:
        """Resolve the start offset of every piece, or None when they cannot be aligned.

        The earliest placement is tried first, which resolves ordinary text
        in one pass. Repetitive text can match a piece at several offsets;
        the search then backtracks within a fixed budget of placements.
        """
        budget = 8 * len(pieces) + 256
        last = len(pieces) - 1
        stack = [self._candidates(text, pieces[0], None, 0, last == 0)]
        covered = [0]
        positions: List[int] = []
        dead = set()

        while stack:
            i = len(stack) - 1
            start = next(stack[-1], None)
            if start is None:
                stack.pop()
                covered_after = covered.pop()
                if positions:
                    dead.add((i - 1, positions.pop(), covered_after))
                continue

            budget -= 1
            if budget < 0:
                return None

            covered_end = max(covered[i], start + len(pieces[i]))
            if i == last:
                return positions + [start]
            if (i, start, covered_end) in dead:
                continue

            positions.append(start)
            covered.append(covered_end)
            stack.append(self._candidates(text, pieces[i + 1], start, covered_end, i + 1 == last))

        return None

    def _fixed_windows(self, text: str) -> List[Tuple[int, str]]:
        step = self.chunk_size - self.chunk_overlap
        windows = []
        start = 0
        while True:
            windows.append((start, text[start:start + self.chunk_size]))
            if start + self.chunk_size >= len(text):
                return windows
            start += step

    def split(self, document: Document) -> List[Chunk]:
        text = document.content or ""
        located = self.split_text(text)

        chunks = []
        covered_end = 0
        for sequence, (start, piece) in enumerate(located):
            chunks.append(Chunk(
                document_id=document.id,
                sequence=sequence,
                text=piece,
                start_index=start,
                # Measured against everything emitted so far, not only the previous chunk
                overlap=min(len(piece), max(0, covered_end - start)),
                metadata={
                    "filename": document.filename,
                    "filepath": document.path,
                    "category": document.category,
                    "source_modified": document.modified_time.isoformat(),
                }
            ))
            covered_end = max(covered_end, start + len(piece))

        logger.info(f"Split {document.id} into {len(chunks)} chunks")
        return chunks
