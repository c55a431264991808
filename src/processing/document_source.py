import asyncio
import io
import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
import pypdf
from src.core.models.documents import Document
from src.processing.markdown_converter import MarkdownConverter
from src.utils.errors import SourceUnavailable
from src.utils.logging import logger

EXTRA_MIME_TYPES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".rst": "text/x-rst",
    ".txt": "text/plain",
    ".pdf": "application/pdf",
}


class LocalFolderSource:
    """Document source backed by a folder on the local filesystem.

    Document ids are POSIX paths relative to the root, so they stay stable
    across runs and machines.
    """

    def __init__(
        self,
        root: str,
        extensions: Optional[List[str]] = None,
        markdown_converter: Optional[MarkdownConverter] = None
    ):
        self.root = Path(root)
        self.extensions = [e.lower() for e in extensions] if extensions else list(EXTRA_MIME_TYPES)
        self.markdown_converter = markdown_converter or MarkdownConverter()

    def _guess_mime_type(self, path: Path) -> str:
        suffix = path.suffix.lower()
        if suffix in EXTRA_MIME_TYPES:
            return EXTRA_MIME_TYPES[suffix]
        mime_type, _ = mimetypes.guess_type(path.name)
        return mime_type or "application/octet-stream"

    def _scan(self) -> List[Document]:
        if not self.root.is_dir():
            raise SourceUnavailable(f"Source folder {self.root} does not exist")

        documents = []
        for file_path in self.root.rglob("*"):
            if not file_path.is_file() or file_path.suffix.lower() not in self.extensions:
                continue
            rel_path = file_path.relative_to(self.root)
            stat = file_path.stat()
            documents.append(Document(
                id=rel_path.as_posix(),
                path=rel_path.as_posix(),
                category="" if rel_path.parent == Path(".") else rel_path.parent.as_posix(),
                mime_type=self._guess_mime_type(file_path),
                modified_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            ))

        documents.sort(key=lambda d: d.id)
        return documents

    async def enumerate(self) -> List[Document]:
        try:
            documents = await asyncio.to_thread(self._scan)
        except SourceUnavailable:
            raise
        except OSError as e:
            raise SourceUnavailable(f"Could not enumerate {self.root}: {e}")
        logger.info(f"Found {len(documents)} documents in {self.root}")
        return documents

    def _read(self, document: Document) -> str:
        file_path = self.root / document.path
        if document.mime_type == "application/pdf":
            return self._extract_pdf_text(file_path.read_bytes())

        text = file_path.read_bytes().decode("utf-8", errors="replace")
        if document.mime_type == "text/x-rst":
            return self.markdown_converter.convert_rst_to_markdown(text)
        return text

    @staticmethod
    def _extract_pdf_text(data: bytes) -> str:
        """Extract all page text; pages without a text layer are skipped."""
        reader = pypdf.PdfReader(io.BytesIO(data))
        parts = []
        for page in reader.pages:
            page_text = page.extract_text() or ""
            if page_text.strip():
                parts.append(page_text)
        return "\n\n".join(parts)

    async def download(self, document: Document) -> Document:
        """Return a copy of ``document`` with its text content loaded."""
        try:
            content = await asyncio.to_thread(self._read, document)
        except SourceUnavailable as e:
            e.document_id = document.id
            raise
        except Exception as e:
            raise SourceUnavailable(f"Could not read {document.id}: {e}", document_id=document.id)
        return document.model_copy(update={"content": content})
