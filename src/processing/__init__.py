from .chunker import Chunker
from .document_source import LocalFolderSource
from .markdown_converter import MarkdownConverter
from .indexer import Indexer
from .scheduler import IndexScheduler

__all__ = ['Chunker', 'LocalFolderSource', 'MarkdownConverter', 'Indexer', 'IndexScheduler']
