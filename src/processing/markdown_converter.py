# src/processing/markdown_converter.py
import re
import shutil
import subprocess
from src.utils.errors import SourceUnavailable
from src.utils.logging import logger

ADMONITIONS = ("note", "tip", "important", "warning", "caution", "danger", "seealso")


class MarkdownConverter:
    """Convert reStructuredText documents to Markdown through pandoc."""

    def __init__(self, pandoc_path: str = None, timeout: float = 60.0):
        self.pandoc_path = pandoc_path or shutil.which("pandoc") or "pandoc"
        self.timeout = timeout

    def convert_rst_to_markdown(self, content: str) -> str:
        """Convert RST content to markdown."""
        if not content.strip():
            return ""
        try:
            result = subprocess.run(
                [self.pandoc_path, '-f', 'rst', '-t', 'markdown', '--wrap=none'],
                input=content.encode('utf-8'),
                check=True,
                capture_output=True,
                timeout=self.timeout
            )
        except FileNotFoundError:
            raise SourceUnavailable("pandoc is not installed; cannot convert reStructuredText")
        except subprocess.CalledProcessError as e:
            logger.error(f"Pandoc conversion failed: {e.stderr.decode(errors='replace')}")
            raise SourceUnavailable(f"Pandoc conversion failed with exit code {e.returncode}")
        except subprocess.TimeoutExpired:
            raise SourceUnavailable("Pandoc conversion timed out")

        return self.clean_markdown(result.stdout.decode('utf-8', errors='replace'))

    def clean_markdown(self, content: str) -> str:
        """Clean up pandoc output.

        Args:
            content (str): Raw markdown content to clean

        Returns:
            str: Cleaned markdown content
        """
        # Flatten admonition divs, e.g. ":::: note\n::: title\nNote\n:::\n\nbody\n::::"
        for name in ADMONITIONS:
            pattern = rf':{{3,}} {name}\n(?:::: title\n[^\n]*\n:::\n\n)?(.*?)\n:{{3,}}'
            content = re.sub(
                pattern,
                lambda m, label=name.capitalize(): f"{label}: {m.group(1).strip()}",
                content,
                flags=re.DOTALL
            )

        # Drop RST role annotations left behind by pandoc
        content = re.sub(r'\{\.interpreted-text\s+role="[^"]+"\}', '', content)

        # Remove extra blank lines
        content = re.sub(r'\n{3,}', '\n\n', content)

        return content.strip()
