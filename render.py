"""
Compose header, rendered Markdown and footer into one HTML document.
"""

from typing import Optional

from engine import MarkdownEngine


def normalize_eol(text: Optional[str]) -> str:
    """Convert CRLF and lone CR line endings to LF."""
    if text is None:
        return ''
    return text.replace('\r\n', '\n').replace('\r', '\n')


class DocumentRenderer:
    """Wraps Markdown engine output in a header and a footer."""

    def __init__(self, engine: MarkdownEngine = None):
        self.engine = engine or MarkdownEngine()

    @classmethod
    def from_job(cls, job) -> 'DocumentRenderer':
        """Build a renderer configured from a ``ConversionJob``."""
        return cls(MarkdownEngine(
            code_block_template=job.code_block_template,
            entities=job.entity_overrides,
            extensions=job.markdown_extensions,
        ))

    def render(self, content: str, header: Optional[str] = None, footer: Optional[str] = None) -> str:
        """Render ``content`` between ``header`` and ``footer``.

        Only the header and footer are EOL-normalized. The Markdown content
        and the engine output are left as they are.
        """
        return normalize_eol(header) + self.engine.convert(content) + normalize_eol(footer)
