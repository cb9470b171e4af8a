"""
Markdown engine built on Python-Markdown.

Two extensions are layered on top of the stock converter:

* ``CodeBlockTemplateExtension`` renders code blocks (indented, or fenced when
  ``fenced_code`` is enabled) whose first line is a ``lang:<name>`` marker
  through a two-slot ``%s`` template, language first and escaped code body
  second.
* ``EntityTableExtension`` escapes document text through a custom
  character -> replacement table. A custom table replaces the default one
  instead of extending it.
"""

import re
import xml.etree.ElementTree as etree
from typing import Dict, Iterable, List, Mapping, Optional

import markdown
from markdown import util
from markdown.extensions import Extension
from markdown.postprocessors import Postprocessor
from markdown.preprocessors import Preprocessor
from markdown.treeprocessors import Treeprocessor


DEFAULT_ENTITIES: Dict[str, str] = {
    '&': '&amp;',
    '<': '&lt;',
    '>': '&gt;',
}

LANG_MARKER_RE = re.compile(r'^lang:(\S+)[ \t]*$')

FENCED_MARKER_RE = re.compile(r'''
(?P<fence>^(?:~{3,}|`{3,}))[^\n]*\n    # opening fence and info string
lang:(?P<lang>\S+)[ \t]*\n             # marker on the first line
(?P<code>.*?)(?<=\n)
(?P=fence)[ ]*$                        # closing fence
''', re.MULTILINE | re.DOTALL | re.VERBOSE)


class FencedCodeTemplatePreprocessor(Preprocessor):
    """Render marked fenced blocks before ``fenced_code`` stashes them."""

    def __init__(self, md, extension: 'CodeBlockTemplateExtension'):
        super().__init__(md)
        self.extension = extension

    def run(self, lines):
        if 'fenced_code_block' not in self.md.preprocessors:
            return lines
        text = '\n'.join(lines)
        text = FENCED_MARKER_RE.sub(self._replace, text)
        return text.split('\n')

    def _replace(self, match) -> str:
        code = util.code_escape(match.group('code').rstrip('\n'))
        placeholder = self.extension.store(self.extension.render(match.group('lang'), code))
        return f'\n{placeholder}\n'


class CodeBlockTemplateProcessor(Treeprocessor):
    """Replace marked indented code blocks with the rendered template."""

    def __init__(self, md, extension: 'CodeBlockTemplateExtension'):
        super().__init__(md)
        self.extension = extension

    def run(self, root):
        for parent in list(root.iter()):
            for index, child in enumerate(list(parent)):
                if not self._is_code_block(child):
                    continue
                first_line, _, body = (child[0].text or '').partition('\n')
                match = LANG_MARKER_RE.match(first_line)
                if not match:
                    continue

                placeholder = etree.Element('p')
                placeholder.text = self.extension.store(
                    self.extension.render(match.group(1), body.rstrip('\n')))
                placeholder.tail = child.tail
                parent.remove(child)
                parent.insert(index, placeholder)

    @staticmethod
    def _is_code_block(element) -> bool:
        return (
            element.tag == 'pre'
            and len(element) == 1
            and element[0].tag == 'code'
            and len(element[0]) == 0
        )


class CodeBlockUnwrapPostprocessor(Postprocessor):
    """Drop the <p> around rendered templates, whatever tag they start with."""

    def __init__(self, md, extension: 'CodeBlockTemplateExtension'):
        super().__init__(md)
        self.extension = extension

    def run(self, text):
        for placeholder in self.extension.placeholders:
            text = text.replace(f'<p>{placeholder}</p>', placeholder)
        return text


class CodeBlockTemplateExtension(Extension):
    """Render ``lang:<name>`` code blocks through a format template."""

    def __init__(self, **kwargs):
        self.config = {
            'template': ['', 'Format string with two %s slots: language, then code'],
        }
        super().__init__(**kwargs)
        self.md = None
        self.placeholders: List[str] = []

    def render(self, lang: str, code: str) -> str:
        return self.getConfig('template') % (lang, code)

    def store(self, html: str) -> str:
        placeholder = self.md.htmlStash.store(html)
        self.placeholders.append(placeholder)
        return placeholder

    def reset(self):
        self.placeholders = []

    def extendMarkdown(self, md):
        self.md = md
        md.registerExtension(self)
        # Ahead of fenced_code_block (25).
        md.preprocessors.register(FencedCodeTemplatePreprocessor(md, self), 'fenced_code_template', 26)
        # Ahead of codehilite (30) so marked blocks never get highlighted.
        md.treeprocessors.register(CodeBlockTemplateProcessor(md, self), 'code_block_template', 35)
        # Ahead of raw_html (30), which swaps placeholders for the stored HTML.
        md.postprocessors.register(CodeBlockUnwrapPostprocessor(md, self), 'code_block_unwrap', 31)


class EntityTablePostprocessor(Postprocessor):
    """Re-escape text between tags with a custom entity table."""

    TAG_RE = re.compile(r'(<[^>]*>)')

    def __init__(self, md, entities: Mapping[str, str]):
        super().__init__(md)
        self.entities = dict(entities)

    def run(self, text):
        parts = self.TAG_RE.split(text)
        # Even indexes hold text, odd indexes hold the captured tags.
        for i in range(0, len(parts), 2):
            parts[i] = self._escape(self._unescape(parts[i]))
        return ''.join(parts)

    @staticmethod
    def _unescape(text: str) -> str:
        text = text.replace('&lt;', '<').replace('&gt;', '>')
        return text.replace('&amp;', '&')

    def _escape(self, text: str) -> str:
        return ''.join(self.entities.get(char, char) for char in text)


class EntityTableExtension(Extension):
    """Escape document text with a caller supplied entity table."""

    def __init__(self, **kwargs):
        self.config = {
            'entities': [dict(DEFAULT_ENTITIES), 'Mapping of character to replacement'],
        }
        super().__init__(**kwargs)

    def extendMarkdown(self, md):
        # Before raw_html (30) restores stashed markup into the text.
        md.postprocessors.register(
            EntityTablePostprocessor(md, self.getConfig('entities')),
            'entity_table',
            35,
        )


def validate_code_block_template(template: str) -> None:
    """Raise ``ValueError`` unless ``template`` takes exactly two ``%s`` values."""
    try:
        template % ('', '')
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid code block template {template!r}: {e}") from e


def validate_extensions(extensions: Iterable) -> None:
    """Raise ``ValueError`` unless Python-Markdown can load every extension."""
    try:
        markdown.Markdown(extensions=list(extensions))
    except (ImportError, AttributeError, TypeError) as e:
        raise ValueError(f"Invalid Markdown extension: {e}") from e


class MarkdownEngine:
    """Convert Markdown text to HTML.

    Conversion is total: any input text produces some HTML. The output always
    ends with a single newline.
    """

    def __init__(
        self,
        code_block_template: Optional[str] = None,
        entities: Optional[Mapping[str, str]] = None,
        extensions: Iterable = (),
    ):
        self.code_block_template = code_block_template
        self.entities = dict(entities) if entities is not None else None

        all_extensions = list(extensions)
        if code_block_template is not None:
            validate_code_block_template(code_block_template)
            all_extensions.append(CodeBlockTemplateExtension(template=code_block_template))
        if self.entities is not None:
            all_extensions.append(EntityTableExtension(entities=self.entities))

        self.md = markdown.Markdown(extensions=all_extensions)

    def convert(self, text: str) -> str:
        """Render ``text`` and return the HTML."""
        # Reset markdown instance to clear any state
        self.md.reset()
        return self.md.convert(text) + '\n'
