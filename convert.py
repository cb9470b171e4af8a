#!/usr/bin/env python3
"""
Batch converter from a tree of Markdown documents to a mirrored tree of HTML
files, optionally wrapped in a header and a footer.
"""

import codecs
import os
import posixpath
import sys
import argparse
import logging
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Mapping, Optional, Sequence, Set, Tuple

import pathtool
from config import DEFAULT_ENCODING, load_config, load_resource, parse_extensions
from engine import validate_code_block_template, validate_extensions
from errors import (
    ArgumentError,
    ConversionError,
    DestinationCreateError,
    FileReadError,
    FileWriteError,
    ResourceUnavailableError,
)
from render import DocumentRenderer

log = logging.getLogger(__name__)

HTML_EXTENSION = '.html'
DEFAULT_DESTINATION = 'output'
OUTPUT_MODE = 0o644


@dataclass(frozen=True)
class ConversionJob:
    """Everything one run needs; built once and never modified."""

    source_root: str
    destination_root: str
    header: Optional[str] = None
    footer: Optional[str] = None
    header_path: Optional[str] = None
    footer_path: Optional[str] = None
    code_block_template: Optional[str] = None
    entity_overrides: Optional[Mapping[str, str]] = None
    allowed_extensions: FrozenSet[str] = frozenset()
    encoding: str = DEFAULT_ENCODING
    markdown_extensions: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.source_root:
            raise ArgumentError('A source directory is required')
        if not self.destination_root:
            raise ArgumentError('A destination directory is required')
        if self.code_block_template is not None:
            try:
                validate_code_block_template(self.code_block_template)
            except ValueError as e:
                raise ArgumentError(str(e)) from e
        object.__setattr__(self, 'allowed_extensions', parse_extensions(self.allowed_extensions))
        object.__setattr__(self, 'markdown_extensions', tuple(self.markdown_extensions))
        try:
            codecs.lookup(self.encoding)
        except (LookupError, TypeError) as e:
            raise ArgumentError(f"Unknown encoding {self.encoding!r}") from e
        try:
            validate_extensions(self.markdown_extensions)
        except ValueError as e:
            raise ArgumentError(str(e)) from e

    def accepts(self, extension: str) -> bool:
        """Return True if files with ``extension`` should be converted."""
        return not self.allowed_extensions or extension in self.allowed_extensions


class RunState(Enum):
    NOT_STARTED = 'not_started'
    COMPLETED = 'completed'


@dataclass
class ConversionReport:
    """Outcome of a run. Paths are slash-normalized strings."""

    converted: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class TreeConverter:
    """Walks a source tree and writes one HTML file per matching document."""

    def __init__(self, job: ConversionJob, renderer: DocumentRenderer = None,
                 logger: logging.Logger = None):
        self.job = job
        self.renderer = renderer or DocumentRenderer.from_job(job)
        self.log = logger or log
        self.state = RunState.NOT_STARTED
        self.header_text: Optional[str] = None
        self.footer_text: Optional[str] = None
        self._visited: Set[Path] = set()

    def convert(self) -> ConversionReport:
        """Convert every matching file below the source root.

        Fatal problems (missing source root, unreadable header or footer,
        uncreatable destination root) raise before any file is processed.
        Per-file problems are logged and recorded in the report.
        """
        source_root = Path(self.job.source_root).absolute()
        destination_root = Path(self.job.destination_root).absolute()

        if not source_root.is_dir():
            raise ResourceUnavailableError(f"Source directory not found: {source_root}")

        self.header_text = self._resolve_template(self.job.header, self.job.header_path)
        self.footer_text = self._resolve_template(self.job.footer, self.job.footer_path)

        try:
            destination_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DestinationCreateError(
                f"Cannot create destination directory {destination_root}: {e}") from e

        self.log.info("Converting %s -> %s", pathtool.normalize(str(source_root)),
                      pathtool.normalize(str(destination_root)))
        report = ConversionReport()
        self._visited = set()
        self._traverse(source_root, source_root, destination_root, report)
        self.state = RunState.COMPLETED

        self.log.info("Converted %d file(s), skipped %d, failed %d",
                      len(report.converted), len(report.skipped), len(report.failed))
        return report

    def _resolve_template(self, text: Optional[str], location: Optional[str]) -> Optional[str]:
        """Header/footer text is acquired once per run, never per file."""
        if text is not None:
            return text
        if location is None:
            return None
        self.log.debug("Loading template from %s", location)
        return load_resource(location, self.job.encoding)

    def _traverse(self, directory: Path, source_root: Path, destination_root: Path,
                  report: ConversionReport):
        # Symlinks may lead back to a directory already walked.
        real = directory.resolve()
        if real in self._visited:
            self.log.info("Skipping %s (already visited)", pathtool.normalize(str(directory)))
            return
        self._visited.add(real)

        try:
            children = sorted(directory.iterdir())
        except OSError as e:
            if directory == source_root:
                raise ResourceUnavailableError(f"Cannot list {directory}: {e}") from e
            self.log.warning("Cannot list directory %s: %s", pathtool.normalize(str(directory)), e)
            report.failed.append((pathtool.normalize(str(directory)), str(e)))
            return

        for child in children:
            if child.is_dir():
                # Output written inside the source tree is never read back.
                if child == destination_root:
                    continue
                self._traverse(child, source_root, destination_root, report)
            elif child.is_file():
                self.process_file(child, source_root, destination_root, report)

    def destination_for(self, source_file: Path, source_root: Path,
                        destination_root: Path) -> Tuple[str, str]:
        """Return the remapped candidate path and the extension of its base name."""
        candidate = pathtool.remap(str(source_file), str(source_root), str(destination_root))
        return candidate, pathtool.extension_of(posixpath.basename(candidate))

    def process_file(self, source_file: Path, source_root: Path, destination_root: Path,
                     report: ConversionReport):
        """Convert one file, recording the outcome in ``report``."""
        source_path = pathtool.normalize(str(source_file))
        candidate, extension = self.destination_for(source_file, source_root, destination_root)

        if not self.job.accepts(extension):
            self.log.info("Skipping %s (no processable extension '%s')", candidate, extension)
            report.skipped.append(source_path)
            return

        directory, name = posixpath.split(candidate)
        destination_file = posixpath.join(directory, pathtool.with_extension(name, HTML_EXTENSION))
        self.log.debug("process '%s' -> '%s'", source_path, destination_file)

        try:
            content = self._read(source_file)
            html = self.renderer.render(content, self.header_text, self.footer_text)
            self._write(Path(destination_file), html)
        except (FileReadError, FileWriteError) as e:
            self.log.warning("%s", e)
            report.failed.append((source_path, str(e)))
            return

        report.converted.append((source_path, destination_file))
        self.log.info("Converted %s", source_path)

    def _read(self, source_file: Path) -> str:
        try:
            with open(source_file, 'r', encoding=self.job.encoding, newline='') as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise FileReadError(f"Cannot read {pathtool.normalize(str(source_file))}: {e}") from e

    def _write(self, destination_file: Path, html: str):
        """Write ``html`` atomically; a failed write leaves nothing behind."""
        tmp_name = None
        try:
            destination_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=destination_file.parent,
                                            prefix=f".{destination_file.name}.", suffix='.tmp')
            with os.fdopen(fd, 'w', encoding=self.job.encoding, newline='') as f:
                f.write(html)
            os.chmod(tmp_name, OUTPUT_MODE)
            os.replace(tmp_name, destination_file)
        except (OSError, UnicodeEncodeError) as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise FileWriteError(
                f"Cannot write {pathtool.normalize(str(destination_file))}: {e}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Convert a directory tree of Markdown files to HTML')
    parser.add_argument('-s', '--source', help='The source directory for markdown files')
    parser.add_argument('-d', '--destination',
                        help=f'The destination directory for html files (default: {DEFAULT_DESTINATION})')
    parser.add_argument('-H', '--header', help='Path or URL of the html header file')
    parser.add_argument('-f', '--footer', help='Path or URL of the html footer file')
    parser.add_argument('-t', '--code-template',
                        help='Code block template with two %%s slots: language, then code')
    parser.add_argument('-e', '--extensions',
                        help='Comma separated list of file extensions to process (default: all files)')
    parser.add_argument('--encoding', help=f'Encoding of every file read and written (default: {DEFAULT_ENCODING})')
    parser.add_argument('-x', '--markdown-extension', action='append', dest='markdown_extensions',
                        help='Python-Markdown extension to enable (repeatable), e.g. "tables"')
    parser.add_argument('-c', '--config', help='JSON config file; command line flags take precedence')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log every processed file')
    return parser


def build_job(args: argparse.Namespace) -> ConversionJob:
    """Merge the config file (if any) with command line flags into a job."""
    settings = load_config(args.config) if args.config else {}

    def pick(flag_value, key, default=None):
        if flag_value is not None:
            return flag_value
        return settings.get(key, default)

    source = pick(args.source, 'source')
    if not source:
        raise ArgumentError('source argument is mandatory')
    source = pathtool.normalize(os.path.abspath(source))
    destination = pathtool.normalize(os.path.abspath(pick(args.destination, 'destination',
                                                          DEFAULT_DESTINATION)))

    return ConversionJob(
        source_root=source,
        destination_root=destination,
        header_path=pick(args.header, 'header'),
        footer_path=pick(args.footer, 'footer'),
        code_block_template=pick(args.code_template, 'code_template'),
        entity_overrides=settings.get('entities'),
        allowed_extensions=parse_extensions(pick(args.extensions, 'extensions')),
        encoding=pick(args.encoding, 'encoding', DEFAULT_ENCODING),
        markdown_extensions=tuple(pick(args.markdown_extensions, 'markdown_extensions', ())),
    )


def main(argv: Sequence[str] = None) -> int:
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else list(argv)
    if not argv:
        parser.print_help()
        return 2

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        job = build_job(args)
    except ArgumentError as e:
        log.warning("%s", e)
        parser.print_help()
        return 2
    except ConversionError as e:
        log.error("%s", e)
        return 1

    try:
        report = TreeConverter(job).convert()
    except ConversionError as e:
        log.error("%s", e)
        return 1

    print(f"\nConversion complete! {len(report.converted)} file(s) written to {job.destination_root}")
    if report.failed:
        print(f"{len(report.failed)} file(s) could not be converted, see warnings above")
    return 0


if __name__ == '__main__':
    sys.exit(main())
