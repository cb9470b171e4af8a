"""
Path helpers for mapping a source tree onto a destination tree.
"""

import posixpath
from typing import Optional

from errors import NullInputError, PathOutsideRootError


def normalize(path: Optional[str]) -> str:
    """Replace every backslash with a forward slash."""
    if path is None:
        raise NullInputError('Cannot normalize a missing path')
    return str(path).replace('\\', '/')


def extension_of(filename: str) -> str:
    """Return the text after the last dot, or '' when there is no dot."""
    last_dot = filename.rfind('.')
    if last_dot == -1:
        return ''
    return filename[last_dot + 1:]


def with_extension(filename: str, new_extension: str) -> str:
    """Swap the extension of ``filename``.

    ``new_extension`` carries its own leading dot (``'.html'``). A name
    without any dot gets the extension appended.
    """
    last_dot = filename.rfind('.')
    if last_dot == -1:
        return filename + new_extension
    return filename[:last_dot] + new_extension


def remap(path: str, source_root: str, destination_root: str) -> str:
    """Map ``path`` from under ``source_root`` to the same place under ``destination_root``."""
    path = posixpath.normpath(normalize(path))
    source_root = posixpath.normpath(normalize(source_root))
    destination_root = posixpath.normpath(normalize(destination_root))

    relative = posixpath.relpath(path, source_root)
    if relative == '..' or relative.startswith('../') or posixpath.isabs(relative):
        raise PathOutsideRootError(f"'{path}' is not under source root '{source_root}'")
    if relative == '.':
        return destination_root
    return posixpath.join(destination_root, relative)
