"""
Configuration helpers: JSON config files, extension lists and header/footer
resources given as paths or URLs.
"""

import json
import os
from typing import Any, Dict, FrozenSet, Iterable, Optional, Union
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from errors import ArgumentError, ResourceUnavailableError

EXTENSIONS_SEPARATOR = ','
DEFAULT_ENCODING = 'utf-8'
REMOTE_TIMEOUT = 30

# Config keys whose values are resolved relative to the config file.
PATH_KEYS = ('source', 'destination', 'header', 'footer')

KNOWN_KEYS = PATH_KEYS + (
    'code_template',
    'extensions',
    'encoding',
    'entities',
    'markdown_extensions',
)

# Keys whose values must be JSON strings.
STRING_KEYS = PATH_KEYS + ('code_template', 'encoding')


def parse_extensions(value: Union[None, str, Iterable[str]]) -> FrozenSet[str]:
    """Turn ``"md, markdown"`` or ``["md", ".markdown"]`` into a set of bare extensions."""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = value.split(EXTENSIONS_SEPARATOR)
    elif not isinstance(value, (list, tuple, set, frozenset)):
        raise ArgumentError(f"Extensions must be a string or a list, not {type(value).__name__}")
    extensions = set()
    for item in value:
        if not isinstance(item, str):
            raise ArgumentError(f"Extension {item!r} is not a string")
        item = item.strip()
        if item.startswith('.'):
            item = item[1:]
        if item:
            extensions.add(item)
    return frozenset(extensions)


def _is_remote(location: str) -> bool:
    return urlparse(location).scheme in ('http', 'https')


def _resolve_path(value: str, base_dir: str) -> str:
    """Resolve ``value`` into an absolute path relative to ``base_dir``."""
    expanded = os.path.expanduser(value)
    if os.path.isabs(expanded) or _is_remote(expanded) or expanded.startswith('file:'):
        return expanded
    return os.path.abspath(os.path.join(base_dir, expanded))


def load_config(path: str) -> Dict[str, Any]:
    """Load a JSON config file and normalize any filesystem paths."""
    try:
        with open(path, 'r', encoding='utf-8') as config_file:
            data = json.load(config_file)
    except OSError as e:
        raise ResourceUnavailableError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ArgumentError(f"Config file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ArgumentError(f"Config file {path} must contain a JSON object")

    unknown = sorted(set(data) - set(KNOWN_KEYS))
    if unknown:
        raise ArgumentError(f"Unknown config keys in {path}: {', '.join(unknown)}")

    for key in STRING_KEYS:
        if data.get(key) is not None and not isinstance(data[key], str):
            raise ArgumentError(f"'{key}' in {path} must be a string")

    if 'extensions' in data:
        parse_extensions(data['extensions'])

    markdown_extensions = data.get('markdown_extensions')
    if markdown_extensions is not None:
        if (not isinstance(markdown_extensions, list)
                or not all(isinstance(name, str) for name in markdown_extensions)):
            raise ArgumentError("'markdown_extensions' must be a list of extension names")

    entities = data.get('entities')
    if entities is not None:
        if (not isinstance(entities, dict)
                or any(len(key) != 1 or not isinstance(value, str)
                       for key, value in entities.items())):
            raise ArgumentError("'entities' must map single characters to replacement strings")

    base_dir = os.path.dirname(os.path.abspath(path))
    resolved: Dict[str, Any] = {}
    for key, value in data.items():
        if key in PATH_KEYS and isinstance(value, str):
            resolved[key] = _resolve_path(value, base_dir)
        else:
            resolved[key] = value
    return resolved


def load_resource(location: str, encoding: Optional[str] = DEFAULT_ENCODING) -> str:
    """Return the text behind a filesystem path, a ``file:`` URL or an ``http(s)`` URL."""
    encoding = encoding or DEFAULT_ENCODING
    if _is_remote(location):
        try:
            response = requests.get(location, timeout=REMOTE_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ResourceUnavailableError(f"Cannot fetch {location}: {e}") from e
        response.encoding = encoding
        return response.text

    parsed = urlparse(location)
    if parsed.scheme == 'file':
        location = url2pathname(parsed.path)

    try:
        with open(location, 'r', encoding=encoding, newline='') as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ResourceUnavailableError(f"Cannot read {location}: {e}") from e
