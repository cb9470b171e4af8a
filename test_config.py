#!/usr/bin/env python3
"""
Tests for configuration loading and resource acquisition.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from config import load_config, load_resource, parse_extensions
from errors import ArgumentError, ResourceUnavailableError


class TestParseExtensions(unittest.TestCase):

    def test_comma_separated(self):
        self.assertEqual(parse_extensions('markdown,text'), frozenset({'markdown', 'text'}))

    def test_whitespace_dots_and_empty_items(self):
        self.assertEqual(parse_extensions(' md, .markdown ,,'), frozenset({'md', 'markdown'}))

    def test_list(self):
        self.assertEqual(parse_extensions(['md', '.txt']), frozenset({'md', 'txt'}))

    def test_empty_means_all(self):
        self.assertEqual(parse_extensions(None), frozenset())
        self.assertEqual(parse_extensions(''), frozenset())

    def test_non_string_items(self):
        with self.assertRaises(ArgumentError):
            parse_extensions([1])
        with self.assertRaises(ArgumentError):
            parse_extensions(5)


class TestLoadConfig(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.test_path = Path(self.test_dir)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def write_config(self, data):
        path = self.test_path / 'config.json'
        path.write_text(data if isinstance(data, str) else json.dumps(data))
        return str(path)

    def test_relative_paths_resolve_against_config_dir(self):
        path = self.write_config({
            'source': 'docs',
            'header': 'https://example.com/header.html',
            'code_template': '<pre lang="%s">%s</pre>',
        })

        config = load_config(path)

        self.assertEqual(config['source'], str(self.test_path / 'docs'))
        self.assertEqual(config['header'], 'https://example.com/header.html')
        self.assertEqual(config['code_template'], '<pre lang="%s">%s</pre>')

    def test_unknown_key(self):
        with self.assertRaises(ArgumentError):
            load_config(self.write_config({'sorce': 'docs'}))

    def test_invalid_json(self):
        with self.assertRaises(ArgumentError):
            load_config(self.write_config('{not json'))

    def test_not_an_object(self):
        with self.assertRaises(ArgumentError):
            load_config(self.write_config(['docs']))

    def test_bad_entities(self):
        with self.assertRaises(ArgumentError):
            load_config(self.write_config({'entities': {'ab': 'x'}}))

    def test_extensions_must_be_strings(self):
        with self.assertRaises(ArgumentError):
            load_config(self.write_config({'extensions': [1]}))

    def test_entity_values_must_be_strings(self):
        with self.assertRaises(ArgumentError):
            load_config(self.write_config({'entities': {'a': 1}}))

    def test_markdown_extensions_must_be_a_list_of_names(self):
        with self.assertRaises(ArgumentError):
            load_config(self.write_config({'markdown_extensions': 'tables'}))
        with self.assertRaises(ArgumentError):
            load_config(self.write_config({'markdown_extensions': [None]}))

    def test_string_keys(self):
        with self.assertRaises(ArgumentError):
            load_config(self.write_config({'source': 42}))
        with self.assertRaises(ArgumentError):
            load_config(self.write_config({'encoding': ['utf-8']}))

    def test_missing_file(self):
        with self.assertRaises(ResourceUnavailableError):
            load_config(str(self.test_path / 'missing.json'))


class TestLoadResource(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.test_path = Path(self.test_dir)

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_line_endings_are_preserved(self):
        """Normalization belongs to the renderer, not the loader."""
        path = self.test_path / 'header-win.html'
        path.write_bytes(b'<html>\r\n')
        self.assertEqual(load_resource(str(path)), '<html>\r\n')

    def test_encoding(self):
        path = self.test_path / 'latin.html'
        path.write_bytes('<p>ò</p>'.encode('latin-1'))
        self.assertEqual(load_resource(str(path), 'latin-1'), '<p>ò</p>')
        with self.assertRaises(ResourceUnavailableError):
            load_resource(str(path), 'utf-8')

    def test_remote_http_error(self):
        import requests

        response = mock.Mock()
        response.raise_for_status.side_effect = requests.HTTPError('404 Client Error')
        with mock.patch('config.requests.get', return_value=response):
            with self.assertRaises(ResourceUnavailableError):
                load_resource('https://example.com/missing.html')


if __name__ == '__main__':
    unittest.main()
