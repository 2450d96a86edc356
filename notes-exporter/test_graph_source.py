#!/usr/bin/env python3
"""
Unit tests for the OneNote source.
Tests retry, paged collections and the notebook/section/page mapping.
"""

import os
import unittest
from unittest.mock import Mock, patch

import requests

from graph_source import GraphClient, OneNoteSource, GRAPH_BASE, TOKEN_ENV_VAR
from notes_source import NotesSourceError


def ok(payload=None, text=""):
    response = Mock()
    response.status_code = 200
    response.json.return_value = payload if payload is not None else {}
    response.text = text
    return response


def status(code, text="error", headers=None):
    response = Mock()
    response.status_code = code
    response.text = text
    response.headers = headers or {}
    return response


class TestGraphClient(unittest.TestCase):
    """Tests for GraphClient retry and pagination."""

    def test_init_default_max_retries(self):
        self.assertEqual(GraphClient().max_retries, 10)

    @patch('graph_source.requests.get')
    def test_get_success_sends_token(self, mock_get):
        mock_get.return_value = ok()

        result = GraphClient(access_token='test-token').get("https://example.com/api", "test")

        self.assertEqual(result.status_code, 200)
        headers = mock_get.call_args[1]['headers']
        self.assertEqual(headers['Authorization'], 'Bearer test-token')

    @patch('graph_source.requests.get')
    def test_relative_url_gets_graph_base(self, mock_get):
        mock_get.return_value = ok()
        GraphClient().get("/me")
        self.assertEqual(mock_get.call_args[0][0], f"{GRAPH_BASE}/me")

    @patch('graph_source.requests.get')
    @patch('graph_source.time.sleep')
    def test_get_retries_on_500(self, mock_sleep, mock_get):
        mock_get.side_effect = [status(500), status(503), ok()]

        result = GraphClient(max_retries=5).get("https://example.com/api", "test")

        self.assertEqual(result.status_code, 200)
        self.assertEqual(mock_get.call_count, 3)

    @patch('graph_source.requests.get')
    @patch('graph_source.time.sleep')
    def test_get_handles_429_with_retry_after(self, mock_sleep, mock_get):
        mock_get.side_effect = [status(429, headers={'Retry-After': '5'}), ok()]

        result = GraphClient(max_retries=5).get("https://example.com/api", "test")

        self.assertEqual(result.status_code, 200)
        mock_sleep.assert_called_with(5)

    @patch('graph_source.requests.get')
    @patch('graph_source.time.sleep')
    def test_get_gives_up_after_repeated_timeouts(self, mock_sleep, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout()

        with self.assertRaises(NotesSourceError) as ctx:
            GraphClient(max_retries=3).get("https://example.com/api", "test")

        self.assertEqual(mock_get.call_count, 3)
        self.assertIn("Timeout", str(ctx.exception))

    @patch('graph_source.requests.get')
    def test_client_error_raises_without_retry(self, mock_get):
        mock_get.return_value = status(404, "Not Found")

        with self.assertRaises(NotesSourceError) as ctx:
            GraphClient().get("https://example.com/api", "page content")

        self.assertEqual(mock_get.call_count, 1)
        self.assertIn("404", str(ctx.exception))
        self.assertIn("page content", str(ctx.exception))

    @patch('graph_source.requests.get')
    def test_get_json_rejects_invalid_body(self, mock_get):
        response = ok()
        response.json.side_effect = ValueError("bad json")
        mock_get.return_value = response

        with self.assertRaises(NotesSourceError):
            GraphClient().get_json("/me")

    @patch('graph_source.requests.get')
    @patch('graph_source.time.sleep')
    def test_get_collection_follows_next_link(self, mock_sleep, mock_get):
        mock_get.side_effect = [
            ok({'value': [{'id': '1'}, {'id': '2'}], '@odata.nextLink': 'https://example.com/api?page=2'}),
            ok({'value': [{'id': '3'}]}),
        ]

        items = GraphClient().get_collection("https://example.com/api")

        self.assertEqual([i['id'] for i in items], ['1', '2', '3'])
        self.assertEqual(mock_get.call_args[0][0], 'https://example.com/api?page=2')

    @patch('graph_source.requests.get')
    @patch('graph_source.time.sleep')
    def test_get_collection_failure_on_later_page_raises(self, mock_sleep, mock_get):
        mock_get.side_effect = [
            ok({'value': [{'id': '1'}], '@odata.nextLink': 'https://example.com/api?page=2'}),
            status(500, "Server Error"),
            status(500, "Server Error"),
        ]

        with self.assertRaises(NotesSourceError) as ctx:
            GraphClient(max_retries=2).get_collection("https://example.com/api", "ctx")

        self.assertIn("ctx [page 2]", str(ctx.exception))


class TestOneNoteSource(unittest.TestCase):
    """Tests for mapping OneNote onto folders and notes."""

    def setUp(self):
        self.client = GraphClient(access_token='t')
        self.source = OneNoteSource(self.client)

    def test_from_settings_requires_token(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(NotesSourceError):
                OneNoteSource.from_settings({})

    def test_from_settings_uses_env_token(self):
        with patch.dict(os.environ, {TOKEN_ENV_VAR: 'abc'}):
            source = OneNoteSource.from_settings({'onenote': {'max_retries': '4'}})
        self.assertEqual(source.graph.access_token, 'abc')
        self.assertEqual(source.graph.max_retries, 4)

    def test_from_settings_tolerates_null_section(self):
        with patch.dict(os.environ, {TOKEN_ENV_VAR: 'abc'}):
            source = OneNoteSource.from_settings({'onenote': None})
        self.assertEqual(source.graph.max_retries, 10)

    def test_from_settings_invalid_retries_falls_back(self):
        with patch.dict(os.environ, {TOKEN_ENV_VAR: 'abc'}):
            with self.assertLogs('notes_source', level='WARNING'):
                source = OneNoteSource.from_settings({'onenote': {'max_retries': 'many'}})
        self.assertEqual(source.graph.max_retries, 10)

    def test_single_account_named_after_user(self):
        with patch.object(self.client, 'get_json', return_value={'displayName': 'Ada'}) as mock_json:
            (account,) = self.source.list_accounts()
            self.assertEqual(self.source.name(account), 'Ada')
            self.assertEqual(self.source.name(account), 'Ada')
        mock_json.assert_called_once()

    def test_account_name_failure_raises(self):
        with patch.object(self.client, 'get_json', side_effect=NotesSourceError("HTTP 401")):
            with self.assertRaises(NotesSourceError):
                self.source.name({'_kind': 'account'})
            self.assertFalse(self.source.probe())

    def test_notebooks_are_top_folders(self):
        with patch.object(self.client, 'get_collection',
                          return_value=[{'id': 'nb1', 'displayName': 'Work'}]):
            (notebook,) = self.source.list_top_folders({'_kind': 'account'})
        self.assertEqual(notebook['_kind'], 'notebook')
        self.assertEqual(self.source.name(notebook), 'Work')

    def test_subfolders_are_groups_then_sections(self):
        responses = [
            [{'id': 'g1', 'displayName': 'Group'}],
            [{'id': 's1', 'displayName': 'Section'}],
        ]
        with patch.object(self.client, 'get_collection', side_effect=responses) as mock_collection:
            children = self.source.list_subfolders({'_kind': 'notebook', 'id': 'nb1', 'displayName': 'Work'})

        self.assertEqual([(c['_kind'], c['displayName']) for c in children],
                         [('sectionGroup', 'Group'), ('section', 'Section')])
        self.assertIn('/notebooks/nb1/sectionGroups', mock_collection.call_args_list[0][0][0])

    def test_sections_have_no_subfolders_and_groups_no_notes(self):
        with patch.object(self.client, 'get_collection') as mock_collection:
            self.assertEqual(self.source.list_subfolders({'_kind': 'section', 'id': 's1'}), [])
            self.assertEqual(self.source.list_notes({'_kind': 'sectionGroup', 'id': 'g1'}), [])
        mock_collection.assert_not_called()

    def test_pages_are_notes(self):
        pages = [{'id': 'p1', 'title': 'Entry'}, {'id': 'p2', 'title': None}]
        with patch.object(self.client, 'get_collection', return_value=pages):
            notes = self.source.list_notes({'_kind': 'section', 'id': 's1', 'displayName': 'S'})

        self.assertEqual([self.source.title(n) for n in notes], ['Entry', ''])
        self.assertEqual(self.source.stable_id(notes[0]), 'p1')

    def test_enumeration_error_propagates(self):
        with patch.object(self.client, 'get_collection', side_effect=NotesSourceError("boom")):
            with self.assertRaises(NotesSourceError):
                self.source.list_top_folders({'_kind': 'account'})

    def test_body_returns_html(self):
        with patch.object(self.client, 'get', return_value=ok(text='<html>x</html>')) as mock_get:
            body = self.source.body({'_kind': 'page', 'id': 'p1', 'title': 'T'})
        self.assertEqual(body, '<html>x</html>')
        self.assertIn('/pages/p1/content', mock_get.call_args[0][0])

    @patch('graph_source.requests.get')
    def test_body_failure_raises(self, mock_get):
        mock_get.return_value = status(403, "Forbidden")
        with self.assertRaises(NotesSourceError):
            self.source.body({'_kind': 'page', 'id': 'p1'})


if __name__ == '__main__':
    unittest.main()
