"""
OneNote data source for the notes exporter.
Maps notebooks, section groups, sections and pages from Microsoft Graph onto
the folder/note model. Transient API errors are retried; anything else
surfaces as NotesSourceError so the exporter can skip that item.
"""

import os
import time
import random
import logging
import requests
from typing import Dict, List, Optional, Any

from notes_source import NotesDataSource, NotesSourceError, settings_section, setting_int

# ============================================================================
# Constants
# ============================================================================
GRAPH_BASE = "https://graph.microsoft.com/v1.0"
DEFAULT_MAX_RETRIES = 10
DEFAULT_TIMEOUT = 60
CONTENT_TIMEOUT = 120
MAX_BACKOFF = 60
TOKEN_ENV_VAR = 'ONENOTE_ACCESS_TOKEN'

logger = logging.getLogger(__name__)


# ============================================================================
# Graph API Client
# ============================================================================
class GraphClient:
    """Read-only Graph access. Every failure ends in NotesSourceError."""

    def __init__(self, access_token: Optional[str] = None,
                 max_retries: int = DEFAULT_MAX_RETRIES):
        self.access_token = access_token
        self.max_retries = max(1, max_retries)
        self.request_count = 0

    @staticmethod
    def _backoff(attempt: int) -> float:
        return min(MAX_BACKOFF, (2 ** attempt) + random.uniform(0, 2))

    def get(self, url: str, context: str = "",
            timeout: int = DEFAULT_TIMEOUT) -> requests.Response:
        """GET url, waiting out 429s, 5xx and network hiccups between attempts."""
        if not url.startswith('http'):
            url = f"{GRAPH_BASE}{url}"
        headers = {'Authorization': f'Bearer {self.access_token}'}
        last_error = "no attempt made"

        for attempt in range(1, self.max_retries + 1):
            self.request_count += 1
            logger.debug(f"Request {self.request_count}: GET {url[:100]}")
            try:
                response = requests.get(url, headers=headers, timeout=timeout)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_error = f"{type(e).__name__}: {e}"
                wait_time = self._backoff(attempt)
                logger.warning(f"{type(e).__name__}, retry {attempt}/{self.max_retries} "
                               f"in {wait_time:.1f}s [{context}]")
                time.sleep(wait_time)
                continue

            if response.status_code == 200:
                return response

            last_error = f"HTTP {response.status_code}"
            if response.status_code == 429:
                retry_after = int(response.headers.get('Retry-After', 10))
                logger.warning(f"Rate limited (429), waiting {retry_after}s... [{context}]")
                time.sleep(retry_after)
                continue
            if response.status_code >= 500:
                wait_time = self._backoff(attempt)
                logger.warning(f"Server error {response.status_code}, retry {attempt}/{self.max_retries} "
                               f"in {wait_time:.1f}s [{context}]")
                time.sleep(wait_time)
                continue

            detail = response.text[:200] if response.text else 'no body'
            raise NotesSourceError(f"HTTP {response.status_code} [{context}]: {detail}")

        raise NotesSourceError(f"Gave up after {self.max_retries} attempts [{context}]: {last_error}")

    def get_json(self, url: str, context: str = "") -> Dict:
        response = self.get(url, context)
        try:
            return response.json()
        except ValueError as e:
            raise NotesSourceError(f"Invalid JSON [{context}]: {e}") from e

    def get_collection(self, url: str, context: str = "") -> List[Dict]:
        """All items of a paged collection, following @odata.nextLink."""
        items = []
        page_num = 1
        while url:
            data = self.get_json(url, f"{context} [page {page_num}]")
            items.extend(data.get('value', []))
            url = data.get('@odata.nextLink')
            if url:
                page_num += 1
                time.sleep(0.1)  # Be nice to the API
        return items


# ============================================================================
# OneNote as a notes source
# ============================================================================
class OneNoteSource(NotesDataSource):
    """
    Single-account view of the signed-in user's OneNote.

    Notebooks are top folders. Section groups and sections are subfolders
    (groups first). Only sections hold notes, which are OneNote pages.
    """

    def __init__(self, client: GraphClient):
        self.graph = client
        self._user_name: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'OneNoteSource':
        token = os.environ.get(TOKEN_ENV_VAR)
        if not token:
            raise NotesSourceError(f"Set {TOKEN_ENV_VAR} to a Graph access token with Notes.Read")
        max_retries = setting_int(settings_section(settings, 'onenote'), 'max_retries', DEFAULT_MAX_RETRIES)
        return cls(GraphClient(access_token=token, max_retries=max_retries))

    @staticmethod
    def _tag(items: List[Dict], kind: str) -> List[Dict]:
        return [dict(item, _kind=kind) for item in items]

    def list_accounts(self) -> List[Dict]:
        return [{'_kind': 'account'}]

    def list_top_folders(self, account) -> List[Dict]:
        notebooks = self.graph.get_collection(
            f"{GRAPH_BASE}/me/onenote/notebooks?$select=id,displayName",
            "list notebooks"
        )
        return self._tag(notebooks, 'notebook')

    def list_subfolders(self, folder: Dict) -> List[Dict]:
        kind = folder.get('_kind')
        if kind == 'notebook':
            base = f"{GRAPH_BASE}/me/onenote/notebooks/{folder['id']}"
        elif kind == 'sectionGroup':
            base = f"{GRAPH_BASE}/me/onenote/sectionGroups/{folder['id']}"
        else:
            return []

        name = folder.get('displayName', folder.get('id'))
        groups = self.graph.get_collection(f"{base}/sectionGroups?$select=id,displayName",
                                           f"section groups in {name}")
        sections = self.graph.get_collection(f"{base}/sections?$select=id,displayName",
                                             f"sections in {name}")
        return self._tag(groups, 'sectionGroup') + self._tag(sections, 'section')

    def list_notes(self, folder: Dict) -> List[Dict]:
        if folder.get('_kind') != 'section':
            return []
        pages = self.graph.get_collection(
            f"{GRAPH_BASE}/me/onenote/sections/{folder['id']}/pages?$select=id,title&$orderby=order",
            f"pages in {folder.get('displayName', folder['id'])}"
        )
        return self._tag(pages, 'page')

    def name(self, ref: Dict) -> str:
        if ref.get('_kind') == 'account':
            return self._account_name()
        name = ref.get('displayName')
        if name is None:
            raise NotesSourceError(f"No displayName for {ref.get('_kind')} {ref.get('id')}")
        return name

    def _account_name(self) -> str:
        if self._user_name is None:
            user = self.graph.get_json(f"{GRAPH_BASE}/me", "user info")
            self._user_name = user.get('displayName') or 'OneNote'
        return self._user_name

    def title(self, note: Dict) -> str:
        return note.get('title') or ""

    def body(self, note: Dict) -> str:
        response = self.graph.get(
            f"{GRAPH_BASE}/me/onenote/pages/{note['id']}/content",
            f"content of {note.get('title') or note['id']}",
            timeout=CONTENT_TIMEOUT
        )
        return response.text

    def stable_id(self, note: Dict) -> Optional[str]:
        return note.get('id')

    def probe(self) -> bool:
        try:
            self._account_name()
            return True
        except NotesSourceError as e:
            logger.debug(f"OneNote probe failed: {e}")
            return False
