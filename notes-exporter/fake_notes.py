"""
In-memory notes source used by the unit tests.
Any attribute listed in a ref's `fail` set raises NotesSourceError when read.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from notes_source import NotesDataSource, NotesSourceError


@dataclass(eq=False)
class FakeNote:
    title: str = ""
    body: str = ""
    id: Optional[str] = None
    fail: Set[str] = field(default_factory=set)


@dataclass(eq=False)
class FakeFolder:
    name: str
    notes: List[FakeNote] = field(default_factory=list)
    folders: List['FakeFolder'] = field(default_factory=list)
    fail: Set[str] = field(default_factory=set)


@dataclass(eq=False)
class FakeAccount:
    name: str
    folders: List[FakeFolder] = field(default_factory=list)
    fail: Set[str] = field(default_factory=set)


class FakeNotesSource(NotesDataSource):
    """Records the order folder names are read in as `visited`."""

    def __init__(self, accounts: List[FakeAccount], probe_ok: bool = True):
        self.accounts = accounts
        self.probe_ok = probe_ok
        self.visited: List[str] = []

    @staticmethod
    def _check(ref, attr: str):
        if attr in ref.fail:
            raise NotesSourceError(f"{attr} not accessible")

    def list_accounts(self):
        return list(self.accounts)

    def list_top_folders(self, account):
        self._check(account, 'folders')
        return list(account.folders)

    def list_subfolders(self, folder):
        self._check(folder, 'folders')
        return list(folder.folders)

    def list_notes(self, folder):
        self._check(folder, 'notes')
        return list(folder.notes)

    def name(self, ref):
        self._check(ref, 'name')
        if isinstance(ref, FakeFolder):
            self.visited.append(ref.name)
        return ref.name

    def title(self, note):
        self._check(note, 'title')
        return note.title

    def body(self, note):
        self._check(note, 'body')
        return note.body

    def stable_id(self, note):
        self._check(note, 'id')
        return note.id

    def probe(self):
        return self.probe_ok
