"""
Notes data sources for the notes exporter.
Defines the interface the locator and exporter consume, plus the Apple Notes
backend that talks to Notes.app through osascript.
"""

import json
import logging
import subprocess
from pathlib import Path
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================
DEFAULT_SCRIPT_TIMEOUT = 60
RECORD_SEP = chr(30)
FIELD_SEP = chr(31)
SECRET_KEYS = ('access_token',)


class NotesSourceError(Exception):
    """Raised when the notes store cannot answer a request."""
    pass


# ============================================================================
# Settings
# ============================================================================
def load_settings(settings_path: Path) -> Dict[str, Any]:
    """Load settings from JSON file. Never loads access tokens."""
    if not settings_path.exists():
        return {}
    try:
        with open(settings_path, 'r', encoding='utf-8') as f:
            settings = json.load(f)
    except Exception as e:
        logger.warning(f"Could not load {settings_path.name}: {e}")
        return {}

    if not isinstance(settings, dict):
        logger.warning(f"Ignoring {settings_path.name}: expected a JSON object")
        return {}

    # SECURITY: secrets only come from the environment
    for section in settings.values():
        if isinstance(section, dict):
            for key in SECRET_KEYS:
                section.pop(key, None)
    return settings


def settings_section(settings: Dict[str, Any], name: str) -> Dict[str, Any]:
    """A settings sub-object, {} when missing, null or not an object."""
    section = settings.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        logger.warning(f"Ignoring settings '{name}': expected an object")
        return {}
    return section


def setting_int(section: Dict[str, Any], key: str, default: int) -> int:
    """Integer setting, falling back to default with a warning when invalid."""
    value = section.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for '{key}': {value!r}, using {default}")
        return default


# ============================================================================
# Record helpers
# ============================================================================
def join_fields(fields: List[str], delimiter: str) -> str:
    return delimiter.join(fields)


def split_records(text: str, record_sep: str, field_sep: str) -> List[List[str]]:
    """Split delimited script output into records of fields."""
    records = []
    for chunk in text.split(record_sep):
        if chunk.strip('\n') == "":
            continue
        records.append(chunk.split(field_sep))
    return records


# ============================================================================
# Data source interface
# ============================================================================
class NotesDataSource:
    """
    Capability interface over a hierarchical notes store.

    Every method may raise NotesSourceError; callers decide whether a
    failure is fatal. References returned by one method are only ever
    handed back to the same source.
    """

    def list_accounts(self) -> List[Any]:
        raise NotImplementedError

    def list_top_folders(self, account) -> List[Any]:
        raise NotImplementedError

    def list_subfolders(self, folder) -> List[Any]:
        raise NotImplementedError

    def list_notes(self, folder) -> List[Any]:
        raise NotImplementedError

    def name(self, ref) -> str:
        """Display name of an account or folder."""
        raise NotImplementedError

    def title(self, note) -> str:
        raise NotImplementedError

    def body(self, note) -> str:
        raise NotImplementedError

    def stable_id(self, note) -> Optional[str]:
        return None

    def probe(self) -> bool:
        """Best-effort access check. False means access is doubtful."""
        return True


# ============================================================================
# Apple Notes (osascript)
# ============================================================================
@dataclass(frozen=True)
class AppleAccountRef:
    id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class AppleFolderRef:
    id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class AppleNoteRef:
    folder_id: str
    index: int  # 1-based position in the folder
    id: Optional[str] = None
    title: Optional[str] = None


_SCRIPT_HEADER = """on run argv
    set fieldSep to character id 31
    set recordSep to character id 30
    set output to ""
"""

_SCRIPT_FOOTER = """    return output
end run
"""

LIST_ACCOUNTS_SCRIPT = _SCRIPT_HEADER + """    tell application "Notes"
        repeat with acc in accounts
            set accId to ""
            set accName to ""
            try
                set accId to id of acc
            end try
            try
                set accName to name of acc
            end try
            set output to output & accId & fieldSep & accName & recordSep
        end repeat
    end tell
""" + _SCRIPT_FOOTER

# Only folders whose container is the account itself
LIST_TOP_FOLDERS_SCRIPT = _SCRIPT_HEADER + """    tell application "Notes"
        set acc to account id (item 1 of argv)
        repeat with fld in folders of acc
            set isTop to true
            try
                set isTop to ((class of (container of fld)) is account)
            end try
            if isTop then
                set fldId to id of fld
                set fldName to ""
                try
                    set fldName to name of fld
                end try
                set output to output & fldId & fieldSep & fldName & recordSep
            end if
        end repeat
    end tell
""" + _SCRIPT_FOOTER

LIST_SUBFOLDERS_SCRIPT = _SCRIPT_HEADER + """    tell application "Notes"
        repeat with fld in folders of folder id (item 1 of argv)
            set fldId to id of fld
            set fldName to ""
            try
                set fldName to name of fld
            end try
            set output to output & fldId & fieldSep & fldName & recordSep
        end repeat
    end tell
""" + _SCRIPT_FOOTER

LIST_NOTES_SCRIPT = _SCRIPT_HEADER + """    tell application "Notes"
        set fld to folder id (item 1 of argv)
        set noteCount to count of notes of fld
        repeat with i from 1 to noteCount
            set aNote to note i of fld
            set noteId to ""
            set noteTitle to ""
            set titleOk to "1"
            try
                set noteId to id of aNote
            end try
            try
                set noteTitle to name of aNote
            on error
                set titleOk to "0"
            end try
            set output to output & i & fieldSep & noteId & fieldSep & titleOk & fieldSep & noteTitle & recordSep
        end repeat
    end tell
""" + _SCRIPT_FOOTER

NOTE_BODY_BY_ID_SCRIPT = """on run argv
    tell application "Notes"
        return body of note id (item 1 of argv)
    end tell
end run
"""

NOTE_BODY_BY_INDEX_SCRIPT = """on run argv
    tell application "Notes"
        return body of note ((item 2 of argv) as integer) of folder id (item 1 of argv)
    end tell
end run
"""

PROBE_SCRIPT = 'tell application "Notes" to count of accounts'


class AppleNotesSource(NotesDataSource):
    """Apple Notes accessed through osascript, one script per request."""

    def __init__(self, timeout: int = DEFAULT_SCRIPT_TIMEOUT):
        self.timeout = timeout
        self.script_count = 0

    def _run_script(self, script: str, *args: str, context: str = "") -> str:
        self.script_count += 1
        logger.debug(f"osascript #{self.script_count} [{context}]")
        try:
            result = subprocess.run(
                ["osascript", "-e", script, *args],
                check=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise NotesSourceError(f"osascript not available: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise NotesSourceError(f"Timed out after {self.timeout}s [{context}]") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode('utf-8', errors='replace').strip()
            raise NotesSourceError(f"osascript failed [{context}]: {stderr[:200] or e}") from e

        # Bytes in, so CR/CRLF inside note bodies survive untouched.
        # osascript terminates its result with a single newline.
        output = result.stdout
        if output.endswith(b'\n'):
            output = output[:-1]
        try:
            return output.decode('utf-8')
        except UnicodeDecodeError as e:
            raise NotesSourceError(f"osascript returned non UTF-8 output [{context}]: {e}") from e

    def _records(self, script: str, *args: str, context: str = "") -> List[List[str]]:
        output = self._run_script(script, *args, context=context)
        return split_records(output, RECORD_SEP, FIELD_SEP)

    def list_accounts(self) -> List[AppleAccountRef]:
        accounts = []
        for fields in self._records(LIST_ACCOUNTS_SCRIPT, context="list accounts"):
            acc_id, acc_name = (fields + ["", ""])[:2]
            accounts.append(AppleAccountRef(id=acc_id, name=acc_name or None))
        return accounts

    def list_top_folders(self, account: AppleAccountRef) -> List[AppleFolderRef]:
        if not account.id:
            raise NotesSourceError("Account has no id")
        return self._folders(LIST_TOP_FOLDERS_SCRIPT, account.id,
                             context=f"top folders of {account.name or account.id}")

    def list_subfolders(self, folder: AppleFolderRef) -> List[AppleFolderRef]:
        return self._folders(LIST_SUBFOLDERS_SCRIPT, folder.id,
                             context=f"subfolders of {folder.name or folder.id}")

    def _folders(self, script: str, parent_id: str, context: str) -> List[AppleFolderRef]:
        folders = []
        for fields in self._records(script, parent_id, context=context):
            fld_id, fld_name = (fields + ["", ""])[:2]
            folders.append(AppleFolderRef(id=fld_id, name=fld_name or None))
        return folders

    def list_notes(self, folder: AppleFolderRef) -> List[AppleNoteRef]:
        notes = []
        records = self._records(LIST_NOTES_SCRIPT, folder.id,
                                context=f"notes of {folder.name or folder.id}")
        for fields in records:
            if len(fields) < 4:
                raise NotesSourceError(f"Malformed note record: {fields!r}")
            index, note_id, title_ok = fields[:3]
            # Titles may legitimately contain the field separator
            title = join_fields(fields[3:], FIELD_SEP)
            notes.append(AppleNoteRef(
                folder_id=folder.id,
                index=int(index),
                id=note_id or None,
                title=title if title_ok == "1" else None,
            ))
        return notes

    def name(self, ref) -> str:
        if ref.name is None:
            raise NotesSourceError(f"Name unavailable for {ref.id or 'unknown reference'}")
        return ref.name

    def title(self, note: AppleNoteRef) -> str:
        if note.title is None:
            raise NotesSourceError(f"Title unavailable for note {note.index} in {note.folder_id}")
        return note.title

    def body(self, note: AppleNoteRef) -> str:
        if note.id:
            return self._run_script(NOTE_BODY_BY_ID_SCRIPT, note.id,
                                    context=f"body of {note.id}")
        return self._run_script(NOTE_BODY_BY_INDEX_SCRIPT, note.folder_id, str(note.index),
                                context=f"body of note {note.index} in {note.folder_id}")

    def stable_id(self, note: AppleNoteRef) -> Optional[str]:
        return note.id

    def probe(self) -> bool:
        try:
            self._run_script(PROBE_SCRIPT, context="permission probe")
            return True
        except NotesSourceError as e:
            logger.debug(f"Notes permission probe failed: {e}")
            return False
