"""
Notes Exporter - Export Logic
Mirrors a folder and all of its subfolders onto disk, one .html file per note.
A failure in one note or subfolder is logged and the export carries on.
"""

import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

from name_utils import folder_dir_name, note_filename, short_id
from notes_source import NotesDataSource

logger = logging.getLogger(__name__)


class ExportError(Exception):
    """Raised when the export cannot start at all."""
    pass


# ============================================================================
# Output
# ============================================================================
class LocalOutputWriter:
    """Writes the mirrored tree to the local filesystem."""

    def ensure_directory(self, path: Path):
        Path(path).mkdir(parents=True, exist_ok=True)

    def write_file(self, path: Path, data: bytes):
        with open(path, 'wb') as f:
            f.write(data)


@dataclass
class ExportStats:
    """Export statistics."""
    folders: int = 0
    notes: int = 0
    errors: int = 0

    def to_dict(self) -> Dict:
        return {
            'folders': self.folders,
            'notes': self.notes,
            'errors': self.errors
        }


# ============================================================================
# Exporter
# ============================================================================
class FolderExporter:
    """Recursive folder-to-directory exporter."""

    def __init__(self, source: NotesDataSource, writer: Optional[LocalOutputWriter] = None):
        self.source = source
        self.writer = writer or LocalOutputWriter()
        self.stats = ExportStats()
        self.errors: List[Dict] = []
        self.exported_files: List[Path] = []

    def export_match(self, match, output_root: Path) -> Path:
        """Create output_root/<folder name> and mirror the matched folder into it."""
        folder_name = match.folder_name or ""
        root_dir = Path(output_root) / folder_dir_name(folder_name)
        try:
            self.writer.ensure_directory(root_dir)
        except OSError as e:
            raise ExportError(f"Cannot create output directory {root_dir}: {e}") from e

        logger.info(f"📁 Exporting '{folder_name}' to {root_dir}")
        self.export_recursive(match.folder, root_dir, folder_name)
        return root_dir

    def export_recursive(self, folder: Any, output_dir: Path, folder_name: Optional[str] = None):
        """Export notes of folder into output_dir, then each subfolder beneath it."""
        output_dir = Path(output_dir)
        self.writer.ensure_directory(output_dir)
        self.stats.folders += 1

        if folder_name is None:
            folder_name = self._folder_label(folder)

        self._export_notes(folder, output_dir, folder_name)
        self._export_subfolders(folder, output_dir, folder_name)

    def _folder_label(self, folder) -> str:
        try:
            return self.source.name(folder)
        except Exception:
            return "?"

    def _record_error(self, context: str, folder_name: str, error: Exception,
                      note: Optional[str] = None):
        self.errors.append({
            'type': type(error).__name__,
            'folder': folder_name,
            'note': note,
            'context': context,
            'error': str(error)
        })
        self.stats.errors += 1

    def _export_notes(self, folder, output_dir: Path, folder_name: str):
        try:
            notes = self.source.list_notes(folder)
        except Exception as e:
            logger.warning(f"Could not read notes of '{folder_name}' [notes]: {e}")
            self._record_error('notes', folder_name, e)
            return

        for idx, note in enumerate(notes, 1):
            self._export_note(note, idx, output_dir, folder_name)

    def _export_note(self, note, idx: int, output_dir: Path, folder_name: str):
        title = None
        try:
            title = self.source.title(note)
            body = self.source.body(note)
            sid = short_id(note, self.source)
            file_path = output_dir / note_filename(title, sid)
            self.writer.write_file(file_path, body.encode('utf-8'))
        except Exception as e:
            label = title if title is not None else f"#{idx}"
            logger.warning(f"Could not export note '{label}' in '{folder_name}' [note]: {e}")
            self._record_error('note', folder_name, e, note=label)
            return

        self.exported_files.append(file_path)
        self.stats.notes += 1
        logger.debug(f"Wrote {file_path}")

    def _export_subfolders(self, folder, output_dir: Path, folder_name: str):
        try:
            children = self.source.list_subfolders(folder)
        except Exception as e:
            logger.warning(f"Could not read subfolders of '{folder_name}' [subfolders]: {e}")
            self._record_error('subfolders', folder_name, e)
            return

        for child in children:
            child_name = None
            try:
                child_name = self.source.name(child)
                child_dir = output_dir / folder_dir_name(child_name)
                self.writer.ensure_directory(child_dir)
                logger.info(f"   📁 {child_name}")
                self.export_recursive(child, child_dir, child_name)
            except Exception as e:
                label = child_name if child_name is not None else '?'
                logger.warning(f"Could not export subfolder '{label}' of '{folder_name}' [subfolder]: {e}")
                self._record_error('subfolder', f"{folder_name}/{label}", e)
