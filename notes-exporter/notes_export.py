#!/usr/bin/env python3
"""
Notes Folder Export Tool
Finds a folder by name in a notes store and mirrors it, subfolders included,
into a directory tree of .html files.

Usage:
    notes_export.py list
    notes_export.py export "Journal" ~/Exports
    notes_export.py export "iCloud:Journal" ~/Exports
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import List, Optional, Tuple

from notes_source import (
    AppleNotesSource, NotesSourceError, load_settings, settings_section, setting_int,
    DEFAULT_SCRIPT_TIMEOUT,
)
from graph_source import OneNoteSource
from folder_locator import FolderLocator
from folder_exporter import FolderExporter, ExportError

# ============================================================================
# Constants
# ============================================================================
VERSION = "1.0.0"
SOURCES = ('apple-notes', 'onenote')
DEFAULT_SOURCE = 'apple-notes'
SPEC_DELIMITER = ':'

logger = logging.getLogger('notes_export')


# ============================================================================
# Logging Setup
# ============================================================================
class ConsoleFormatter(logging.Formatter):
    """Clean console output with a marker on warnings and errors."""

    PREFIXES = {
        logging.WARNING: "⚠️  ",
        logging.ERROR: "❌ ",
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        return self.PREFIXES.get(record.levelno, "") + message


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False):
    """Console at INFO (DEBUG with --verbose), optional detailed log file."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ConsoleFormatter('%(message)s'))
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(message)s'
        ))
        root.addHandler(file_handler)


# ============================================================================
# Helpers
# ============================================================================
def parse_folder_spec(spec: str, delimiter: str = SPEC_DELIMITER) -> Tuple[Optional[str], str]:
    """
    Split 'Account:Folder' into (account, folder).

    Anything other than exactly two segments is a plain folder name,
    so 'a:b:c' looks for a folder literally called 'a:b:c'.
    """
    parts = spec.split(delimiter)
    if len(parts) == 2:
        return parts[0], parts[1]
    return None, spec


def build_source(source_name: str, settings: dict):
    if source_name == 'onenote':
        return OneNoteSource.from_settings(settings)
    timeout = setting_int(settings_section(settings, 'apple_notes'), 'timeout', DEFAULT_SCRIPT_TIMEOUT)
    return AppleNotesSource(timeout=timeout)


def check_access(source):
    """Advisory only: warn when the source looks unreachable."""
    if source.probe():
        return
    print("=" * 70)
    logger.warning("Could not confirm access to the notes store.")
    logger.warning("If prompted, allow this terminal to control Notes")
    logger.warning("(System Settings > Privacy & Security > Automation).")
    print("=" * 70)


def format_folder_line(match) -> Optional[str]:
    """'Account > Folder' for listing, None when the folder name is unknown."""
    if match.folder_name is None:
        return None
    account = match.account_name if match.account_name is not None else "[Account Unknown]"
    return f"{account} > {match.folder_name}"


# ============================================================================
# Commands
# ============================================================================
def cmd_list(source) -> int:
    locator = FolderLocator(source)
    for match in locator.top_level_folders():
        line = format_folder_line(match)
        if line is None:
            logger.warning(f"Could not read folder name (account: {match.account_name or 'unknown'})")
        else:
            print(line)

    if locator.inaccessible_count:
        logger.warning(f"{locator.inaccessible_count} items could not be fully accessed")
    return 0


def cmd_export(source, folder_spec: str, output_dir: str) -> int:
    account_name, folder_name = parse_folder_spec(folder_spec)
    locator = FolderLocator(source)

    if account_name is None:
        logger.info(f"🔍 Searching all accounts for '{folder_name}'...")
        match = locator.find_by_name(folder_name)
    else:
        logger.info(f"🔍 Searching '{account_name}' for '{folder_name}'...")
        match = locator.find_by_account_and_name(account_name, folder_name)

    if match is None:
        where = f" in account '{account_name}'" if account_name is not None else ""
        logger.error(f"Folder '{folder_name}' not found{where}")
        return 1

    exporter = FolderExporter(source)
    try:
        root_dir = exporter.export_match(match, Path(output_dir).expanduser())
    except ExportError as e:
        logger.error(str(e))
        return 1

    logger.info(f"\n✅ Export complete: {root_dir}")
    if exporter.errors:
        logger.warning(f"{len(exporter.errors)} item(s) could not be exported - see messages above")
    return 0


# ============================================================================
# Main Entry Point
# ============================================================================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='notes-folder-export',
        description=f'Notes Folder Export Tool v{VERSION}'
    )
    parser.add_argument('--source', choices=SOURCES,
                        help=f'Notes store to read from (default: {DEFAULT_SOURCE})')
    parser.add_argument('--settings', type=str, default='settings.json',
                        help='Settings file path')
    parser.add_argument('--log-file', type=str,
                        help='Write a detailed log to this file')
    parser.add_argument('--verbose', action='store_true',
                        help='Show debug output on the console')

    subparsers = parser.add_subparsers(dest='command')
    subparsers.add_parser('list', aliases=['ls'],
                          help='List top-level folders of every account')
    export_parser = subparsers.add_parser('export',
                                          help='Export a folder and its subfolders')
    export_parser.add_argument('folder_spec',
                               help='FolderName or AccountName:FolderName')
    export_parser.add_argument('output_dir', help='Output directory')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(Path(args.log_file) if args.log_file else None, args.verbose)

    settings_path = Path(args.settings)
    if not settings_path.is_absolute() and not settings_path.exists():
        settings_path = Path(__file__).parent / args.settings
    settings = load_settings(settings_path)
    if settings:
        logger.debug(f"Loaded settings from {settings_path}")

    source_name = args.source or settings.get('source', DEFAULT_SOURCE)
    if source_name not in SOURCES:
        logger.error(f"Unknown source '{source_name}' (expected one of: {', '.join(SOURCES)})")
        return 1

    try:
        source = build_source(source_name, settings)
    except NotesSourceError as e:
        logger.error(str(e))
        return 1

    check_access(source)

    if args.command in ('list', 'ls'):
        return cmd_list(source)
    return cmd_export(source, args.folder_spec, args.output_dir)


if __name__ == "__main__":
    sys.exit(main())
