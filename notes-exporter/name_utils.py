"""
Name helpers for the notes exporter.
Turns folder names and note titles into filesystem-safe path components and
derives the short id that keeps exported note filenames apart.
"""

import re
import time
import random
import logging

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================
RESERVED_CHARS = re.compile(r'[:/\\*?"<>|\r\n\t]')
HASH_MULTIPLIER = 131
HASH_MODULUS = 2147483647
BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
FALLBACK_NAME = "untitled"
NOTE_SUFFIX = ".html"


# ============================================================================
# Sanitizer
# ============================================================================
def sanitize_path_component(name: str) -> str:
    """
    Convert text to a filesystem-safe path component.

    Reserved characters become '-', surrounding spaces are trimmed and any
    run of trailing dots and spaces is removed. May return an empty string.
    """
    if not name:
        return ""
    text = RESERVED_CHARS.sub('-', name)
    text = text.strip(' ')
    return text.rstrip('. ')


def sanitize_filename(name: str) -> str:
    """Sanitize a note title; empty results become 'untitled'."""
    return sanitize_path_component(name) or FALLBACK_NAME


def folder_dir_name(name: str) -> str:
    """Directory name for a folder. Never empty."""
    safe_name = sanitize_path_component(name)
    if not safe_name:
        logger.warning(f"Folder name {name!r} is empty after sanitizing, using '{FALLBACK_NAME}'")
        return FALLBACK_NAME
    return safe_name


# ============================================================================
# Identifier Generator
# ============================================================================
def rolling_hash(text: str) -> int:
    acc = 0
    for ch in text:
        acc = (acc * HASH_MULTIPLIER + ord(ch)) % HASH_MODULUS
    return acc


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value > 0:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def fallback_token() -> str:
    """Non-deterministic token used when a note has no stable identifier."""
    return f"{int(time.time())}-{random.randint(1000, 9999)}"


def short_id(note, source) -> str:
    """
    Short, filename-safe id for a note.

    Stable across runs when the source can supply an identifier for the
    note; otherwise falls back to time + random digits, so two such notes
    may end up with the same name.
    """
    try:
        stable_id = source.stable_id(note)
    except Exception as e:
        logger.debug(f"No stable id for note ({e}), using fallback token")
        stable_id = None

    if not stable_id:
        return fallback_token()
    return to_base36(rolling_hash(stable_id))


def note_filename(title: str, sid: str) -> str:
    return f"{sanitize_filename(title)} -- {sid}{NOTE_SUFFIX}"
