"""
Folder lookup across every account of a notes source.
Searches level by level so the shallowest folder with the requested name
wins, with ties broken by the order the source enumerates things in.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from notes_source import NotesDataSource

logger = logging.getLogger(__name__)


@dataclass
class FolderMatch:
    """A folder plus whatever could be resolved about it."""
    folder: Any
    account_name: Optional[str] = None
    folder_name: Optional[str] = None


class FolderLocator:
    """Find folders by name, optionally within one account."""

    def __init__(self, source: NotesDataSource):
        self.source = source
        self.inaccessible_count = 0

    def _accounts(self) -> List[Any]:
        try:
            return self.source.list_accounts()
        except Exception as e:
            logger.warning(f"Could not list accounts: {e}")
            self.inaccessible_count += 1
            return []

    def _account_name(self, account) -> Optional[str]:
        try:
            return self.source.name(account)
        except Exception as e:
            logger.debug(f"Could not read account name: {e}")
            return None

    def _seed(self, account, account_name: Optional[str]) -> List[FolderMatch]:
        try:
            folders = self.source.list_top_folders(account)
        except Exception as e:
            logger.warning(f"Skipping account '{account_name or '[Account Unknown]'}': {e}")
            self.inaccessible_count += 1
            return []
        return [FolderMatch(folder=f, account_name=account_name) for f in folders]

    def find_by_name(self, target_name: str) -> Optional[FolderMatch]:
        """Search the top folders of every account, in enumeration order."""
        queue = []
        for account in self._accounts():
            queue.extend(self._seed(account, self._account_name(account)))
        return self.search_bfs(queue, target_name)

    def find_by_account_and_name(self, account_name: str,
                                 target_name: str) -> Optional[FolderMatch]:
        """Search only the first account whose name is exactly account_name."""
        for account in self._accounts():
            if self._account_name(account) == account_name:
                return self.search_bfs(self._seed(account, account_name), target_name)
        logger.debug(f"No account named '{account_name}'")
        return None

    def search_bfs(self, queue: List[FolderMatch], target_name: str) -> Optional[FolderMatch]:
        """
        Level-order search for the first folder named target_name.

        Every folder of a level is compared before any child is enumerated.
        Folders whose name or children cannot be read are skipped, not fatal.
        Returns None when the queue is exhausted.
        """
        level = list(queue)
        depth = 0
        while level:
            logger.debug(f"Searching depth {depth}: {len(level)} folder(s)")
            for entry in level:
                if entry.folder_name is None:
                    try:
                        entry.folder_name = self.source.name(entry.folder)
                    except Exception as e:
                        logger.debug(f"Could not read folder name at depth {depth}: {e}")
                        continue
                if entry.folder_name == target_name:
                    return entry

            next_level = []
            for entry in level:
                try:
                    children = self.source.list_subfolders(entry.folder)
                except Exception as e:
                    logger.warning(f"Could not list subfolders of '{entry.folder_name or '?'}': {e}")
                    continue
                next_level.extend(
                    FolderMatch(folder=child, account_name=entry.account_name)
                    for child in children
                )
            level = next_level
            depth += 1
        return None

    def top_level_folders(self) -> List[FolderMatch]:
        """
        Every top-level folder with its account, for listing.

        account_name or folder_name stay None when they cannot be read;
        each such gap is added to inaccessible_count.
        """
        matches = []
        for account in self._accounts():
            account_name = self._account_name(account)
            for entry in self._seed(account, account_name):
                try:
                    entry.folder_name = self.source.name(entry.folder)
                except Exception as e:
                    logger.debug(f"Could not read folder name: {e}")
                if entry.folder_name is None or entry.account_name is None:
                    self.inaccessible_count += 1
                matches.append(entry)
        return matches
