# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Search Path - Path activator for the running session.

Keeps the ordered list of directories the runtime searches. Activating a
package prepends its directories, so later loads shadow earlier ones.
"""

import logging
import os
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

PATH_ENV_VAR = "NUMPKG_PATH"


class SearchPath:
    """Ordered, duplicate-free list of active directories"""

    def __init__(self, entries: Optional[Iterable[str]] = None):
        self._entries: List[str] = []
        for entry in entries or []:
            if entry and entry not in self._entries:
                self._entries.append(entry)

    @classmethod
    def from_env(cls, var: str = PATH_ENV_VAR) -> "SearchPath":
        value = os.environ.get(var, "")
        return cls(value.split(os.pathsep) if value else [])

    def to_env(self) -> str:
        return os.pathsep.join(self._entries)

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    def activate(self, directory: str, arch_directory: str = ""):
        """Prepend the package directories; already active ones are left in place"""
        for entry in reversed([d for d in (directory, arch_directory) if d]):
            if entry in self._entries:
                continue
            self._entries.insert(0, entry)
            logger.debug(f"Activated {entry}")

    def deactivate(self, directory: str, arch_directory: str = ""):
        for entry in (directory, arch_directory):
            if entry and entry in self._entries:
                self._entries.remove(entry)
                logger.debug(f"Deactivated {entry}")

    def is_active(self, directory: str) -> bool:
        return directory in self._entries

    def snapshot(self) -> List[str]:
        return list(self._entries)

    def restore(self, entries: Iterable[str]):
        self._entries = list(entries)
