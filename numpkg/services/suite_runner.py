# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Suite Runner - Runs a package's built-in self tests through an external command.
"""

import logging
import subprocess
from typing import List, Sequence

from numpkg.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class CommandSuiteRunner:
    """Runs the configured test command with the package directories appended"""

    def __init__(self, command: Sequence[str]):
        self.command: List[str] = list(command)

    def run(self, directories: Sequence[str]) -> bool:
        """
        Run the self tests found in `directories`.

        Returns:
            True when the command exits with status 0

        Raises:
            ConfigurationError: If no test command is configured or it cannot start
        """
        if not self.command:
            raise ConfigurationError("No test command configured (test.command)")
        args = self.command + list(directories)
        logger.info(f"Running {' '.join(args)}")
        try:
            result = subprocess.run(args)
        except OSError as e:
            raise ConfigurationError(f"Cannot run test command {self.command[0]}: {e}") from e
        return result.returncode == 0
