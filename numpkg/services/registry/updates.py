# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Update Checker

Single responsibility: Compare installed packages with the forge and
reinstall the outdated ones
"""

import logging
from typing import Mapping, Optional, Sequence

from numpkg.core.errors import FetchError, InvalidVersion, NotFoundError, ValidationError
from numpkg.models.registry_models import InstallOptions, PackageRecord, TransactionOperation, UpdateReport
from numpkg.services.forge_client import ForgeClient
from numpkg.services.toolchain import FORGE_SCHEME

from .operations import InstallOrchestrator
from .version import compare, VersionOrder

logger = logging.getLogger(__name__)


class UpdateChecker:
    """Finds outdated packages and updates them from the forge"""

    def __init__(self, forge: ForgeClient, orchestrator: InstallOrchestrator):
        self.forge = forge
        self.orchestrator = orchestrator

    def check(
        self,
        installed: Mapping[str, PackageRecord],
        names: Optional[Sequence[str]] = None
    ) -> UpdateReport:
        """
        Look up the published version of each installed package.

        Lookup failures are reported as warnings and do not stop the check.

        Args:
            installed: Installed packages to consider
            names: Restrict the check to these packages

        Returns:
            Report with every outdated package and its published version
        """
        report = UpdateReport()
        if names:
            selected = []
            for name in names:
                if name in installed:
                    selected.append(name)
                else:
                    logger.warning(f"Package {name} is not installed")
                    report.warnings.append(f"Package {name} is not installed")
        else:
            selected = list(installed)

        for name in selected:
            record = installed[name]
            try:
                latest = self.forge.latest_version(name)
            except (NotFoundError, FetchError, ValidationError) as e:
                logger.warning(f"Cannot check {name} for updates: {e.message}")
                report.warnings.append(f"{name}: {e.message}")
                continue
            report.checked.append(name)
            try:
                newer = compare(latest, record.version) is VersionOrder.GREATER
            except InvalidVersion as e:
                logger.warning(f"Cannot compare versions of {name}: {e.message}")
                report.warnings.append(f"{name}: {e.message}")
                continue
            if newer:
                logger.info(f"Package {name} {record.version} -> {latest}")
                report.outdated[name] = latest
        return report

    def update(
        self,
        installed: Mapping[str, PackageRecord],
        names: Optional[Sequence[str]] = None,
        options: Optional[InstallOptions] = None
    ) -> UpdateReport:
        """
        Reinstall every outdated package from the forge.

        Returns:
            The check report with the install report attached
        """
        report = self.check(installed, names)
        if not report.outdated:
            logger.info("All packages are up to date")
            return report

        sources = [f"{FORGE_SCHEME}{name}" for name in report.outdated]
        report.install = self.orchestrator.install(sources, options, TransactionOperation.UPDATE)
        return report
