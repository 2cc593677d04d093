# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Load Manager

Single responsibility: Activate and deactivate installed packages on the
session search path
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from numpkg.core.errors import BlockedBy, NotFoundError
from numpkg.models.registry_models import PackageRecord
from numpkg.services.search_path import SearchPath

from .resolver import DependencyResolver

logger = logging.getLogger(__name__)

LOAD_ALL = "all"


class LoadManager:
    """Loads packages with their dependencies, unloads them safely"""

    def __init__(self, path_activator: SearchPath, resolver: DependencyResolver):
        self.path_activator = path_activator
        self.resolver = resolver

    def loaded_names(self, effective: Mapping[str, PackageRecord]) -> List[str]:
        """Installed packages whose directory is active, in registry order"""
        return [
            name for name, record in effective.items()
            if self.path_activator.is_active(record.directory)
        ]

    def mark_loaded(self, effective: Mapping[str, PackageRecord]) -> Dict[str, PackageRecord]:
        """Copy of the effective set with the `loaded` flag filled in"""
        active = set(self.loaded_names(effective))
        return {
            name: record.model_copy(update={"loaded": name in active})
            for name, record in effective.items()
        }

    def load(
        self,
        names: Sequence[str],
        effective: Mapping[str, PackageRecord],
        allow_missing: bool = False,
        loaded: Optional[Iterable[str]] = None
    ) -> List[PackageRecord]:
        """
        Load packages and their dependencies.

        The load orders of all targets are computed before anything is
        activated, so an error leaves the search path untouched.

        Args:
            names: Packages to load, "all" loads every installed package
            effective: Effective installed set
            allow_missing: Skip missing dependencies with a warning
            loaded: Names already active, read from the search path when None

        Returns:
            Records activated, dependencies first

        Raises:
            NotFoundError: If a package is not installed
            UnsatisfiedDependency: If a dependency is missing
            CyclicDependency: If dependencies form a cycle
        """
        if LOAD_ALL in names:
            names = list(effective)
        already = set(self.loaded_names(effective) if loaded is None else loaded)

        plan: Dict[str, PackageRecord] = {}
        for name in names:
            for record in self.resolver.resolve_load_order(name, effective, allow_missing, already):
                plan.setdefault(record.name, record)

        for record in plan.values():
            self.path_activator.activate(record.directory, record.arch_directory)
            logger.info(f"Loaded {record}")
        return list(plan.values())

    def load_autoloads(self, effective: Mapping[str, PackageRecord]) -> List[PackageRecord]:
        """Load every package flagged for autoloading"""
        names = [name for name, record in effective.items() if record.autoload]
        if not names:
            return []
        return self.load(names, effective, allow_missing=True)

    def unload(
        self,
        names: Sequence[str],
        effective: Mapping[str, PackageRecord],
        allow_missing: bool = False
    ) -> List[PackageRecord]:
        """
        Unload packages.

        Only the named packages are deactivated, their dependencies stay
        loaded. Packages unloaded together do not block each other.

        Raises:
            NotFoundError: If a package is not installed
            BlockedBy: If another loaded package depends on a target
        """
        if LOAD_ALL in names:
            names = list(effective)
        loaded = self.loaded_names(effective)
        targets: List[PackageRecord] = []
        for name in dict.fromkeys(names):
            record = effective.get(name)
            if record is None:
                raise NotFoundError("Package", name)
            if name not in loaded:
                logger.warning(f"Package {name} is not loaded")
                continue
            targets.append(record)

        target_names = {record.name for record in targets}
        remaining = [name for name in loaded if name not in target_names]
        conflicts: Dict[str, List[str]] = {}
        for record in targets:
            verdict = self.resolver.resolve_unload_safety(record.name, effective, remaining, allow_missing)
            if not verdict.blocked_by:
                continue
            if verdict.ok:
                logger.warning(
                    f"Unloading {record.name} breaks loaded packages {', '.join(verdict.blocked_by)}"
                )
            else:
                conflicts[record.name] = verdict.blocked_by
        if conflicts:
            raise BlockedBy(conflicts, action="unload")

        for record in targets:
            self.path_activator.deactivate(record.directory, record.arch_directory)
            logger.info(f"Unloaded {record}")
        return targets
