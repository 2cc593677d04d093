# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Package Operations

Single responsibility: Install, uninstall and rebuild packages
"""

import logging
import os
import shutil
import tempfile
from contextlib import ExitStack
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from numpkg.core.config import Config
from numpkg.core.errors import (
    BlockedBy,
    BuildError,
    CorruptRegistry,
    NotFoundError,
    NumpkgError,
    UnresolvableRequest,
    ValidationError,
)
from numpkg.core.logging import log_event
from numpkg.models.registry_models import (
    BuildManifest,
    Installer,
    InstallOptions,
    InstallReport,
    PackageRecord,
    Registry,
    TransactionOperation,
)
from numpkg.services.search_path import SearchPath
from numpkg.services.toolchain import ArchiveFetcher, TarballBuilder, staging_directory

from .description import read_description, to_record
from .resolver import DependencyResolver, dependency_sorted
from .store import RegistryStore
from .transactions import TransactionLogger
from .version import compare, VersionOrder

logger = logging.getLogger(__name__)


def is_privileged(global_prefix: Path) -> bool:
    """Whether the process may write system-wide packages"""
    if hasattr(os, "geteuid"):
        return os.geteuid() == 0
    probe = global_prefix
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    return os.access(probe, os.W_OK)


def _discard(path: Path):
    """Remove a file or directory tree if present"""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    elif os.path.lexists(path):
        path.unlink()


def _set_aside(path: Path) -> Optional[Path]:
    """Move an existing install location out of the way, returning where it went"""
    if not os.path.lexists(path):
        return None
    backup = Path(tempfile.mkdtemp(prefix=f".{path.name}.old.", dir=path.parent)) / path.name
    os.replace(path, backup)
    return backup


class InstallOrchestrator:
    """Runs fetch -> build -> register for package batches"""

    def __init__(
        self,
        config: Config,
        store: RegistryStore,
        resolver: DependencyResolver,
        fetcher: ArchiveFetcher,
        builder: TarballBuilder,
        path_activator: SearchPath,
        transaction_logger: TransactionLogger,
        privileged: Optional[bool] = None
    ):
        """
        Initialize install orchestrator.

        Args:
            config: Active configuration (prefixes, arch, staging root)
            store: Registry store
            resolver: Dependency resolver
            fetcher: Archive fetcher
            builder: Build toolchain
            path_activator: Search path of the running session
            transaction_logger: Transaction logger
            privileged: Override privilege detection for the default scope
        """
        self.config = config
        self.store = store
        self.resolver = resolver
        self.fetcher = fetcher
        self.builder = builder
        self.path_activator = path_activator
        self.transaction_logger = transaction_logger
        if privileged is None:
            privileged = is_privileged(config.prefixes(True)[0])
        self.privileged = privileged

    def target_installer(self, options: InstallOptions) -> Installer:
        """
        Registry an operation writes to.

        --global and --local force the scope, otherwise privileged processes
        work on the global registry.
        """
        if options.prefer_local and options.prefer_global:
            raise ValidationError("Options --local and --global are mutually exclusive")
        if options.prefer_global:
            return Installer.SYSTEM
        if options.prefer_local:
            return Installer.USER
        return Installer.SYSTEM if self.privileged else Installer.USER

    def install(
        self,
        sources: Sequence[str],
        options: Optional[InstallOptions] = None,
        operation: TransactionOperation = TransactionOperation.INSTALL
    ) -> InstallReport:
        """
        Install a batch of packages.

        Each source is staged, fetched and built in its own temporary
        directory. Packages are then registered one by one in dependency order;
        a failure affects only that package and is collected in the report.

        Args:
            sources: Archive paths, URLs or "forge:<name>" locators
            options: Installation options
            operation: Operation recorded in the transaction log

        Returns:
            Report of installed, skipped and failed packages

        Raises:
            CorruptRegistry: If a registry cannot be read
        """
        options = options or InstallOptions()
        target = self.target_installer(options)
        local, global_ = self.store.load_local(), self.store.load_global()
        registry = local if target is Installer.USER else global_
        report = InstallReport()

        with ExitStack() as stack:
            manifests: Dict[str, BuildManifest] = {}
            candidates: List[PackageRecord] = []
            for source in sources:
                staging = stack.enter_context(staging_directory(self.config.staging_root))
                try:
                    archive = self.fetcher.fetch(source, staging)
                    manifest = self.builder.build(archive, staging)
                except NumpkgError as e:
                    logger.error(f"Cannot prepare {source}: {e.message}")
                    report.failures[source] = e.message
                    continue
                manifest = manifest.model_copy(update={"source": source})
                name = manifest.description.name
                if name in manifests:
                    report.failures[source] = f"Package {name} requested more than once"
                    continue
                manifests[name] = manifest
                candidates.append(to_record(manifest.description, directory=""))

            effective = {} if options.force else self.store.effective(local, global_)
            order = self._install_order(candidates, effective, manifests, report)
            report.skipped = [
                c.name for c in candidates
                if c.name not in order and manifests[c.name].source not in report.failures
            ]

            for name in order:
                manifest = manifests[name]
                try:
                    with self.transaction_logger.track(
                        operation, name, manifest.description.version, target
                    ):
                        record = self._install_one(manifest, registry, local, global_, options)
                except NumpkgError as e:
                    logger.error(f"Installation of {name} failed: {e.message}")
                    report.failures[manifest.source] = e.message
                    continue
                report.installed.append(record)
                log_event(logger, f"Package {record} installed", package=record.name,
                          version=record.version, installer=record.installer.value)

        return report

    def _install_order(
        self,
        candidates: List[PackageRecord],
        effective: Dict[str, PackageRecord],
        manifests: Dict[str, BuildManifest],
        report: InstallReport
    ) -> List[str]:
        """Order candidates, failing the members of any cycle and ordering the rest"""
        remaining = list(candidates)
        while True:
            try:
                return self.resolver.resolve_install_order(remaining, effective)
            except UnresolvableRequest as e:
                members = set(e.cycle)
                for name in members:
                    report.failures[manifests[name].source] = e.message
                remaining = [c for c in remaining if c.name not in members]

    def _install_one(
        self,
        manifest: BuildManifest,
        registry: Registry,
        local: Registry,
        global_: Registry,
        options: InstallOptions
    ) -> PackageRecord:
        """
        Place one package and register it.

        New files are staged beside their final location and swapped in;
        the previous install is removed only once the registry is persisted.
        On failure the previous files, record and search path entries are
        put back.
        """
        description = manifest.description
        if not options.no_deps:
            candidate = to_record(description, directory="")
            self.resolver.check_dependencies(candidate, self.store.effective(local, global_))

        prefix, arch_prefix = self.config.prefixes(registry.installer is Installer.SYSTEM)
        package_dir = f"{description.name}-{description.version}"
        directory = prefix / package_dir
        arch_directory = arch_prefix / self.config.arch / package_dir if manifest.arch_files else None
        record = to_record(description, str(directory), str(arch_directory) if arch_directory else "")

        staged = self._stage_files(manifest, directory, arch_directory)
        previous = registry.find_by_name(description.name)
        was_active = previous is not None and self.path_activator.is_active(previous.directory)

        swapped: List[Tuple[Path, Optional[Path]]] = []
        try:
            if was_active:
                self.path_activator.deactivate(previous.directory, previous.arch_directory)
            try:
                for target, path in staged:
                    swapped.append((target, _set_aside(target)))
                    os.replace(path, target)
            except OSError as e:
                raise BuildError(manifest.source, f"cannot install files: {e}") from e
            registry.add(record)
            self.store.persist(registry)
        except BaseException:
            registry.remove(record.name)
            if previous is not None:
                registry.add(previous)
            for target, backup in reversed(swapped):
                _discard(target)
                if backup is not None:
                    os.replace(backup, target)
                    backup.parent.rmdir()
            for _, path in staged:
                _discard(path)
            if was_active:
                self.path_activator.activate(previous.directory, previous.arch_directory)
            raise

        for _, backup in swapped:
            if backup is not None:
                _discard(backup.parent)
        if previous is not None:
            placed = {target for target, _ in staged}
            for path in previous.directories():
                if path and Path(path) not in placed:
                    _discard(Path(path))

        if was_active:
            self.path_activator.activate(record.directory, record.arch_directory)
        return registry.find_by_name(record.name)

    def _stage_files(
        self,
        manifest: BuildManifest,
        directory: Path,
        arch_directory: Optional[Path]
    ) -> List[Tuple[Path, Path]]:
        """
        Copy staged build output next to its install location.

        Returns:
            (install location, staged copy) pairs

        Raises:
            BuildError: If a file cannot be copied; partial copies are removed
        """
        staged: List[Tuple[Path, Path]] = []
        try:
            for target in (directory, arch_directory):
                if target is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                path = Path(tempfile.mkdtemp(prefix=f".{target.name}.", dir=target.parent))
                path.chmod(0o755)
                staged.append((target, path))
            install_dir = staged[0][1]
            arch_dir = staged[1][1] if arch_directory is not None else None

            if manifest.inst_dir is not None:
                shutil.copytree(manifest.inst_dir, install_dir, dirs_exist_ok=True)

            packinfo = install_dir / "packinfo"
            packinfo.mkdir(exist_ok=True)
            for path in manifest.packinfo_files:
                shutil.copy2(path, packinfo / path.name)

            for path in manifest.arch_files:
                shutil.copy2(path, arch_dir / path.name)
        except OSError as e:
            for _, path in staged:
                _discard(path)
            raise BuildError(manifest.source, f"cannot install files: {e}") from e
        return staged

    def _remove_files(self, record: PackageRecord):
        for path in record.directories():
            if path:
                _discard(Path(path))

    def uninstall(self, names: Sequence[str], options: Optional[InstallOptions] = None) -> List[PackageRecord]:
        """
        Remove installed packages.

        Every package that would be left with a missing dependency is
        collected first; any conflict aborts the whole request before anything
        is removed, unless dependency checks are disabled.

        Args:
            names: Packages to remove
            options: no_deps disables the dependency check, prefer_local /
                prefer_global restrict the registry searched

        Returns:
            Removed records

        Raises:
            NotFoundError: If a package is not installed
            BlockedBy: If other installed packages depend on a target
        """
        options = options or InstallOptions()
        if options.prefer_local and options.prefer_global:
            raise ValidationError("Options --local and --global are mutually exclusive")
        local, global_ = self.store.load_local(), self.store.load_global()

        targets: List[Tuple[Registry, PackageRecord]] = []
        for name in dict.fromkeys(names):
            targets.append(self._owner(name, local, global_, options))

        removed_local = {r.name for reg, r in targets if reg is local}
        removed_global = {r.name for reg, r in targets if reg is global_}
        remaining = self.store.effective(
            Registry(installer=Installer.USER, packages={
                n: r for n, r in local.packages.items() if n not in removed_local
            }),
            Registry(installer=Installer.SYSTEM, packages={
                n: r for n, r in global_.packages.items() if n not in removed_global
            }),
        )

        conflicts: Dict[str, List[str]] = {}
        for _, record in targets:
            if record.name in remaining:
                # A shadowed copy of the same name stays installed
                continue
            verdict = self.resolver.resolve_uninstall_safety(record.name, remaining, options.no_deps)
            if not verdict.blocked_by:
                continue
            if verdict.ok:
                logger.warning(
                    f"Removing {record.name} breaks dependencies of {', '.join(verdict.blocked_by)}"
                )
            else:
                conflicts[record.name] = verdict.blocked_by
        if conflicts:
            raise BlockedBy(conflicts, action="uninstall")

        removed = []
        for registry, record in targets:
            with self.transaction_logger.track(
                TransactionOperation.UNINSTALL, record.name, record.version, registry.installer
            ):
                self.path_activator.deactivate(record.directory, record.arch_directory)
                registry.remove(record.name)
                try:
                    self.store.persist(registry)
                except BaseException:
                    registry.add(record)
                    raise
                self._remove_files(record)
            removed.append(record)
            logger.info(f"Package {record} removed")
        return removed

    def _owner(
        self,
        name: str,
        local: Registry,
        global_: Registry,
        options: InstallOptions
    ) -> Tuple[Registry, PackageRecord]:
        if options.prefer_global:
            search = [global_]
        elif options.prefer_local:
            search = [local]
        else:
            search = [local, global_]
        for registry in search:
            record = registry.find_by_name(name)
            if record is not None:
                return registry, record
        raise NotFoundError("Installed package", name)

    def scan(self, prefix: Path, arch_prefix: Path) -> List[PackageRecord]:
        """
        Find installed packages by their packinfo/DESCRIPTION files.

        When a prefix holds several versions of one package the newest wins.
        """
        found: Dict[str, PackageRecord] = {}
        if not prefix.is_dir():
            return []
        for entry in sorted(prefix.iterdir()):
            description_file = entry / "packinfo" / "DESCRIPTION"
            if entry.name.startswith(".") or not entry.is_dir() or not description_file.is_file():
                continue
            try:
                description = read_description(description_file)
            except NumpkgError as e:
                logger.warning(f"Skipping {entry}: {e.message}")
                continue
            arch_directory = arch_prefix / self.config.arch / entry.name
            record = to_record(
                description,
                str(entry),
                str(arch_directory) if arch_directory.is_dir() else ""
            )
            existing = found.get(record.name)
            if existing is not None and compare(existing.version, record.version) is not VersionOrder.LESS:
                logger.warning(f"Ignoring {entry}, {existing} is newer")
                continue
            found[record.name] = record
        return list(found.values())

    def rebuild(self, options: Optional[InstallOptions] = None, names: Optional[Sequence[str]] = None) -> Registry:
        """
        Recreate a registry from the package directories on disk.

        The previous registry order is kept when the old file is readable;
        an unreadable file is replaced.

        Args:
            options: prefer_local / prefer_global select the registry
            names: Restrict the rebuilt registry to these packages

        Returns:
            The rebuilt, persisted registry
        """
        options = options or InstallOptions()
        installer = self.target_installer(options)
        prefix, arch_prefix = self.config.prefixes(installer is Installer.SYSTEM)
        path = self.store.path_for(installer)

        try:
            previous = self.store.load(path, installer)
        except CorruptRegistry as e:
            logger.warning(f"Discarding unreadable registry: {e.message}")
            previous = Registry(installer=installer)

        with self.transaction_logger.track(TransactionOperation.REBUILD, "*", installer=installer):
            records = self.scan(prefix, arch_prefix)
            if names:
                wanted = set(names)
                records = [r for r in records if r.name in wanted]

            position = {name: i for i, name in enumerate(previous.names())}
            records.sort(key=lambda r: position.get(r.name, len(position)))
            records = dependency_sorted(records)

            registry = Registry(installer=installer)
            for record in records:
                registry.add(record)
            self.store.persist(registry)

        logger.info(f"Rebuilt registry {path} with {len(registry)} packages")
        return registry
