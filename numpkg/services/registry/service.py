# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Package Service - Modular Composition

Composes the focused registry modules into the command surface.
Each module does one thing well; this class only wires and dispatches.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from numpkg.core.config import Config, get_config
from numpkg.core.errors import ValidationError
from numpkg.models.registry_models import (
    CommandOptions,
    InstallReport,
    PackageDescriptionView,
    PackageRecord,
    PackageStatus,
    Registry,
    UpdateReport,
)
from numpkg.services.forge_client import ForgeClient, validate_package_name
from numpkg.services.search_path import SearchPath
from numpkg.services.suite_runner import CommandSuiteRunner
from numpkg.services.toolchain import FORGE_SCHEME, ArchiveFetcher, TarballBuilder

from .description import read_index
from .loader import LOAD_ALL, LoadManager
from .operations import InstallOrchestrator
from .resolver import DependencyResolver
from .store import RegistryStore
from .transactions import TransactionLogger
from .updates import UpdateChecker

logger = logging.getLogger(__name__)


class Command(str, Enum):
    """Commands of the package manager"""
    INSTALL = "install"
    UNINSTALL = "uninstall"
    LOAD = "load"
    UNLOAD = "unload"
    LIST = "list"
    DESCRIBE = "describe"
    UPDATE = "update"
    REBUILD = "rebuild"
    TEST = "test"


FORGE_COMMANDS = {Command.INSTALL, Command.LIST}


class PackageService:
    """
    Unified package service (modular composition).

    Composes:
    - RegistryStore: Read and write registries
    - DependencyResolver: Load, unload, uninstall and install orders
    - InstallOrchestrator: Install, uninstall, rebuild
    - LoadManager: Activate packages on the search path
    - UpdateChecker: Compare with the forge
    """

    def __init__(
        self,
        store: RegistryStore,
        orchestrator: InstallOrchestrator,
        loader: LoadManager,
        updates: UpdateChecker,
        forge: ForgeClient,
        suite_runner: CommandSuiteRunner,
        path_activator: SearchPath
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.loader = loader
        self.updates = updates
        self.forge = forge
        self.suite_runner = suite_runner
        self.path_activator = path_activator

        self._handlers: Dict[Command, Callable[[List[str], CommandOptions], Any]] = {
            Command.INSTALL: self.install,
            Command.UNINSTALL: self.uninstall,
            Command.LOAD: self.load,
            Command.UNLOAD: self.unload,
            Command.LIST: self.list,
            Command.DESCRIBE: self.describe,
            Command.UPDATE: self.update,
            Command.REBUILD: self.rebuild,
            Command.TEST: self.test,
        }

    @classmethod
    def from_config(
        cls,
        config: Optional[Config] = None,
        path_activator: Optional[SearchPath] = None,
        forge: Optional[ForgeClient] = None,
        privileged: Optional[bool] = None
    ) -> "PackageService":
        """
        Build the service and its collaborators from configuration.

        Args:
            config: Configuration, the global instance when None
            path_activator: Session search path, read from the environment when None
            forge: Forge client, built from config when None
            privileged: Override privilege detection
        """
        config = config or get_config()
        path_activator = path_activator if path_activator is not None else SearchPath.from_env()
        forge = forge or ForgeClient(config.forge_url, timeout=config.http_timeout)

        store = RegistryStore(config.local_list_path(), config.global_list_path())
        resolver = DependencyResolver(config.runtime_name, config.runtime_version)
        orchestrator = InstallOrchestrator(
            config,
            store,
            resolver,
            ArchiveFetcher(forge, timeout=config.http_timeout),
            TarballBuilder(config.make_command, config.mkoctfile),
            path_activator,
            TransactionLogger(config.transactions_log_path()),
            privileged=privileged,
        )
        return cls(
            store,
            orchestrator,
            LoadManager(path_activator, resolver),
            UpdateChecker(forge, orchestrator),
            forge,
            CommandSuiteRunner(config.test_command),
            path_activator,
        )

    def execute(self, command: Command, names: Sequence[str] = (), options: Optional[CommandOptions] = None) -> Any:
        """
        Run one command.

        Raises:
            ValidationError: If the options do not apply to the command
        """
        command = Command(command)
        options = options or CommandOptions()
        if options.forge and command not in FORGE_COMMANDS:
            raise ValidationError(f"Option --forge is only valid with install and list, not {command.value}")
        if options.prefer_local and options.prefer_global:
            raise ValidationError("Options --local and --global are mutually exclusive")
        self.orchestrator.builder.verbose = options.verbose
        logger.debug(f"Running {command.value} {' '.join(names)}")
        return self._handlers[command](list(names), options)

    def registries(self) -> Tuple[Registry, Registry]:
        return self.store.load_local(), self.store.load_global()

    def effective(self) -> Dict[str, PackageRecord]:
        return self.store.effective(*self.registries())

    def autoload(self) -> List[PackageRecord]:
        """Load the packages flagged for autoloading"""
        return self.loader.load_autoloads(self.effective())

    # =========================================================================
    # COMMAND HANDLERS
    # =========================================================================

    def install(self, sources: List[str], options: CommandOptions) -> InstallReport:
        if not sources:
            raise ValidationError("install requires at least one package", field="sources")
        if options.forge:
            sources = [f"{FORGE_SCHEME}{validate_package_name(name)}" for name in sources]
        return self.orchestrator.install(sources, options)

    def uninstall(self, names: List[str], options: CommandOptions) -> List[PackageRecord]:
        if not names:
            raise ValidationError("uninstall requires at least one package", field="names")
        return self.orchestrator.uninstall(names, options)

    def load(self, names: List[str], options: CommandOptions) -> List[PackageRecord]:
        if not names:
            raise ValidationError("load requires at least one package", field="names")
        return self.loader.load(names, self.effective(), allow_missing=options.no_deps)

    def unload(self, names: List[str], options: CommandOptions) -> List[PackageRecord]:
        if not names:
            raise ValidationError("unload requires at least one package", field="names")
        return self.loader.unload(names, self.effective(), allow_missing=options.no_deps)

    def list(self, names: List[str], options: CommandOptions):
        """
        List installed packages, or the forge's packages with --forge.

        Returns:
            (local records, global records) with the loaded flag filled in,
            or the list of forge package names
        """
        if options.forge:
            return self.forge.list_packages()

        local, global_ = self.registries()
        wanted = set(names)

        def view(registry: Registry) -> List[PackageRecord]:
            return [
                record.model_copy(update={"loaded": self.path_activator.is_active(record.directory)})
                for record in registry.records()
                if not wanted or record.name in wanted
            ]

        return view(local), view(global_)

    def describe(self, names: List[str], options: CommandOptions) -> List[PackageDescriptionView]:
        effective = self.loader.mark_loaded(self.effective())
        views = []
        for name in names or list(effective):
            record = effective.get(name)
            if record is None:
                views.append(PackageDescriptionView(name=name, status=PackageStatus.NOT_INSTALLED))
                continue
            views.append(PackageDescriptionView(
                name=name,
                status=PackageStatus.LOADED if record.loaded else PackageStatus.NOT_LOADED,
                record=record,
                functions=read_index(Path(record.directory)) if options.verbose else {},
            ))
        return views

    def update(self, names: List[str], options: CommandOptions) -> UpdateReport:
        return self.updates.update(self.effective(), names or None, options)

    def rebuild(self, names: List[str], options: CommandOptions) -> Registry:
        return self.orchestrator.rebuild(options, names or None)

    def test(self, names: List[str], options: CommandOptions) -> Dict[str, bool]:
        """
        Run the self tests of installed packages.

        The packages are loaded for the run; the search path is restored
        afterwards, also on error.

        Returns:
            Package name -> tests passed
        """
        if not names:
            raise ValidationError("test requires at least one package", field="names")
        effective = self.effective()
        if LOAD_ALL in names:
            names = list(effective)
        snapshot = self.path_activator.snapshot()
        results: Dict[str, bool] = {}
        try:
            self.loader.load(names, effective, allow_missing=options.no_deps)
            for name in names:
                passed = self.suite_runner.run(effective[name].directories())
                logger.info(f"Tests of {name}: {'passed' if passed else 'FAILED'}")
                results[name] = passed
        finally:
            self.path_activator.restore(snapshot)
        return results
