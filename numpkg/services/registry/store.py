# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Registry Store

Single responsibility: Load, merge and persist the local and global registries
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from numpkg.core.errors import CorruptRegistry
from numpkg.models.registry_models import Installer, PackageRecord, Registry

from .resolver import dependency_sorted

logger = logging.getLogger(__name__)

REGISTRY_FORMAT = 1


class RegistryStore:
    """Reads and writes the two registry files"""

    def __init__(self, local_path: Path, global_path: Path):
        """
        Initialize registry store.

        Args:
            local_path: Registry file of the current user
            global_path: System-wide registry file
        """
        self.paths = {
            Installer.USER: Path(local_path),
            Installer.SYSTEM: Path(global_path),
        }

    def path_for(self, installer: Installer) -> Path:
        return self.paths[installer]

    def load(self, path: Path, installer: Installer) -> Registry:
        """
        Load a registry from disk.

        An absent or blank file is an empty registry.

        Raises:
            CorruptRegistry: If the file cannot be parsed
        """
        path = Path(path)
        registry = Registry(installer=installer)
        if not path.exists():
            return registry

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise CorruptRegistry(str(path), f"unreadable: {e}") from e
        if not text.strip():
            return registry

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise CorruptRegistry(str(path), f"invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("packages"), list):
            raise CorruptRegistry(str(path), "expected an object with a 'packages' list")
        if data.get("format", REGISTRY_FORMAT) != REGISTRY_FORMAT:
            raise CorruptRegistry(str(path), f"unsupported format {data.get('format')!r}")

        for entry in data["packages"]:
            try:
                record = PackageRecord.model_validate(entry)
            except PydanticValidationError as e:
                raise CorruptRegistry(str(path), f"invalid package record: {e}") from e
            if record.name in registry:
                raise CorruptRegistry(str(path), f"duplicate package name {record.name!r}")
            registry.add(record)

        logger.debug(f"Loaded {len(registry)} packages from {path}")
        return registry

    def load_local(self) -> Registry:
        return self.load(self.paths[Installer.USER], Installer.USER)

    def load_global(self) -> Registry:
        return self.load(self.paths[Installer.SYSTEM], Installer.SYSTEM)

    @staticmethod
    def effective(local: Registry, global_: Registry) -> Dict[str, PackageRecord]:
        """
        Merged view used for resolution: local records shadow global ones.
        """
        merged = dict(local.packages)
        for name, record in global_.packages.items():
            if name not in merged:
                merged[name] = record
        return merged

    @staticmethod
    def find_by_name(registry: Registry, name: str) -> Optional[PackageRecord]:
        """Exact, case-sensitive lookup"""
        return registry.find_by_name(name)

    def persist(self, registry: Registry, path: Optional[Path] = None):
        """
        Write the whole registry atomically.

        Records are stored in dependency order (providers first). The data is
        written to a temporary file next to the target and swapped in with
        os.replace, so readers never observe a partial file.

        Args:
            registry: Registry to write
            path: Target file, defaults to the registry's configured path
        """
        target = Path(path) if path else self.path_for(registry.installer)
        target.parent.mkdir(parents=True, exist_ok=True)

        records: List[PackageRecord] = dependency_sorted(registry.records())
        data = {
            "format": REGISTRY_FORMAT,
            "installer": registry.installer.value,
            "packages": [record.model_dump(mode="json") for record in records],
        }

        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info(f"Saved {len(records)} packages to {target}")
