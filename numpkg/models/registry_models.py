# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Registry Data Models

Defines data structures for the package registry including package records,
dependency constraints, registries, transactions and command results.
"""

import re
from typing import List, Dict, Optional, Any
from datetime import datetime
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from numpkg.core.errors import ValidationError


class Installer(str, Enum):
    """Which registry owns a package"""
    USER = "user"
    SYSTEM = "system"


class TransactionStatus(str, Enum):
    """Transaction status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionOperation(str, Enum):
    """Type of transaction operation"""
    INSTALL = "install"
    UNINSTALL = "uninstall"
    REBUILD = "rebuild"
    UPDATE = "update"


class PackageStatus(str, Enum):
    """Status reported by describe"""
    LOADED = "Loaded"
    NOT_LOADED = "Not loaded"
    NOT_INSTALLED = "Not installed"


_CONSTRAINT_RE = re.compile(
    r"^\s*(?P<name>[^\s(]+)\s*(?:\(\s*(?P<op><=|>=|==|!=|<|>|=)\s*(?P<version>[^\s)]+)\s*\))?\s*$"
)


class DependencyConstraint(BaseModel):
    """
    A requirement one package declares against another.

    Example: "control (>= 3.0)" -> name=control, operator=">=", version="3.0".
    Without operator any installed version satisfies it.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    operator: Optional[str] = None
    version: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "DependencyConstraint":
        """
        Parse one entry of a Depends list.

        Raises:
            ValidationError: If the entry is malformed
        """
        match = _CONSTRAINT_RE.match(text)
        if not match:
            raise ValidationError(f"Malformed dependency: {text!r}", field="depends")
        operator = match.group("op")
        if operator == "=":
            operator = "=="
        return cls(name=match.group("name"), operator=operator, version=match.group("version"))

    def __str__(self) -> str:
        if self.operator and self.version:
            return f"{self.name} ({self.operator} {self.version})"
        return self.name


class PackageRecord(BaseModel):
    """Metadata of one installed package"""
    name: str
    version: str
    directory: str
    arch_directory: str = ""
    dependencies: List[DependencyConstraint] = Field(default_factory=list)
    installer: Installer = Installer.USER
    autoload: bool = False
    title: str = ""
    description: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    # Runtime session state, never persisted
    loaded: bool = Field(default=False, exclude=True)

    def directories(self) -> List[str]:
        """Installed directories, arch directory omitted when empty or identical"""
        dirs = [self.directory]
        if self.arch_directory and self.arch_directory != self.directory:
            dirs.append(self.arch_directory)
        return dirs

    def dependency_names(self) -> List[str]:
        return [dep.name for dep in self.dependencies]

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


class Registry(BaseModel):
    """
    One package registry (local or global).

    Maps package name to exactly one record; insertion order is kept.
    """
    installer: Installer
    packages: Dict[str, PackageRecord] = Field(default_factory=dict)

    def find_by_name(self, name: str) -> Optional[PackageRecord]:
        return self.packages.get(name)

    def add(self, record: PackageRecord) -> Optional[PackageRecord]:
        """Insert or replace a record, returning the replaced one"""
        previous = self.packages.pop(record.name, None)
        self.packages[record.name] = record.model_copy(update={"installer": self.installer})
        return previous

    def remove(self, name: str) -> Optional[PackageRecord]:
        return self.packages.pop(name, None)

    def names(self) -> List[str]:
        return list(self.packages)

    def records(self) -> List[PackageRecord]:
        return list(self.packages.values())

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __len__(self) -> int:
        return len(self.packages)


class PackageDescription(BaseModel):
    """Parsed DESCRIPTION file of a package"""
    name: str
    version: str
    title: str = ""
    description: str = ""
    depends: List[DependencyConstraint] = Field(default_factory=list)
    autoload: bool = False
    other_fields: Dict[str, str] = Field(default_factory=dict)


class BuildManifest(BaseModel):
    """What the build toolchain produced in a staging directory"""
    description: PackageDescription
    package_root: Path
    inst_dir: Optional[Path] = None
    packinfo_files: List[Path] = Field(default_factory=list)
    arch_files: List[Path] = Field(default_factory=list)
    source: str = ""


class InstallOptions(BaseModel):
    """Options for install / uninstall / rebuild"""
    no_deps: bool = False
    prefer_local: bool = False
    prefer_global: bool = False
    force: bool = False
    verbose: bool = False


class CommandOptions(InstallOptions):
    """Options accepted on the command surface"""
    forge: bool = False


class SafetyVerdict(BaseModel):
    """Outcome of an unload / uninstall safety check"""
    target: str
    ok: bool
    blocked_by: List[str] = Field(default_factory=list)


class InstallReport(BaseModel):
    """Aggregate result of a batch install"""
    installed: List[PackageRecord] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class UpdateReport(BaseModel):
    """Result of checking installed packages against the forge"""
    checked: List[str] = Field(default_factory=list)
    outdated: Dict[str, str] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    install: Optional[InstallReport] = None

    @property
    def ok(self) -> bool:
        return self.install is None or self.install.ok


class PackageDescriptionView(BaseModel):
    """Entry returned by describe"""
    name: str
    status: PackageStatus
    record: Optional[PackageRecord] = None
    functions: Dict[str, List[str]] = Field(default_factory=dict)


class TransactionRecord(BaseModel):
    """Transaction record for mutating operations"""
    id: str
    operation: TransactionOperation
    package_name: str
    version: Optional[str] = None
    installer: Optional[Installer] = None
    status: TransactionStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "id": self.id,
            "operation": self.operation.value,
            "package_name": self.package_name,
            "version": self.version,
            "installer": self.installer.value if self.installer else None,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }
