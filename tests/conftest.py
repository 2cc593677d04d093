# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Test Fixtures and Utilities

Provides pytest fixtures for isolated registries, install prefixes, package
archives and a mocked forge.
"""

import os
import sys
import tarfile
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import httpx
import pytest

# Add repository root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Keep the user's configuration out of the tests
os.environ["NUMPKG_CONFIG_PATH"] = os.path.join(tempfile.gettempdir(), "numpkg-tests-no-config.yaml")
os.environ.pop("NUMPKG_PATH", None)

from numpkg.core.config import Config
from numpkg.models.registry_models import DependencyConstraint, Installer, PackageRecord
from numpkg.services.forge_client import ForgeClient
from numpkg.services.registry import PackageService
from numpkg.services.search_path import SearchPath


# ============================================================================
# Package Helpers
# ============================================================================

def make_record(
    name: str,
    version: str = "1.0.0",
    depends: Sequence[str] = (),
    directory: Optional[str] = None,
    installer: Installer = Installer.USER,
    autoload: bool = False
) -> PackageRecord:
    """
    Build a registry record.

    Args:
        name: Package name
        version: Package version
        depends: Dependency entries, e.g. "b (>= 1.0)"
        directory: Install directory, /pkgs/<name>-<version> by default
    """
    return PackageRecord(
        name=name,
        version=version,
        directory=directory or f"/pkgs/{name}-{version}",
        dependencies=[DependencyConstraint.parse(dep) for dep in depends],
        installer=installer,
        autoload=autoload,
    )


def effective_set(*records: PackageRecord) -> Dict[str, PackageRecord]:
    return {record.name: record for record in records}


def description_text(
    name: str,
    version: str = "1.0.0",
    depends: Sequence[str] = (),
    autoload: bool = False
) -> str:
    lines = [
        f"Name: {name}",
        f"Version: {version}",
        "Date: 2024-01-01",
        "Author: Test Author <author@example.com>",
        "Maintainer: Test Maintainer <maintainer@example.com>",
        f"Title: The {name} package",
        f"Description: Functions provided by {name}.",
        "License: GPLv3+",
    ]
    if depends:
        lines.append("Depends: " + ", ".join(depends))
    if autoload:
        lines.append("Autoload: yes")
    return "\n".join(lines) + "\n"


def write_package(
    root: Path,
    name: str,
    version: str = "1.0.0",
    depends: Sequence[str] = (),
    autoload: bool = False,
    functions: Sequence[str] = ("demo_fn",),
    index: Optional[str] = None
) -> Path:
    """Create an unpacked package source tree under root/<name>-<version>"""
    package_dir = root / f"{name}-{version}"
    (package_dir / "inst").mkdir(parents=True)
    (package_dir / "DESCRIPTION").write_text(description_text(name, version, depends, autoload))
    (package_dir / "COPYING").write_text("GPLv3+\n")
    for function in functions:
        (package_dir / "inst" / f"{function}.m").write_text(f"function {function}()\nend\n")
    if index is not None:
        (package_dir / "INDEX").write_text(index)
    return package_dir


def make_tarball(root: Path, name: str, version: str = "1.0.0", depends: Sequence[str] = (), **kwargs) -> Path:
    """Create <name>-<version>.tar.gz holding a single package directory"""
    sources = root / "sources"
    sources.mkdir(parents=True, exist_ok=True)
    package_dir = write_package(sources, name, version, depends, **kwargs)
    archive = root / f"{name}-{version}.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        tar.add(package_dir, arcname=package_dir.name)
    return archive


def forge_page(version: str) -> str:
    return (
        "<html><body><table>\n"
        '  <tr><td class="package_table">Package Version:</td>\n'
        f"      <td>{version}</td></tr>\n"
        "</table></body></html>\n"
    )


def forge_transport(versions: Dict[str, str], packages: Optional[List[str]] = None) -> httpx.MockTransport:
    """Mock forge answering package pages for `versions` and 404 otherwise"""
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/list_packages.php":
            return httpx.Response(200, text="\n".join(packages if packages is not None else versions))
        name = path.strip("/").split("/")[0]
        if path.endswith("/index.html") and name in versions:
            return httpx.Response(200, text=forge_page(versions[name]))
        return httpx.Response(404, text="not found")

    return httpx.MockTransport(handler)


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def config(tmp_path):
    """Configuration pointing every path into the test directory"""
    return Config(
        local_list=str(tmp_path / "registry" / "local.json"),
        global_list=str(tmp_path / "registry" / "global.json"),
        prefix=str(tmp_path / "local"),
        arch_prefix=str(tmp_path / "local"),
        global_prefix=str(tmp_path / "global"),
        global_arch_prefix=str(tmp_path / "global-arch"),
        arch="x86_64-linux",
        runtime_version="9.2.0",
        forge_url="https://forge.test",
        test_command=[],
        staging_root=str(tmp_path / "staging"),
        transactions_log=str(tmp_path / "transactions.jsonl"),
    )


@pytest.fixture
def search_path():
    return SearchPath()


@pytest.fixture
def forge_versions():
    """Published versions served by the mocked forge"""
    return {}


@pytest.fixture
def forge(config, forge_versions):
    client = httpx.Client(transport=forge_transport(forge_versions))
    yield ForgeClient(config.forge_url, client=client)
    client.close()


@pytest.fixture
def service(config, search_path, forge):
    """Package service running unprivileged against the test directories"""
    return PackageService.from_config(config, path_activator=search_path, forge=forge, privileged=False)


@pytest.fixture
def orchestrator(service):
    return service.orchestrator


@pytest.fixture
def sources(tmp_path):
    """Directory for package archives built by a test"""
    path = tmp_path / "archives"
    path.mkdir()
    return path
