# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Package Toolchain - Fetch and build package archives in staging directories.

- ArchiveFetcher: local files, http(s) URLs and forge package names
- TarballBuilder: unpack, read DESCRIPTION, run make in src/
- staging_directory: temporary directory removed on every exit path
"""

import logging
import os
import re
import shutil
import subprocess
import tarfile
import tempfile
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import httpx

from numpkg.core.errors import BuildError, FetchError, NotFoundError, NumpkgError, ValidationError
from numpkg.models.registry_models import BuildManifest
from numpkg.services.forge_client import ForgeClient

logger = logging.getLogger(__name__)

FORGE_SCHEME = "forge:"
PACKINFO_FILES = ("DESCRIPTION", "COPYING", "INDEX", "NEWS", "CITATION", "ONEWS", "on_uninstall.m")
ARCH_SUFFIXES = (".oct", ".mex", ".so", ".dll", ".dylib")
_URL_RE = re.compile(r"^\w+://")
_NAME_LIKE_RE = re.compile(r"^[\w-]+$")


@contextmanager
def staging_directory(root: Optional[str] = None, prefix: str = "numpkg-") -> Iterator[Path]:
    """Create a temporary staging directory, removed on exit even on error"""
    if root:
        Path(root).mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


class ArchiveFetcher:
    """Resolves a source locator to a local archive inside the staging directory"""

    def __init__(self, forge: Optional[ForgeClient] = None, timeout: float = 30.0):
        self.forge = forge
        self.timeout = timeout

    def fetch(self, locator: str, staging_dir: Path) -> Path:
        """
        Make the archive named by `locator` available locally.

        Args:
            locator: File path, http(s) URL or "forge:<name>"
            staging_dir: Directory downloads are written to

        Returns:
            Path of the archive (or unpacked package directory)

        Raises:
            FetchError: If the archive cannot be found or downloaded
        """
        if locator.startswith(FORGE_SCHEME):
            return self._fetch_forge(locator[len(FORGE_SCHEME):], staging_dir)

        local = Path(locator).expanduser()
        if local.exists():
            return local.resolve()

        if _URL_RE.match(locator):
            filename = locator.rstrip("/").rsplit("/", 1)[-1] or "package.tar.gz"
            return self._download(locator, staging_dir / filename)

        if _NAME_LIKE_RE.match(locator):
            raise FetchError(
                locator,
                "file not found. This looks like a forge package name, "
                f"did you mean: install --forge {locator}"
            )
        raise FetchError(locator, "file not found")

    def _fetch_forge(self, name: str, staging_dir: Path) -> Path:
        if self.forge is None:
            raise FetchError(name, "no forge configured")
        try:
            version = self.forge.latest_version(name)
            url = self.forge.download_url(name, version)
        except (NotFoundError, ValidationError) as e:
            raise FetchError(name, e.message) from e
        return self._download(url, staging_dir / f"{name.lower()}-{version}.tar.gz")

    def _download(self, url: str, target: Path) -> Path:
        logger.info(f"Downloading {url}")
        try:
            with httpx.stream("GET", url, timeout=self.timeout, follow_redirects=True) as response:
                if response.status_code >= 400:
                    raise FetchError(url, f"HTTP {response.status_code}")
                with open(target, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as e:
            raise FetchError(url, str(e)) from e
        return target


class TarballBuilder:
    """Unpacks a package archive and compiles its sources"""

    def __init__(self, make_command: str = "make", mkoctfile: str = "mkoctfile", verbose: bool = False):
        self.make_command = make_command
        self.mkoctfile = mkoctfile
        self.verbose = verbose

    def build(self, archive: Path, staging_dir: Path) -> BuildManifest:
        """
        Unpack `archive` into the staging directory and build it.

        Returns:
            Manifest describing the package and the files to install

        Raises:
            BuildError: If unpacking, parsing DESCRIPTION or compiling fails
        """
        source = str(archive)
        root = self._unpack(Path(archive), staging_dir / "build", source)

        from numpkg.services.registry.description import read_description

        description_file = root / "DESCRIPTION"
        if not description_file.exists():
            raise BuildError(source, "package has no DESCRIPTION file")
        try:
            description = read_description(description_file)
        except NumpkgError as e:
            raise BuildError(source, e.message) from e

        arch_files = self._compile(root, source)

        inst_dir = root / "inst"
        return BuildManifest(
            description=description,
            package_root=root,
            inst_dir=inst_dir if inst_dir.is_dir() else None,
            packinfo_files=[root / name for name in PACKINFO_FILES if (root / name).is_file()],
            arch_files=arch_files,
            source=source,
        )

    def _unpack(self, archive: Path, target: Path, source: str) -> Path:
        target.mkdir(parents=True, exist_ok=True)
        try:
            if archive.is_dir():
                shutil.copytree(archive, target / archive.name)
            elif tarfile.is_tarfile(archive):
                with tarfile.open(archive) as tar:
                    tar.extractall(target, filter="data")
            elif zipfile.is_zipfile(archive):
                with zipfile.ZipFile(archive) as zf:
                    zf.extractall(target)
            else:
                raise BuildError(source, "unsupported archive format")
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise BuildError(source, f"cannot unpack archive: {e}") from e

        entries = [p for p in target.iterdir() if not p.name.startswith(".")]
        if len(entries) != 1 or not entries[0].is_dir():
            raise BuildError(source, "archive must contain exactly one top-level package directory")
        return entries[0]

    def _compile(self, root: Path, source: str) -> List[Path]:
        src = root / "src"
        if not src.is_dir():
            return []

        if (src / "Makefile").exists() or (src / "makefile").exists():
            env = dict(os.environ, MKOCTFILE=self.mkoctfile)
            logger.info(f"Building {source} with {self.make_command}")
            try:
                result = subprocess.run(
                    [self.make_command, "-C", str(src)],
                    env=env,
                    capture_output=True,
                    text=True
                )
            except OSError as e:
                raise BuildError(source, f"cannot run {self.make_command}: {e}") from e
            if self.verbose and result.stdout:
                logger.info(result.stdout)
            if result.returncode != 0:
                raise BuildError(
                    source,
                    f"{self.make_command} exited with status {result.returncode}",
                    details={"stderr": result.stderr[-4000:]}
                )

        return sorted(p for p in src.iterdir() if p.is_file() and p.suffix in ARCH_SUFFIXES)
