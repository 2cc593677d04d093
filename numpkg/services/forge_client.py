# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Forge Client - Looks up published packages on the package forge.

Provides functionality to:
- Read the latest published version of a package
- Build the download URL of a release archive
- List every package the forge publishes
"""

import logging
import re
import httpx
from typing import List, Optional

from numpkg.core.errors import FetchError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_VERSION_RE = re.compile(r'<tdclass="package_table">PackageVersion:</td><td>([\d.]*)</td>')


def validate_package_name(name: str) -> str:
    """
    Check a forge package name and normalise it to lower case.

    Raises:
        ValidationError: If the name has characters other than alphanumerics, '-', '.', '_'
    """
    if not isinstance(name, str) or not _NAME_RE.match(name):
        raise ValidationError(f"Invalid package name: {name!r}", field="name")
    return name.lower()


class ForgeClient:
    """Remote index client for the package forge"""

    def __init__(
        self,
        base_url: str = "https://packages.octave.org",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None
    ):
        """
        Initialize forge client.

        Args:
            base_url: Forge root URL
            timeout: HTTP timeout in seconds
            client: Preconfigured httpx client (tests inject a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _get(self, url: str) -> httpx.Response:
        client = self._client or httpx.Client(timeout=self.timeout, follow_redirects=True)
        try:
            return client.get(url)
        except httpx.HTTPError as e:
            raise FetchError(url, str(e)) from e
        finally:
            if self._client is None:
                client.close()

    def latest_version(self, name: str) -> str:
        """
        Get the current published version of a package.

        Raises:
            NotFoundError: If the forge does not publish the package
            FetchError: If the forge cannot be reached or the page is unreadable
        """
        name = validate_package_name(name)
        response = self._get(f"{self.base_url}/{name}/index.html")
        if response.status_code == 404:
            raise NotFoundError("Forge package", name)
        if response.status_code >= 400:
            raise FetchError(name, f"forge returned HTTP {response.status_code}")

        # Blanks removed for simpler matching
        html = re.sub(r"\s", "", response.text)
        match = _VERSION_RE.search(html)
        if not match or not match.group(1):
            raise FetchError(name, "could not read version number from package page")

        version = match.group(1)
        logger.debug(f"Forge publishes {name} {version}")
        return version

    def download_url(self, name: str, version: str) -> str:
        """URL of the release archive of `name` at `version`"""
        name = validate_package_name(name)
        return f"{self.base_url}/download/{name}-{version}.tar.gz"

    def list_packages(self) -> List[str]:
        """
        List every package published on the forge.

        Raises:
            FetchError: If the list cannot be downloaded
        """
        response = self._get(f"{self.base_url}/list_packages.php")
        if response.status_code >= 400:
            raise FetchError("package list", f"forge returned HTTP {response.status_code}")
        return response.text.split()
