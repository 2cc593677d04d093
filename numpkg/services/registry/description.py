# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Package Description Parser

Single responsibility: Read DESCRIPTION and INDEX files shipped with packages
"""

import logging
from pathlib import Path
from typing import Dict, List

from numpkg.core.errors import ValidationError
from numpkg.models.registry_models import DependencyConstraint, PackageDescription, PackageRecord

from .version import is_valid_version

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "version", "date", "author", "maintainer", "title", "description")
TRUE_VALUES = {"yes", "true", "on", "1"}


def parse_fields(text: str) -> Dict[str, str]:
    """
    Parse `Key: value` lines into a dict with lower-cased keys.

    Lines starting with whitespace continue the previous value, `#` lines are
    comments.
    """
    fields: Dict[str, str] = {}
    current = None
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if line[0] in " \t":
            if current is None:
                raise ValidationError(f"Continuation line without a key at line {lineno}")
            fields[current] = f"{fields[current]} {line.strip()}".strip()
            continue
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            raise ValidationError(f"Malformed line {lineno}: {line!r}")
        current = key.strip().lower()
        fields[current] = value.strip()
    return fields


def parse_depends(value: str) -> List[DependencyConstraint]:
    """Parse a comma-separated Depends value"""
    return [DependencyConstraint.parse(item) for item in value.split(",") if item.strip()]


def parse_description(text: str) -> PackageDescription:
    """
    Parse the contents of a DESCRIPTION file.

    Raises:
        ValidationError: If required fields are missing or the version is invalid
    """
    fields = parse_fields(text)

    missing = [key for key in REQUIRED_FIELDS if not fields.get(key)]
    if missing:
        raise ValidationError(
            f"DESCRIPTION is missing required fields: {', '.join(missing)}",
            field=missing[0],
            details={"missing": missing}
        )

    if not is_valid_version(fields["version"]):
        raise ValidationError(f"Invalid package version: {fields['version']!r}", field="version")

    other = {
        key: value for key, value in fields.items()
        if key not in ("name", "version", "title", "description", "depends", "autoload")
    }
    return PackageDescription(
        name=fields["name"],
        version=fields["version"],
        title=fields["title"],
        description=fields["description"],
        depends=parse_depends(fields.get("depends", "")),
        autoload=fields.get("autoload", "").strip().lower() in TRUE_VALUES,
        other_fields=other,
    )


def read_description(path: Path) -> PackageDescription:
    """Read and parse a DESCRIPTION file from disk"""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(f"Cannot read {path}: {e}") from e
    return parse_description(text)


def to_record(
    description: PackageDescription,
    directory: str,
    arch_directory: str = ""
) -> PackageRecord:
    """Build a registry record from a parsed description"""
    return PackageRecord(
        name=description.name,
        version=description.version,
        directory=directory,
        arch_directory=arch_directory,
        dependencies=list(description.depends),
        autoload=description.autoload,
        title=description.title,
        description=description.description,
        metadata=dict(description.other_fields),
    )


def parse_index(text: str) -> Dict[str, List[str]]:
    """
    Parse an INDEX file into category -> function names.

    The optional first line `toolbox >> Title` is a header. Lines without
    leading whitespace name a category, indented lines list functions.
    """
    categories: Dict[str, List[str]] = {}
    current = "Uncategorized"
    for line in text.splitlines():
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if ">>" in line:
            continue
        if line[0] in " \t":
            categories.setdefault(current, []).extend(line.split())
        else:
            current = line.strip()
            categories.setdefault(current, [])
    return {category: names for category, names in categories.items() if names}


def read_index(package_dir: Path) -> Dict[str, List[str]]:
    """Read packinfo/INDEX of an installed package, empty when absent"""
    index_file = package_dir / "packinfo" / "INDEX"
    if not index_file.exists():
        return {}
    try:
        return parse_index(index_file.read_text(encoding="utf-8"))
    except OSError as e:
        logger.warning(f"Failed to read {index_file}: {e}")
        return {}
