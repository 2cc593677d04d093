# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Version Comparator

Single responsibility: Order dot-separated numeric version strings
"""

from enum import IntEnum
from typing import Tuple

from numpkg.core.errors import InvalidVersion, ValidationError


class VersionOrder(IntEnum):
    """Result of comparing two versions"""
    LESS = -1
    EQUAL = 0
    GREATER = 1


OPERATORS = ("<", "<=", "==", ">=", ">", "!=")


def parse_version(version: str) -> Tuple[int, ...]:
    """
    Split a version string into integer segments.

    Raises:
        InvalidVersion: If any segment is not a non-negative integer
    """
    if not isinstance(version, str) or not version.strip():
        raise InvalidVersion(str(version))
    segments = []
    for part in version.strip().split("."):
        if not (part.isascii() and part.isdigit()):
            raise InvalidVersion(version)
        segments.append(int(part))
    return tuple(segments)


def is_valid_version(version: str) -> bool:
    try:
        parse_version(version)
    except InvalidVersion:
        return False
    return True


def compare(a: str, b: str) -> VersionOrder:
    """
    Compare two versions segment by segment.

    The first differing segment decides. When one version is a strict prefix
    of the other the shorter one is LESS, so "1.2" < "1.2.0".

    Args:
        a: First version
        b: Second version

    Returns:
        VersionOrder of a relative to b
    """
    left = parse_version(a)
    right = parse_version(b)
    for x, y in zip(left, right):
        if x != y:
            return VersionOrder.LESS if x < y else VersionOrder.GREATER
    if len(left) == len(right):
        return VersionOrder.EQUAL
    return VersionOrder.LESS if len(left) < len(right) else VersionOrder.GREATER


def satisfies(version: str, operator: str, required: str) -> bool:
    """Evaluate `version <operator> required`."""
    order = compare(version, required)
    if operator == "<":
        return order is VersionOrder.LESS
    if operator == "<=":
        return order is not VersionOrder.GREATER
    if operator == "==":
        return order is VersionOrder.EQUAL
    if operator == ">=":
        return order is not VersionOrder.LESS
    if operator == ">":
        return order is VersionOrder.GREATER
    if operator == "!=":
        return order is not VersionOrder.EQUAL
    raise ValidationError(f"Unknown version operator: {operator!r}", field="operator")
