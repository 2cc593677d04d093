# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Registry Module - Package Management

Modular package management system following Unix philosophy:
- Each module does one thing well
- Modules compose to form complete system
- Text-based registries throughout
"""

from .store import RegistryStore
from .resolver import DependencyResolver
from .transactions import TransactionLogger
from .operations import InstallOrchestrator
from .loader import LoadManager
from .updates import UpdateChecker
from .service import Command, PackageService

__all__ = [
    "RegistryStore",
    "DependencyResolver",
    "TransactionLogger",
    "InstallOrchestrator",
    "LoadManager",
    "UpdateChecker",
    "Command",
    "PackageService",
]
