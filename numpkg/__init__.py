# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
numpkg - add-on package manager for a numerical computing runtime.

Installs, removes, loads and unloads packages tracked in a per-user (local)
and a system-wide (global) registry.
"""

__version__ = "1.0.0"
