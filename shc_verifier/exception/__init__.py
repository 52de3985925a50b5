# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection of Exceptions & Errors
"""
from .errors import *  # noqa:F403,F401 Convenience imports
