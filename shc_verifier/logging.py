# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from enum import Enum

from common.logging import operations


class VerifierOperationsLogEntry(operations.OperationsLogEntry):
    """Container for verifier operations specific logging."""

    class Operation(Enum):
        verification = "VERIFICATION"
        key_resolution = "KEY_RESOLUTION"
        directory_sync = "DIRECTORY_SYNC"
        cvx_import = "CVX_IMPORT"

    class Step(Enum):
        verification_evaluation = "EVALUATION"
        key_resolution_cache = "CACHE"
        key_resolution_fetch = "KEY_FETCH"
        key_resolution_stale = "STALE_FALLBACK"
        directory_sync_fetch = "DIRECTORY_FETCH"
        directory_sync_prefetch = "KEY_PREFETCH"
        cvx_import_fetch = "CVX_FETCH"

    operation: Operation
    step: Step

    error_code: str | None = None
