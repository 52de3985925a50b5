# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""Configuration definition and collector of default values."""

import os
from typing import Annotated

from fastapi import Depends

import common.config as conf
from common.parsing import interpret_as_bool

VCI_DIRECTORY_URL = "https://raw.githubusercontent.com/the-commons-project/vci-directory/main/vci-issuers.json"
CVX_CODES_URL = "https://www2a.cdc.gov/vaccines/iis/iisstandards/downloads/cvx.txt"


class CacheBackend:
    database = "database"
    redis = "redis"


class VerifierConfig(conf.Config):
    def __init__(self):
        super().__init__()
        self.app_name = os.getenv("APP_NAME", "SMART Health Card Verifier")

        self.key_cache_ttl: int = int(os.getenv("KEY_CACHE_TTL", 6 * 60 * 60))
        """
        Seconds a fetched issuer key set stays in the expiring cache, 6 hours by default
        """
        self.key_fetch_timeout: float = float(os.getenv("KEY_FETCH_TIMEOUT", 10))
        """
        Timeout in seconds for the remote key set fetch. Waiting callers give up after twice this time.
        """
        self.serve_stale_keys: bool = interpret_as_bool(os.getenv("SERVE_STALE_KEYS", "False"))
        """
        Serve keys retained from an earlier refresh if the issuer can not be reached.
        Off by default, unreachable issuers are rejected.
        """

        self.cache_backend: str = os.getenv("CACHE_BACKEND", CacheBackend.database)
        """database (expiring_cache table) or redis"""
        self.redis_url: str | None = os.getenv("REDIS_URL")
        """Redis connection for the redis cache backend. If unset an in process fakeredis is used."""
        self.cache_eviction_interval: float = float(os.getenv("CACHE_EVICTION_INTERVAL", 60 * 60))
        """Seconds between two runs of the expired cache entry reaper"""

        self.vci_directory_url: str = os.getenv("VCI_DIRECTORY_URL", VCI_DIRECTORY_URL)
        self.cvx_codes_url: str = os.getenv("CVX_CODES_URL", CVX_CODES_URL)
        self.cvx_cache_ttl: int = int(os.getenv("CVX_CACHE_TTL", 24 * 60 * 60))

    def has_minimum_config(self) -> bool:
        return all([self.api_key, self.key_cache_ttl > 0, self.key_fetch_timeout > 0])


inject = Annotated[VerifierConfig, Depends(VerifierConfig)]
