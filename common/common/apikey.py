# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import secrets

from fastapi import Security, HTTPException, status
from fastapi.security import APIKeyHeader

from common import config

_api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)


def require_api_key(conf: config.inject, api_key: str | None = Security(_api_key_header)) -> None:
    """Guards administrative routes, compares in constant time."""
    if api_key is None or not secrets.compare_digest(api_key.encode(), conf.api_key.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API Key")
