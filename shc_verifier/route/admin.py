# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Admin functions to maintain the trusted issuers and the vaccine code registry
"""

import fastapi
from fastapi import HTTPException, status
from pydantic import BaseModel

from common import httpx_wrapper
from common.apikey import require_api_key

from shc_verifier import context
from shc_verifier.cache.expiring_cache import CacheNamespace
from shc_verifier.directory import sync_directory, DirectorySyncError, SyncSummary
from shc_verifier.resolver import KEY_SET_CACHE_NAMESPACE
from shc_verifier.vaccine_codes import refresh_from_feed

TAG = "Admin"

router = fastapi.APIRouter(prefix="/admin", dependencies=[fastapi.Security(require_api_key)], tags=[TAG])


class ImportResponse(BaseModel):
    count: int


@router.post("/issuers/sync")
def sync_issuers(ctx: context.inject, force: bool = False) -> SyncSummary:
    """
    Loads the participating issuers of the VCI directory into the trust store and prefetches their key sets.
    Issuers updated within the last 7 days are skipped unless forced.
    """
    try:
        return sync_directory(ctx.trust_store, ctx.config, resolver=ctx.resolver, force=force)
    except DirectorySyncError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


@router.delete("/issuers", status_code=status.HTTP_204_NO_CONTENT)
def purge_issuer(iss: str, ctx: context.inject) -> None:
    """Removes the issuer, its keys and its cached key set. Aliases of the issuer are no longer resolved."""
    issuer = ctx.trust_store.lookup(iss)
    if issuer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Issuer {iss} not found")
    ctx.trust_store.purge_issuer(iss)
    CacheNamespace(ctx.cache, KEY_SET_CACHE_NAMESPACE).remove(issuer.id)


@router.post("/cvx/refresh")
def refresh_vaccine_codes(ctx: context.inject) -> ImportResponse:
    """Imports the CVX codes from the CDC feed, at most once per CVX_CACHE_TTL."""
    try:
        return ImportResponse(count=refresh_from_feed(ctx.vaccine_codes, ctx.cache, ctx.config))
    except httpx_wrapper.HTTPError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Could not load CVX codes: {type(e).__name__}")
