# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""This file defines the custom health checks for the application."""

from fastapi import Response

from common.health import base, db_connection_check

from shc_verifier import config as conf
from shc_verifier import context


class DebugHealthResponse(base.HealthResponse):
    """Response body model for health request operation."""

    configuration_verifier_has_minimum_config: base.HealthStatus = base.HealthStatus.unhealthy
    expiring_cache_connectivity: base.HealthStatus = base.HealthStatus.unhealthy


class VerifierHealthAPIRouter(base.HealthAPIRouter):
    def __init__(self) -> None:
        super().__init__(
            debug_response_model=DebugHealthResponse,
            readiness_response_model=db_connection_check.ReadinessHealthResponseWithDB,
        )

    def get_debug_probe(self, response: Response, config: conf.inject, ctx: context.inject) -> DebugHealthResponse:
        result = DebugHealthResponse()
        result.configuration_verifier_has_minimum_config = bool(config.has_minimum_config())
        result.expiring_cache_connectivity = ctx.cache.ping()
        return self._build_debug_probe(result, response, config)

    def get_readiness_probe(self, response: Response, config: conf.inject, ctx: context.inject) -> db_connection_check.ReadinessHealthResponseWithDB:
        result = db_connection_check.ReadinessHealthResponseWithDB()
        result.db_connectivity = db_connection_check.check_health_of_session_factory(ctx.session_factory)
        return self._build_readiness_probe(result, response, config)


router = VerifierHealthAPIRouter()
