# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""Provide functionality to check the sql database connectivity."""

import logging

from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from common.health import base

_logger = logging.getLogger(__name__)


def check_health_of_db(session_to_check: Session) -> base.HealthStatus:
    """Checks weather the session is able to query the database."""
    result = False
    try:
        session_to_check.execute(text('SELECT 1'))
        result = session_to_check.is_active
    except Exception:
        _logger.exception("Error in health check db probe.")
    return base.HealthStatus.healthy if result else base.HealthStatus.unhealthy


def check_health_of_session_factory(session_factory: sessionmaker) -> base.HealthStatus:
    """Opens a short lived session of the factory and probes it."""
    with session_factory() as session:
        return check_health_of_db(session)


class ReadinessHealthResponseWithDB(base.HealthResponse):
    """Response body model for health request operation."""

    db_connectivity: base.HealthStatus = base.HealthStatus.unhealthy
