# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
SMART Health Card Verifier
Using Specifications

SMART Health Cards Framework
https://spec.smarthealth.cards/

JSON Web Signature (compact serialization, ES256)
https://datatracker.ietf.org/doc/html/rfc7515

JSON Web Key Set
https://datatracker.ietf.org/doc/html/rfc7517#section-5

VCI Directory
https://github.com/the-commons-project/vci-directory
"""

from common.fastapi_extensions import ExtendedFastAPI

from shc_verifier.context import verification_context_lifespan
from shc_verifier.exception.handler import configure_exception_handlers
import shc_verifier.route.verification as verification
import shc_verifier.route.admin as admin
import shc_verifier.route.health as health
from shc_verifier import config as conf

app = ExtendedFastAPI(
    conf.VerifierConfig,
    lifespan_functions=[verification_context_lifespan],
)

app.include_router(verification.router)
app.include_router(admin.router)
app.include_router(health.router)

configure_exception_handlers(app)
