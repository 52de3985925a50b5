# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection of Pydantic models for IETF Objects
"""
from typing import Annotated, Literal

from jwcrypto import jwk
from pydantic import BaseModel, ConfigDict, Field


class JSONWebKey(BaseModel):
    """
    represents a cryptographic key
    https://datatracker.ietf.org/doc/html/rfc7517
    """

    model_config = ConfigDict(extra='allow')

    kty: str
    """
    key type
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.1
    """

    use: str | None = None
    """
    Intended Use of the public key
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.2
    """

    key_ops: list[str] | None = None
    """
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.3
    """

    alg: str | None = None
    """
    Alogirhtm inteded for use with the key
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.4
    """

    kid: str | None = None
    """
    Key ID, used to match sepcific keys
    https://datatracker.ietf.org/doc/html/rfc7517#section-4.5
    """

    def as_crypto_jwk(self) -> jwk.JWK:
        """Returns the crypto library object"""
        return jwk.JWK(**self.model_dump(exclude_none=True))


class JSONWebKeyEllipticCurve(JSONWebKey):
    """
    https://www.rfc-editor.org/rfc/rfc7518#section-6.2
    """

    kty: Literal['EC']

    crv: str
    """
    Curve to use with x & y coordinates
    """

    x: str
    y: str


class JSONWebKeySet(BaseModel):
    """
    https://datatracker.ietf.org/doc/html/rfc7517#section-5
    """

    keys: list[Annotated[JSONWebKeyEllipticCurve | JSONWebKey, Field(union_mode='left_to_right')]]

    def find(self, kid: str) -> JSONWebKey | None:
        """Returns the key with the key id, None if the set does not contain it."""
        return next((key for key in self.keys if key.kid == kid), None)

    def key_ids(self) -> list[str]:
        return [key.kid for key in self.keys if key.kid]
