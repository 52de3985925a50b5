# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import base64
import json
import re


def object_from_url_safe(data: str) -> dict | str | list:
    """Load an JSON object from an url safe base64 encoded string. Adds padding as needed."""
    return json.loads(bytes_from_url_safe(data))


def bytes_from_url_safe(data: str) -> bytes:
    """Decode url safe base64 bytes. Adds padding as needed."""
    return base64.urlsafe_b64decode(add_padding(data))


def add_padding(base64_encoded: str) -> str:
    """Add padding (=) for b64 encoded string, so it can be decoded"""
    return f'{base64_encoded}==='


def interpret_as_bool(boolify: str) -> bool:
    """
    Converts an inpput to an boolean according to commonly used patterns.
    """
    if isinstance(boolify, bool):
        return boolify
    if isinstance(boolify, int):
        return boolify > 0
    elif isinstance(boolify, str):
        return re.match(r"^(y|yes|1|true)$", boolify, re.IGNORECASE | re.MULTILINE) is not None
    raise Exception(f"Can't boolify a {boolify}.")
