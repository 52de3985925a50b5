# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import datetime
from unittest import mock

import httpx
import pytest

from shc_verifier.vaccine_codes import CVX_CACHE_KEY, VaccineCodeRegistry, parse_cvx_feed, refresh_from_feed

CVX_FEED = """207        |COVID-19, mRNA, LNP-S, PF, 100 mcg/0.5mL dose or 50 mcg/0.25mL dose|SARS-COV-2 (COVID-19) vaccine, mRNA, spike protein, LNP, preservative free, 100 mcg/0.5mL dose|Moderna|Active|False|2023/09/12
54         |adenovirus, type 4|adenovirus vaccine, type 4, live, oral||Inactive|False|2010/05/28

broken line
"""


@pytest.fixture
def registry(session_factory) -> VaccineCodeRegistry:
    return VaccineCodeRegistry(session_factory)


def _feed_response(text: str = CVX_FEED) -> httpx.Response:
    return httpx.Response(200, text=text, request=httpx.Request("GET", "https://cdc.example/cvx.txt"))


def test_parse_cvx_feed():
    codes = parse_cvx_feed(CVX_FEED)
    assert [code.code for code in codes] == [207, 54]
    assert codes[0].notes == "Moderna"
    assert codes[0].vaccine_status == "Active"
    assert codes[0].last_updated == datetime.date(2023, 9, 12)
    assert codes[1].notes is None
    assert codes[1].vaccine_status == "Inactive"


def test_lookup(registry):
    registry.upsert_codes(parse_cvx_feed(CVX_FEED))
    assert registry.lookup(207).short_description.startswith("COVID-19")
    assert registry.lookup("54").full_name == "adenovirus vaccine, type 4, live, oral"
    assert registry.lookup(99999) is None
    assert registry.lookup("not a code") is None


def test_upsert_replaces_metadata_not_identity(registry):
    registry.upsert_codes(parse_cvx_feed(CVX_FEED))
    updated = parse_cvx_feed(CVX_FEED.replace("|Active|", "|Inactive|"))
    assert registry.upsert_codes(updated) == 2
    assert registry.lookup(207).vaccine_status == "Inactive"
    assert [code.code for code in registry.list_codes()] == [54, 207]


def test_refresh_from_feed_uses_cache(registry, cache, config):
    with mock.patch("httpx.get", return_value=_feed_response()) as get:
        assert refresh_from_feed(registry, cache, config) == 2
        assert refresh_from_feed(registry, cache, config) == 2
    # Second import is served from the expiring cache
    assert get.call_count == 1
    assert get.call_args.args[0] == config.cvx_codes_url
    assert cache.get(CVX_CACHE_KEY) == CVX_FEED
    assert registry.lookup(207) is not None


def test_refresh_from_feed_failure(registry, cache, config):
    with mock.patch("httpx.get", side_effect=httpx.ConnectError("Name or service not known")):
        with pytest.raises(httpx.ConnectError):
            refresh_from_feed(registry, cache, config)
    assert registry.list_codes() == []
    assert cache.get(CVX_CACHE_KEY) is None
