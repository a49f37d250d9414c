"""Tests for CompetitorAdapter over the Browse API."""

from decimal import Decimal

import httpx
import pytest

from listingwatch.core.exceptions import CredentialsNotConfigured
from listingwatch.scrapers.adapters.competitor import CompetitorAdapter, build_query
from listingwatch.scrapers.base import CompetitorSummary
from listingwatch.scrapers.utils.credentials import TokenCache

TOKEN_URL = "https://auth.example.com/oauth2/token"
BROWSE_URL = "https://api.example.com/buy/browse/v1"


class RecordingLimiter:
    min_delay = 0.0

    async def wait(self, source_key):
        return None


class SleepRecorder:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


def summary(item_id, price, seller="rival", shipping="0.00"):
    return {
        "itemId": f"v1|{item_id}|0",
        "legacyItemId": item_id,
        "title": f"Haribo Starmix {item_id}",
        "price": {"value": price, "currency": "GBP"},
        "seller": {"username": seller},
        "itemWebUrl": f"https://www.ebay.co.uk/itm/{item_id}",
        "shippingOptions": [{"shippingCost": {"value": shipping, "currency": "GBP"}}],
        "condition": "New",
    }


class BrowseServer:
    """MockTransport handler for the token endpoint and item search."""

    def __init__(self, search_responses):
        self.search_responses = list(search_responses)
        self.token_requests = 0
        self.search_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/token"):
            self.token_requests += 1
            return httpx.Response(
                200, json={"access_token": f"token-{self.token_requests}", "expires_in": 7200}
            )
        self.search_requests.append(request)
        response = (
            self.search_responses.pop(0) if len(self.search_responses) > 1
            else self.search_responses[0]
        )
        if isinstance(response, int):
            return httpx.Response(response, json={"errors": []})
        return httpx.Response(200, json=response)


def make_adapter(server, client_id="real-app-id", sleep=None) -> CompetitorAdapter:
    transport = httpx.MockTransport(server)
    cache = TokenCache(
        client_id=client_id,
        client_secret="real-cert-id",
        token_url=TOKEN_URL,
        transport=transport,
    )
    return CompetitorAdapter(
        token_cache=cache,
        rate_limiter=RecordingLimiter(),
        transport=transport,
        browse_url=BROWSE_URL,
        retry_sleep=sleep or SleepRecorder(),
    )


class TestBuildQuery:
    def test_first_five_words_without_punctuation(self):
        assert build_query("Haribo Starmix, 160g (Sharing) Bag - Pack of 12") == "Haribo Starmix 160g Sharing Bag"

    def test_empty_title(self):
        assert build_query("") == ""


class TestCompetitorAdapter:
    """Tests for CompetitorAdapter.fetch_insights."""

    async def test_cheapest_competitors_sorted_excluding_own(self):
        server = BrowseServer([{
            "itemSummaries": [
                summary("256000000003", "2.10", seller="third"),
                summary("256123456789", "1.50", seller="us"),
                summary("256000000001", "1.79", seller="cheap_sweets", shipping="0.99"),
                summary("256000000002", "1.89", seller="second"),
            ]
        }])
        adapter = make_adapter(server)

        insights = await adapter.fetch_insights(
            "Haribo Starmix 160g Sharing Bag!", Decimal("1.99"), "256123456789"
        )

        assert [entry.listing_id for entry in insights.listings] == [
            "256000000001", "256000000002", "256000000003",
        ]
        assert insights.listings[0].shipping_cost == Decimal("0.99")
        assert insights.lowest_price == Decimal("1.79")
        assert insights.summary.seller_name == "cheap_sweets"
        assert insights.summary.total_sellers == 3
        assert insights.summary.difference_to_our_price == Decimal("0.20")
        assert insights.summary.our_price == Decimal("1.99")

        request = server.search_requests[0]
        assert request.url.path == "/buy/browse/v1/item_summary/search"
        assert request.url.params["q"] == "Haribo Starmix 160g Sharing Bag"
        assert request.url.params["limit"] == "20"
        assert request.url.params["filter"] == "deliveryCountry:GB"
        assert request.url.params["sort"] == "price"
        assert request.headers["Authorization"] == "Bearer token-1"
        assert request.headers["X-EBAY-C-MARKETPLACE-ID"] == "EBAY_GB"

    async def test_keeps_top_ten(self):
        server = BrowseServer([{
            "itemSummaries": [summary(f"2560000000{i:02d}", f"{i + 1}.00") for i in range(15)]
        }])
        adapter = make_adapter(server)

        insights = await adapter.fetch_insights("Haribo Starmix", Decimal("5.00"))

        assert len(insights.listings) == 10
        assert insights.summary.total_sellers == 10
        assert insights.lowest_price == Decimal("1.00")

    async def test_no_results_returns_none(self):
        adapter = make_adapter(BrowseServer([{"total": 0}]))

        assert await adapter.fetch_insights("Haribo Starmix", Decimal("1.99")) is None

    async def test_token_is_reused_across_searches(self):
        server = BrowseServer([{"itemSummaries": [summary("256000000001", "1.79")]}])
        adapter = make_adapter(server)

        await adapter.fetch_insights("Haribo Starmix", Decimal("1.99"))
        await adapter.fetch_insights("Lindor Milk", Decimal("5.99"))

        assert server.token_requests == 1
        assert len(server.search_requests) == 2

    async def test_unauthorized_invalidates_token_and_retries(self):
        sleep = SleepRecorder()
        server = BrowseServer([401, {"itemSummaries": [summary("256000000001", "1.79")]}])
        adapter = make_adapter(server, sleep=sleep)

        insights = await adapter.fetch_insights("Haribo Starmix", Decimal("1.99"))

        assert insights.lowest_price == Decimal("1.79")
        assert server.token_requests == 2
        assert server.search_requests[1].headers["Authorization"] == "Bearer token-2"
        assert sleep.waits == [1.0]

    async def test_missing_credentials_raise_without_retry(self):
        sleep = SleepRecorder()
        server = BrowseServer([{"itemSummaries": []}])
        adapter = make_adapter(server, client_id="", sleep=sleep)

        with pytest.raises(CredentialsNotConfigured):
            await adapter.fetch_insights("Haribo Starmix", Decimal("1.99"))
        assert server.search_requests == []
        assert sleep.waits == []


class TestCompetitorSummary:
    def test_dict_round_trip_keeps_decimals(self):
        original = CompetitorSummary(
            lowest_price=Decimal("1.79"),
            seller_name="cheap_sweets",
            listing_id="256000000001",
            url="https://www.ebay.co.uk/itm/256000000001",
            total_sellers=3,
            difference_to_our_price=Decimal("0.20"),
            our_price=Decimal("1.99"),
        )

        restored = CompetitorSummary.from_dict(original.to_dict())

        assert restored == original

    def test_from_empty_dict(self):
        assert CompetitorSummary.from_dict(None) is None
        assert CompetitorSummary.from_dict({}) is None
