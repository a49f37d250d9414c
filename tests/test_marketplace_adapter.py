"""Tests for MarketplaceAdapter scrape-first fetch with Finding API fallback."""

from decimal import Decimal

import httpx
import pytest

from listingwatch.config import settings
from listingwatch.core.exceptions import ExtractionFailed, NoProductData, TransientFetchError
from listingwatch.scrapers.adapters.finding import finding_value, parse_finding_item
from listingwatch.scrapers.adapters.marketplace import MarketplaceAdapter
from listingwatch.scrapers.base import Snapshot

ITEM_URL = "https://www.ebay.co.uk/itm/haribo-starmix/256123456789"


class RecordingLimiter:
    min_delay = 0.0

    def __init__(self):
        self.keys = []

    async def wait(self, source_key):
        self.keys.append(source_key)


class FakeEngine:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def extract_product(self, url):
        self.calls.append(url)
        if self.error:
            raise self.error
        return self.result


class SleepRecorder:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


def finding_response(items):
    return {
        "findItemsAdvancedResponse": [{
            "ack": ["Success"],
            "searchResult": [{"@count": str(len(items)), "item": items}],
            "paginationOutput": [{"pageNumber": ["1"], "totalPages": ["1"]}],
        }]
    }


def finding_item(item_id="256123456789", price="1.99", **overrides):
    item = {
        "itemId": [item_id],
        "title": ["Haribo Starmix 160g Sharing Bag"],
        "viewItemURL": [f"https://www.ebay.co.uk/itm/{item_id}"],
        "galleryURL": ["https://i.ebayimg.com/thumbs/images/g/abc/s-l140.jpg"],
        "pictureURLLarge": ["https://i.ebayimg.com/images/g/abc/s-l500.jpg"],
        "sellingStatus": [{
            "currentPrice": [{"@currencyId": "GBP", "__value__": price}],
            "sellingState": ["Active"],
        }],
        "sellerInfo": [{"sellerUserName": ["sweetdeals_uk"]}],
    }
    item.update(overrides)
    return item


def finding_transport(requests, responses):
    """Serves ``responses`` in order; each is a status code or a JSON body."""
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, int):
            return httpx.Response(response, text="upstream error")
        return httpx.Response(200, json=response)

    return httpx.MockTransport(handler)


def make_adapter(engine, requests=None, responses=None, app_id="real-app-id", sleep=None, limiter=None):
    transport = finding_transport(requests if requests is not None else [], responses or [500])
    return MarketplaceAdapter(
        engine=engine,
        rate_limiter=limiter or RecordingLimiter(),
        transport=transport,
        app_id=app_id,
        retry_sleep=sleep or SleepRecorder(),
    )


class TestFindingHelpers:
    """Tests for Finding API JSON helpers."""

    def test_finding_value_unwraps_lists(self):
        item = finding_item()
        assert finding_value(item, "sellingStatus", "currentPrice", "__value__") == "1.99"
        assert finding_value(item, "missing", "path", default="x") == "x"

    def test_stock_from_quantity(self):
        fields = parse_finding_item(finding_item(quantity=["6"], sellingStatus=[{
            "currentPrice": [{"__value__": "2.50"}],
            "quantitySold": ["3"],
        }]))

        assert fields["price"] == Decimal("2.50")
        assert fields["stock_state"] == "low_stock"
        assert fields["quantity"] == 6

    def test_sold_out_quantity(self):
        fields = parse_finding_item(finding_item(quantity=["4"], sellingStatus=[{
            "currentPrice": [{"__value__": "2.50"}],
            "quantitySold": ["4"],
        }]))

        assert fields["stock_state"] == "out_of_stock"


class TestMarketplaceAdapter:
    """Tests for MarketplaceAdapter.fetch_item."""

    async def test_scrape_success_skips_api(self):
        snapshot = Snapshot(title="Haribo Starmix", price=Decimal("1.99"), stock_state="in_stock")
        requests = []
        limiter = RecordingLimiter()
        adapter = make_adapter(FakeEngine(result=snapshot), requests, limiter=limiter)

        result = await adapter.fetch_item(ITEM_URL)

        assert result is snapshot
        assert requests == []
        assert limiter.keys == ["marketplace"]

    async def test_extraction_failure_falls_back_to_api(self):
        requests = []
        engine = FakeEngine(error=ExtractionFailed(ITEM_URL, "no price"))
        adapter = make_adapter(engine, requests, [finding_response([finding_item()])])

        snapshot = await adapter.fetch_item(ITEM_URL)

        assert snapshot.source == "api"
        assert snapshot.title == "Haribo Starmix 160g Sharing Bag"
        assert snapshot.price == Decimal("1.99")
        assert snapshot.item_id == "256123456789"
        assert snapshot.seller_id == "sweetdeals_uk"
        assert snapshot.stock_state == "in_stock"

        params = requests[0].url.params
        assert requests[0].url.host == httpx.URL(settings.ebay_finding_url).host
        assert params["OPERATION-NAME"] == "findItemsAdvanced"
        assert params["SECURITY-APPNAME"] == "real-app-id"
        assert params["itemFilter(0).name"] == "ItemID"
        assert params["itemFilter(0).value"] == "256123456789"

    async def test_unexpected_scrape_error_also_falls_back(self):
        engine = FakeEngine(error=RuntimeError("browser crashed"))
        adapter = make_adapter(engine, [], [finding_response([finding_item()])])

        assert (await adapter.fetch_item(ITEM_URL)).source == "api"

    async def test_api_fallback_is_retried_with_backoff(self):
        requests = []
        sleep = SleepRecorder()
        engine = FakeEngine(error=TransientFetchError("browser", "timeout"))
        adapter = make_adapter(
            engine, requests, [500, 503, finding_response([finding_item()])], sleep=sleep
        )

        snapshot = await adapter.fetch_item(ITEM_URL)

        assert snapshot.price == Decimal("1.99")
        assert len(requests) == 3
        assert sleep.waits == [1.0, 2.0]

    async def test_api_failures_exhausted_raise_no_product_data(self):
        requests = []
        engine = FakeEngine(error=ExtractionFailed(ITEM_URL, "no title"))
        adapter = make_adapter(engine, requests, [500])

        with pytest.raises(NoProductData):
            await adapter.fetch_item(ITEM_URL)
        assert len(requests) == settings.MAX_RETRY_ATTEMPTS

    async def test_api_without_items_raises(self):
        engine = FakeEngine(error=ExtractionFailed(ITEM_URL, "no title"))
        adapter = make_adapter(engine, [], [finding_response([])])

        with pytest.raises(NoProductData):
            await adapter.fetch_item(ITEM_URL)

    async def test_zero_price_from_api_is_not_fabricated(self):
        requests = []
        sleep = SleepRecorder()
        engine = FakeEngine(error=ExtractionFailed(ITEM_URL, "no price"))
        adapter = make_adapter(
            engine, requests, [finding_response([finding_item(price="0.00")])], sleep=sleep
        )

        with pytest.raises(NoProductData):
            await adapter.fetch_item(ITEM_URL)
        assert len(requests) == settings.MAX_RETRY_ATTEMPTS
        assert sleep.waits == [1.0, 2.0]

    async def test_incomplete_api_item_is_retried(self):
        requests = []
        sleep = SleepRecorder()
        engine = FakeEngine(error=ExtractionFailed(ITEM_URL, "no price"))
        adapter = make_adapter(
            engine,
            requests,
            [finding_response([finding_item(price="0")]), finding_response([finding_item()])],
            sleep=sleep,
        )

        snapshot = await adapter.fetch_item(ITEM_URL)

        assert snapshot.price == Decimal("1.99")
        assert snapshot.source == "api"
        assert len(requests) == 2
        assert sleep.waits == [1.0]

    async def test_api_item_without_title_is_retried(self):
        requests = []
        sleep = SleepRecorder()
        engine = FakeEngine(error=ExtractionFailed(ITEM_URL, "no title"))
        adapter = make_adapter(
            engine,
            requests,
            [finding_response([finding_item(title=[""])]), finding_response([finding_item()])],
            sleep=sleep,
        )

        snapshot = await adapter.fetch_item(ITEM_URL)

        assert snapshot.title == "Haribo Starmix 160g Sharing Bag"
        assert len(requests) == 2
        assert sleep.waits == [1.0]

    async def test_url_without_item_id_raises(self):
        requests = []
        engine = FakeEngine(error=ExtractionFailed("x", "no title"))
        adapter = make_adapter(engine, requests)

        with pytest.raises(NoProductData):
            await adapter.fetch_item("https://www.ebay.co.uk/str/sweetdeals")
        assert requests == []

    async def test_missing_app_id_skips_fallback(self):
        requests = []
        engine = FakeEngine(error=ExtractionFailed(ITEM_URL, "no title"))
        adapter = make_adapter(engine, requests, app_id="your_ebay_app_id")

        with pytest.raises(NoProductData):
            await adapter.fetch_item(ITEM_URL)
        assert requests == []
