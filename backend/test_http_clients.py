"""Pricing API and WhatsApp Cloud API clients against httpx.MockTransport."""
import json

import httpx
import pytest

from app.core.exceptions import PricingError, QuoteValidationError, TransportError
from app.schemas.order import CatalogRef, CategoryRef, DimensionSpec, DimensionValue, OrderData, ProductRef
from app.services.pricing import PricingClient, parse_pricing_response
from app.services.whatsapp import MAX_LIST_ROWS, WhatsAppClient

PRICING_URL = "https://pricing.example.com/v1/quote"


def complete_order():
    return OrderData(
        selected_category=CategoryRef(id=1, external_id=101, name="Mylar Bags"),
        selected_product=ProductRef(
            id=1, external_id=201, name="Stand Up Pouch", category_id=1,
            required_dimensions=[DimensionSpec(name="W"), DimensionSpec(name="H"), DimensionSpec(name="G")],
        ),
        dimensions=[DimensionValue(name="W", value=4), DimensionValue(name="H", value=6), DimensionValue(name="G", value=2)],
        selected_material=CatalogRef(id=1, external_id=301, name="PET"),
        selected_finish=[CatalogRef(id=1, external_id=401, name="Matte")],
        quantity=[1000, 5000],
    )


def pricing_client(handler, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PricingClient(base_url=PRICING_URL, api_key="key-123", timeout=5, http_client=http, **kwargs)


# ----------------------------------------------------------------------
# Pricing
# ----------------------------------------------------------------------

async def test_pricing_success():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"qty": [1000, 5000], "unit_cost": [0.42, 0.25]})

    client = pricing_client(handler)
    result = await client.get_pricing(complete_order())
    await client.aclose()

    assert seen["auth"] == "Bearer key-123"
    assert seen["body"]["quantities"] == [1000, 5000]
    assert seen["body"]["finishes"] == [{"id": 401, "value": "Matte"}]
    assert [(t.quantity, t.unit_cost, t.total) for t in result.tiers] == [(1000, 0.42, 420), (5000, 0.25, 1250)]


async def test_pricing_non_2xx():
    client = pricing_client(lambda request: httpx.Response(503, text="maintenance"))
    with pytest.raises(PricingError) as exc:
        await client.get_pricing(complete_order())
    assert exc.value.status_code == 503


async def test_pricing_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    client = pricing_client(handler)
    with pytest.raises(PricingError, match="timed out"):
        await client.get_pricing(complete_order())


async def test_pricing_invalid_json():
    client = pricing_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(PricingError, match="invalid JSON"):
        await client.get_pricing(complete_order())


@pytest.mark.parametrize("body", [
    {"qty": [1000, 5000], "unit_cost": [0.4]},
    {"qty": [], "unit_cost": []},
    {"qty": "1000", "unit_cost": [0.4]},
    {"qty": [1000], "unit_cost": ["cheap"]},
    ["not", "an", "object"],
])
def test_malformed_pricing_bodies(body):
    with pytest.raises(PricingError):
        parse_pricing_response(body)


async def test_incomplete_order_never_hits_the_network():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"qty": [1], "unit_cost": [1]})

    client = pricing_client(handler)
    order = complete_order()
    order.selected_material = None
    with pytest.raises(QuoteValidationError):
        await client.get_pricing(order)
    assert calls == []


async def test_pricing_without_url():
    client = PricingClient(base_url="", http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: None)))
    with pytest.raises(PricingError, match="not configured"):
        await client.get_pricing(complete_order())


# ----------------------------------------------------------------------
# WhatsApp
# ----------------------------------------------------------------------

class GraphRecorder:
    """Collects requests and answers like the Graph API."""

    def __init__(self, status=200):
        self.status = status
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.status >= 400:
            return httpx.Response(self.status, json={"error": {"message": "bad"}})
        path = request.url.path
        if request.url.host == "lookaside.example.com":
            return httpx.Response(200, content=b"OggS")
        if path.endswith("/media"):
            return httpx.Response(200, json={"id": "media-77"})
        if path.endswith("/messages"):
            return httpx.Response(200, json={"messages": [{"id": f"wamid.out{len(self.requests)}"}]})
        if path.endswith("/media-1"):
            return httpx.Response(200, json={"url": "https://lookaside.example.com/media-1", "mime_type": "audio/ogg"})
        return httpx.Response(404)

    def payload(self, index=-1):
        return json.loads(self.requests[index].content)


def whatsapp_client(recorder, **overrides):
    options = dict(access_token="token", phone_number_id="555000", api_version="v18.0")
    options.update(overrides)
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return WhatsAppClient(http_client=http, **options)


async def test_send_text():
    recorder = GraphRecorder()
    client = whatsapp_client(recorder)

    message_id = await client.send_text("15551230001", "Hello!")

    assert message_id == "wamid.out1"
    request = recorder.requests[0]
    assert str(request.url) == "https://graph.facebook.com/v18.0/555000/messages"
    assert request.headers["authorization"] == "Bearer token"
    assert recorder.payload() == {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": "15551230001",
        "type": "text",
        "text": {"preview_url": False, "body": "Hello!"},
    }


async def test_buttons_are_truncated_and_limited():
    recorder = GraphRecorder()
    client = whatsapp_client(recorder)

    await client.send_buttons("1555", "Quote?", [("yes", "Yes, get me a price right now"), ("no", "No")])
    buttons = recorder.payload()["interactive"]["action"]["buttons"]
    assert buttons[0]["reply"] == {"id": "yes", "title": "Yes, get me a price…"}
    assert len(buttons[0]["reply"]["title"]) == 20

    with pytest.raises(ValueError):
        await client.send_buttons("1555", "Too many", [(str(i), str(i)) for i in range(4)])


async def test_list_rows_are_capped():
    recorder = GraphRecorder()
    client = whatsapp_client(recorder)
    rows = [{"id": f"product:{i}", "title": f"Product {i}", "description": ""} for i in range(12)]

    await client.send_list("1555", "Pick one", "Products", [{"title": "Products", "rows": rows}])

    section = recorder.payload()["interactive"]["action"]["sections"][0]
    assert len(section["rows"]) == MAX_LIST_ROWS
    assert "description" not in section["rows"][0]


async def test_document_is_uploaded_then_sent():
    recorder = GraphRecorder()
    client = whatsapp_client(recorder)

    await client.send_document("1555", "Q-1.pdf", content=b"%PDF-1.4", caption="Your quote")

    assert recorder.requests[0].url.path.endswith("/555000/media")
    document = recorder.payload()["document"]
    assert document == {"filename": "Q-1.pdf", "id": "media-77", "caption": "Your quote"}


async def test_provider_error_raises_transport_error():
    client = whatsapp_client(GraphRecorder(status=500))
    with pytest.raises(TransportError) as exc:
        await client.send_text("1555", "hi")
    assert exc.value.status_code == 500


async def test_missing_credentials():
    recorder = GraphRecorder()
    client = whatsapp_client(recorder, access_token="")
    with pytest.raises(TransportError, match="not configured"):
        await client.send_text("1555", "hi")
    assert recorder.requests == []


async def test_mark_as_read_never_raises():
    client = whatsapp_client(GraphRecorder(status=400))
    await client.mark_as_read("wamid.in1")


async def test_download_media():
    recorder = GraphRecorder()
    client = whatsapp_client(recorder)
    content, mime_type = await client.download_media("media-1")
    assert content == b"OggS"
    assert mime_type == "audio/ogg"
    assert str(recorder.requests[1].url) == "https://lookaside.example.com/media-1"
