"""
Tests for the PayTabs client.
"""

import json
from decimal import Decimal

import httpx
import pytest

from app.exceptions import GatewayError
from app.fsm.states import PaymentStatus
from app.services.paytabs_service import MOBILE_KEY_HINT, PayTabsService

CUSTOMER = {
    "name": "Sara Alqahtani",
    "email": "owner@example.com",
    "phone": "966511111111",
    "street1": "N/A",
    "city": "N/A",
    "state": "N/A",
    "country": "SA",
    "zip": "00000",
}


def make_service(handler) -> PayTabsService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PayTabsService(client=client)


@pytest.mark.parametrize(
    "code, expected",
    [
        ("A", PaymentStatus.COMPLETED),
        ("S", PaymentStatus.COMPLETED),
        ("a", PaymentStatus.COMPLETED),
        ("D", PaymentStatus.FAILED),
        ("E", PaymentStatus.FAILED),
        ("V", PaymentStatus.FAILED),
        ("C", PaymentStatus.FAILED),
        ("H", PaymentStatus.PENDING),
        ("P", PaymentStatus.PENDING),
        ("X", PaymentStatus.PENDING),
        ("", PaymentStatus.PENDING),
        (None, PaymentStatus.PENDING),
    ],
)
def test_parse_payment_status(code, expected):
    assert PayTabsService.parse_payment_status(code) == expected


def test_extract_response_status():
    assert PayTabsService.extract_response_status({"payment_result": {"response_status": "A"}}) == "A"
    assert PayTabsService.extract_response_status({"payment_result": None}) is None
    assert PayTabsService.extract_response_status({}) is None
    assert PayTabsService.extract_response_status(None) is None


@pytest.mark.asyncio
async def test_create_payment_page_success():
    """Request carries our cart id, URLs and server key; response is returned as-is."""
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"tran_ref": "TST2400000001", "redirect_url": "https://secure.paytabs.sa/payment/page/abc"},
        )

    service = make_service(handler)
    data = await service.create_payment_page(
        amount=Decimal("150.50"),
        currency="SAR",
        cart_id="cart-1",
        description="Premium subscription",
        customer=CUSTOMER,
        callback_url="https://api.example.com/callback",
        return_url="https://api.example.com/return",
    )

    assert data["redirect_url"].startswith("https://secure.paytabs.sa/payment/page/")
    assert captured["url"].endswith("/payment/request")
    assert captured["auth"] == "test-server-key"
    body = captured["body"]
    assert body["cart_id"] == "cart-1"
    assert body["cart_amount"] == 150.5
    assert body["tran_type"] == "sale"
    assert body["callback"] == "https://api.example.com/callback"
    assert body["return"] == "https://api.example.com/return"
    assert body["customer_details"]["country"] == "SA"


@pytest.mark.asyncio
async def test_create_payment_page_missing_redirect_url():
    service = make_service(lambda request: httpx.Response(200, json={"tran_ref": "TST1"}))

    with pytest.raises(GatewayError):
        await service.create_payment_page(Decimal("10"), "SAR", "cart-1", "x", CUSTOMER)


@pytest.mark.asyncio
async def test_create_payment_page_upstream_error_message():
    service = make_service(lambda request: httpx.Response(400, json={"message": "Invalid profile ID"}))

    with pytest.raises(GatewayError) as exc_info:
        await service.create_payment_page(Decimal("10"), "SAR", "cart-1", "x", CUSTOMER)

    assert exc_info.value.message == "Invalid profile ID"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_create_payment_page_mobile_key_hint():
    service = make_service(
        lambda request: httpx.Response(415, json={"message": "Content type application/octet-stream not supported"})
    )

    with pytest.raises(GatewayError) as exc_info:
        await service.create_payment_page(Decimal("10"), "SAR", "cart-1", "x", CUSTOMER)

    assert exc_info.value.message == MOBILE_KEY_HINT


@pytest.mark.asyncio
async def test_create_payment_page_without_server_key():
    service = make_service(lambda request: httpx.Response(200, json={}))
    service.server_key = ""

    with pytest.raises(GatewayError):
        await service.create_payment_page(Decimal("10"), "SAR", "cart-1", "x", CUSTOMER)


@pytest.mark.asyncio
async def test_verify_payment():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"tran_ref": "TST1", "cart_id": "cart-1", "payment_result": {"response_status": "D"}},
        )

    data = await make_service(handler).verify_payment("TST1")

    assert captured["url"].endswith("/payment/query")
    assert captured["body"] == {"profile_id": "12345", "tran_ref": "TST1"}
    assert PayTabsService.parse_payment_status(
        PayTabsService.extract_response_status(data)
    ) == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_verify_payment_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GatewayError) as exc_info:
        await make_service(handler).verify_payment("TST1")

    assert "timed out" in exc_info.value.message


@pytest.mark.asyncio
async def test_verify_payment_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GatewayError):
        await make_service(handler).verify_payment("TST1")
