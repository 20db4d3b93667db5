"""
PayTabs Gateway Handlers.

- callback: server-to-server, the authoritative transition entry point
- return:   browser hop 1, re-issues the gateway redirect as a GET
- redirect: browser hop 2, waits for / re-verifies the callback's effect
"""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from app.api.deps import get_reconciliation_service
from app.config import settings
from app.exceptions import GatewayError, NotFoundError, PaymentValidationError
from app.fsm.machine import RedirectDestination, destination_for
from app.services.reconciliation_service import ReconciliationService, parse_payment_id

router = APIRouter()
logger = logging.getLogger(__name__)

TRAN_REF_KEYS = ("tranRef", "tran_ref")
CART_ID_KEYS = ("cartId", "cart_id")


@router.post("/gateway/callback")
async def paytabs_callback(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Handle the PayTabs server callback.

    400 and 404 are final. Any other failure, including PayTabs
    verification errors, is a 500 so PayTabs redelivers.
    """
    payload = await _read_body(request)

    tran_ref = payload.get("tran_ref")
    cart_id = payload.get("cart_id")
    payment_result = payload.get("payment_result")
    payload_status = payment_result.get("response_status") if isinstance(payment_result, dict) else None

    logger.info(
        f"PayTabs callback received for cart {cart_id}",
        extra={"payment_id": cart_id, "transaction_ref": tran_ref},
    )

    try:
        outcome = await service.process_callback(tran_ref, cart_id, payload_status)
    except PaymentValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except GatewayError as e:
        logger.error(f"PayTabs verification failed for {tran_ref}: {e}", extra={"transaction_ref": tran_ref})
        raise HTTPException(status_code=500, detail="Failed to verify payment with PayTabs")
    except Exception as e:
        logger.error(f"Error processing PayTabs callback: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process payment callback")

    return {
        "status": "success",
        "message": "Payment callback processed successfully",
        "data": {
            "paymentId": str(outcome.payment_id),
            "status": outcome.status.value,
            "transactionRef": outcome.transaction_ref,
        },
    }


@router.api_route("/gateway/return", methods=["GET", "POST"])
async def paytabs_return(request: Request):
    """
    Browser return from PayTabs (often a cross-origin POST).

    Only extracts tranRef / cartId (body first, then query string) and
    303-redirects to the redirect hop. No lookup and no state change, so
    reloading this URL is harmless.
    """
    body = await _read_body(request) if request.method == "POST" else {}

    tran_ref = _first(body, TRAN_REF_KEYS) or _first(request.query_params, TRAN_REF_KEYS)
    cart_id = _first(body, CART_ID_KEYS) or _first(request.query_params, CART_ID_KEYS)

    params = {}
    if cart_id:
        params["paymentId"] = cart_id
    else:
        params["error"] = "invalid_params"
    if tran_ref:
        params["transactionRef"] = tran_ref

    target = request.url_for("paytabs_redirect").include_query_params(**params)
    return RedirectResponse(str(target), status_code=303)


@router.get("/gateway/redirect", name="paytabs_redirect")
async def paytabs_redirect(
    payment_id: Optional[str] = Query(None, alias="paymentId"),
    transaction_ref: Optional[str] = Query(None, alias="transactionRef"),
    error: Optional[str] = Query(None),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Send the browser to the success, failed or pending page.

    Waits a bounded time for the callback and falls back to one direct
    verification. Never shows an error page.
    """
    if error or not payment_id:
        return _frontend_redirect(RedirectDestination.FAILED, error=error or "invalid_params")

    try:
        parsed_id = parse_payment_id(payment_id)
    except PaymentValidationError:
        logger.warning(f"Malformed paymentId on redirect: {payment_id}")
        return _frontend_redirect(RedirectDestination.PENDING, paymentId=payment_id, tranRef=transaction_ref)

    try:
        outcome = await service.settle_for_redirect(parsed_id, transaction_ref)
    except NotFoundError:
        return _frontend_redirect(RedirectDestination.FAILED, error="payment_not_found")
    except Exception as e:
        logger.error(f"PayTabs redirect error for payment {payment_id}: {e}", exc_info=True)
        return _frontend_redirect(RedirectDestination.PENDING, paymentId=payment_id, tranRef=transaction_ref)

    return _frontend_redirect(
        destination_for(outcome.status),
        paymentId=str(outcome.payment_id),
        tranRef=outcome.transaction_ref,
    )


def _frontend_redirect(destination: RedirectDestination, **params: Optional[str]) -> RedirectResponse:
    query = urlencode({key: value for key, value in params.items() if value})
    url = f"{settings.frontend_url.rstrip('/')}/dashboard/payments/{destination.value}"
    if query:
        url = f"{url}?{query}"
    return RedirectResponse(url, status_code=302)


def _first(source: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    """First non-empty value among `keys`, in order."""
    for key in keys:
        value = source.get(key)
        if value:
            return str(value)
    return None


async def _read_body(request: Request) -> Dict[str, Any]:
    """Decode a JSON or form body; an unreadable body is treated as empty."""
    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            data = await request.json()
            return data if isinstance(data, dict) else {}
        form = await request.form()
        return dict(form)
    except ValueError:
        logger.warning("Unreadable PayTabs request body")
        return {}
