import json, logging
from urllib.parse import urlencode

from django.conf import settings
from django.http import JsonResponse, HttpResponseRedirect
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST, require_http_methods

from .crypto import decode_fields, self_test, FIELD_SEPARATOR
from .exceptions import (
    DecryptionError,
    EncryptionError,
    GatewayError,
    NotFoundError,
    ValidationError,
)
from .fields import PAYMENT_TYPES, TransactionData
from .integrations.alfalah import get_client, is_paid
from .ledger import FAILED, SUCCESS, Outcome, get_ledger
from .utils import first_present, format_amount, generate_order_id, now_iso

logger = logging.getLogger(__name__)

SUCCESS_CODES = ("00", "000")


def _json_body(request):
    try: return json.loads(request.body.decode("utf-8"))
    except Exception: return None


def _request_data(request) -> dict:
    """JSON or form body as a flat dict; the gateway posts forms, our front-end posts JSON."""
    if request.content_type == "application/json":
        body = _json_body(request)
        return body if isinstance(body, dict) else {}
    return request.POST.dict()


def _error(message, status, **extra):
    return JsonResponse({"success": False, "message": message, **extra}, status=status)


def _ack():
    # the gateway must never see a retryable status from the listener
    return JsonResponse({"message": "Received"}, status=200)


def _lookup(ledger, transaction_id):
    record = ledger.get(transaction_id)
    if record is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return record


def _decrypt_hash(request_hash, config):
    """Decrypted text and positional fields of an inbound ``RequestHash``; ``(None, [])`` if unreadable."""
    try:
        fields = decode_fields(request_hash, config.key1, config.key2)
    except DecryptionError:
        logger.exception("Could not decrypt RequestHash %s...", str(request_hash)[:16])
        return None, []
    return FIELD_SEPARATOR.join(fields), fields


def _reference_from(fields):
    if len(fields) > TransactionData.REFERENCE_INDEX:
        return fields[TransactionData.REFERENCE_INDEX] or None
    return None


@csrf_exempt
@require_POST
def pay_view(request, ledger=None, client=None):
    """Page redirection flow: encrypt the transaction data and hand back the HS_* form."""
    ledger = ledger or get_ledger()
    client = client or get_client()
    data = _request_data(request)

    transaction_id = str(data.get("transactionId") or "").strip()
    amount = data.get("amount")
    logger.info("Payment request: transactionId=%s amount=%s", transaction_id, amount)

    if not transaction_id or amount in (None, ""):
        return _error("Missing required fields: transactionId and amount", 400)
    try:
        formatted = format_amount(amount)
    except ValidationError as e:
        logger.error("Invalid amount for %s: %r", transaction_id, amount)
        return _error(str(e), 400)

    transaction_type = str(data.get("transactionType") or "3")
    try:
        form = client.build_payment_form(
            transaction_id,
            formatted,
            customer_email=data.get("customerEmail") or "",
            customer_mobile=data.get("customerMobile") or "",
            transaction_type=transaction_type,
            is_redirection=str(data.get("isRedirectionRequest") or "1"),
        )
    except EncryptionError as e:
        logger.error("Encryption failed for %s: %s", transaction_id, e)
        return _error("Encryption failed. Please check your encryption keys.", 500, error=str(e))

    ledger.create(
        transaction_id,
        amount=formatted,
        customer_email=data.get("customerEmail") or "",
        customer_name=data.get("customerName") or "",
        customer_mobile=data.get("customerMobile") or "",
        payment_type=PAYMENT_TYPES.get(transaction_type, ""),
    )
    return JsonResponse({"success": True, "data": form, "message": "Payment initiated successfully"})


@csrf_exempt
@require_POST
def create_payment_view(request, ledger=None, client=None):
    """Handshake + SSO flow: the browser submits ``redirectForm`` to the gateway."""
    ledger = ledger or get_ledger()
    client = client or get_client()
    data = _request_data(request)

    amount = data.get("amount")
    payment_type = str(data.get("type") or "").strip()
    if amount in (None, "") or not payment_type:
        return _error("Missing amount or payment type", 400)
    if payment_type not in PAYMENT_TYPES:
        return _error("Invalid payment type", 400)
    try:
        formatted = format_amount(amount)
    except ValidationError as e:
        return _error(str(e), 400)

    order_id = str(data.get("transactionId") or "").strip() or generate_order_id()
    logger.info("New order %s type=%s", order_id, PAYMENT_TYPES[payment_type])

    try:
        auth_token = client.handshake(order_id)
        form = client.build_redirect_form(auth_token, order_id, formatted, payment_type)
    except GatewayError as e:
        return _error(str(e) or "Payment initiation failed", 502)
    except EncryptionError as e:
        logger.error("Encryption failed for %s: %s", order_id, e)
        return _error("Encryption failed. Please check your encryption keys.", 500, error=str(e))

    ledger.create(
        order_id,
        amount=formatted,
        customer_email=data.get("customerEmail") or "",
        customer_name=data.get("customerName") or "",
        customer_mobile=data.get("customerMobile") or "",
        payment_type=PAYMENT_TYPES[payment_type],
        auth_token=auth_token,
    )
    return JsonResponse({
        "success": True,
        "orderId": order_id,
        "paymentType": PAYMENT_TYPES[payment_type],
        "redirectForm": form,
    })


@csrf_exempt
@require_POST
def listener_view(request, ledger=None, client=None):
    """Server-to-server notification from the gateway. Always acknowledged."""
    try:
        ledger = ledger or get_ledger()
        config = (client or get_client()).config
        data = _request_data(request)
        logger.info(
            "Listener called: ref=%s code=%s content-type=%s",
            data.get("HS_TransactionReferenceNumber"), data.get("ResponseCode"), request.content_type,
        )

        request_hash = data.get("RequestHash")
        if not request_hash:
            logger.warning("Listener called without RequestHash")
            return _ack()

        decrypted, fields = _decrypt_hash(request_hash, config)
        reference = data.get("HS_TransactionReferenceNumber") or _reference_from(fields)
        code = str(data.get("ResponseCode") or "")
        outcome = Outcome(
            status=SUCCESS if code in SUCCESS_CODES else FAILED,
            response_code=code or None,
            response_message=data.get("ResponseMessage"),
            decrypted_data=decrypted,
        )
        if outcome.status == SUCCESS:
            logger.info("Payment successful: ref=%s code=%s", reference, code)
        else:
            logger.warning("Payment failed: ref=%s code=%s message=%s", reference, code, outcome.response_message)
        ledger.apply_result(reference, outcome)
    except Exception:
        logger.exception("Listener error")
    return _ack()


def normalize_return_params(data: dict) -> dict:
    return {
        "success": first_present(data, "success", "Success"),
        "auth_token": first_present(data, "AuthToken", "authToken", "auth_token"),
        "transaction_id": first_present(
            data, "transaction_id", "TransactionId", "HS_TransactionReferenceNumber",
            "TransactionReferenceNumber", "O",
        ),
        "error_message": first_present(data, "ErrorMessage", "errorMessage", "error_message"),
        "response_code": first_present(data, "ResponseCode", "response_code", "RC"),
        "response_message": first_present(data, "ResponseMessage", "response_message", "RD"),
        "request_hash": first_present(data, "RequestHash", "request_hash"),
    }


def is_return_success(params: dict) -> bool:
    if params["success"] is True or str(params["success"]).lower() == "true":
        return True
    return str(params["response_code"] or "") in SUCCESS_CODES


@csrf_exempt
@require_http_methods(["GET", "POST"])
def return_view(request, ledger=None, client=None):
    """Customer's browser coming back from the bank; bounce to the front-end."""
    ledger = ledger or get_ledger()
    config = (client or get_client()).config

    data = request.GET.dict()
    if request.method == "POST":
        data.update(_request_data(request))
    params = normalize_return_params(data)
    success = is_return_success(params)
    logger.info("Payment return: method=%s ref=%s success=%s", request.method, params["transaction_id"], success)

    decrypted = None
    if params["request_hash"]:
        decrypted, fields = _decrypt_hash(params["request_hash"], config)
        if not params["transaction_id"]:
            params["transaction_id"] = _reference_from(fields)

    if params["transaction_id"]:
        ledger.apply_result(params["transaction_id"], Outcome(
            status=SUCCESS if success else FAILED,
            response_code=params["response_code"],
            response_message=params["response_message"] or params["error_message"],
            auth_token=params["auth_token"],
            decrypted_data=decrypted,
            returned=True,
        ))

    if success:
        query = {"status": "success", "O": params["transaction_id"] or "", "token": params["auth_token"] or ""}
    else:
        message = params["error_message"] or params["response_message"] or "Payment failed"
        query = {"status": "failed", "O": params["transaction_id"] or "", "msg": message}
    url = f"{config.frontend_url.rstrip('/')}/payment-return?{urlencode(query)}"
    logger.info("Redirecting customer to %s", url)
    return HttpResponseRedirect(url)


@csrf_exempt
@require_POST
def check_payment_status_view(request, ledger=None):
    ledger = ledger or get_ledger()
    order_id = str(_request_data(request).get("orderId") or "").strip()
    if not order_id:
        return _error("Order ID is required", 400)
    try:
        record = _lookup(ledger, order_id)
    except NotFoundError:
        logger.warning("Status check for unknown transaction %s", order_id)
        return _error("Transaction not found. It may have expired.", 404)
    return JsonResponse({
        "success": True,
        "transactionStatus": record.status_snapshot(),
        "message": "Payment status retrieved successfully",
    })


@require_GET
def order_status_view(request, order_id: str, ledger=None, client=None):
    """Ask the gateway (IPN) for the order's status and record a confirmed payment."""
    ledger = ledger or get_ledger()
    client = client or get_client()
    try:
        status = client.query_status(order_id)
    except GatewayError as e:
        return _error(str(e), 502)

    paid = is_paid(status)
    if paid:
        ledger.apply_result(order_id, Outcome(
            status=SUCCESS,
            response_code=str(status.get("ResponseCode")),
            response_message=status.get("Description") or status.get("ResponseMessage"),
        ))
    return JsonResponse({
        "success": paid,
        "message": "Transaction Successful" if paid else (status.get("Description") or "Transaction Failed"),
        "transactionStatus": status,
    })


@require_GET
def test_view(request, ledger=None, client=None):
    ledger = ledger or get_ledger()
    config = (client or get_client()).config
    presence = config.presence()
    encryption_ok = presence["key1"] == "✓" and presence["key2"] == "✓" and self_test(config.key1, config.key2)
    return JsonResponse({
        "success": True,
        "message": "Bank Alfalah API Running",
        "config": presence,
        "encryption": "✓" if encryption_ok else "✗",
        "cacheSize": ledger.size(),
        "timestamp": now_iso(),
    })


@require_GET
def cache_view(request, transaction_id: str, ledger=None):
    """Raw ledger record; debug builds only."""
    if not settings.DEBUG:
        return _error("Not found", 404)
    try:
        record = _lookup(ledger or get_ledger(), transaction_id)
    except NotFoundError:
        return _error("Transaction not found in cache", 404)
    return JsonResponse({"success": True, "data": record.to_dict()})
