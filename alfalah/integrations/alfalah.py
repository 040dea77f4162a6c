import json, logging
from urllib.parse import quote

import requests
from requests import RequestException

from ..conf import AlfalahConfig
from ..crypto import encrypt
from ..exceptions import GatewayError, HandshakeError
from ..fields import (
    DEFAULT_DESCRIPTION,
    HandshakeFields,
    PaymentFields,
    SSOFields,
    StatusQuery,
    TransactionData,
)

logger = logging.getLogger(__name__)

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
STATUS_PATH = "/HS/api/IPN/OrderStatus/"


def _parse_body(resp) -> dict:
    """The gateway answers with JSON, and sometimes with JSON encoded as a JSON string."""
    try:
        data = resp.json()
    except ValueError:
        data = resp.text
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return {"raw": data}
    return data if isinstance(data, dict) else {"raw": data}


def is_paid(status: dict) -> bool:
    status = status or {}
    return (
        str(status.get("ResponseCode") or "") == "00"
        and str(status.get("TransactionStatus") or "").lower() == "paid"
    )


class AlfalahClient:
    """Outbound calls to the Bank Alfalah gateway. Performs no local state changes."""

    def __init__(self, config: AlfalahConfig = None, session=None):
        self.config = config or AlfalahConfig.from_settings()
        self.session = session or requests

    # ---------- Step 1: handshake ----------
    def handshake_fields(self, order_id: str) -> HandshakeFields:
        c = self.config
        return HandshakeFields(
            channel_id=c.channel_id,
            merchant_id=c.merchant_id,
            store_id=c.store_id,
            return_url=c.return_url,
            merchant_hash=c.merchant_hash,
            merchant_username=c.merchant_username,
            merchant_password=c.merchant_password,
            transaction_reference=order_id,
        )

    def handshake(self, order_id: str) -> str:
        """Exchange merchant credentials for an ``AuthToken``."""
        form = self.handshake_fields(order_id).signed(self.config.key1, self.config.key2)
        url = self.config.handshake_url
        try:
            resp = self.session.post(url, data=form, headers=FORM_HEADERS, timeout=self.config.timeout)
        except RequestException as e:
            logger.exception("Alfalah handshake request failed for order_id=%s", order_id)
            raise GatewayError(f"Gateway request failed: {e}")

        if not 200 <= resp.status_code < 300:
            logger.error(
                "Alfalah handshake failed for order_id=%s: status=%s text=%s",
                order_id, resp.status_code, resp.text[:500],
            )
            raise GatewayError(f"Handshake failed: HTTP {resp.status_code}")

        data = _parse_body(resp)
        token = data.get("AuthToken")
        if not token:
            msg = data.get("ErrorMessage") or "No AuthToken received"
            logger.error("Alfalah handshake returned no AuthToken for order_id=%s: %s", order_id, msg)
            raise HandshakeError(f"Handshake failed: {msg}")
        logger.info("Alfalah handshake succeeded for order_id=%s", order_id)
        return token

    # ---------- Step 2: SSO redirect form ----------
    def build_redirect_form(self, auth_token: str, order_id: str, amount: str, payment_type: str) -> dict:
        """Fields and action URL the browser submits to finish payment. No HTTP call."""
        c = self.config
        sso = SSOFields(
            auth_token=auth_token,
            channel_id=c.channel_id,
            currency=c.currency,
            return_url=c.return_url,
            merchant_id=c.merchant_id,
            store_id=c.store_id,
            merchant_hash=c.merchant_hash,
            merchant_username=c.merchant_username,
            merchant_password=c.merchant_password,
            transaction_type_id=str(payment_type),
            transaction_reference=order_id,
            transaction_amount=str(amount),
        )
        return {"action": c.sso_url, "fields": sso.signed(c.key1, c.key2)}

    # ---------- Page redirection form ----------
    def build_payment_form(self, transaction_id: str, amount: str, *, customer_email="",
                           customer_mobile="", transaction_type="3", is_redirection="1",
                           description=DEFAULT_DESCRIPTION) -> dict:
        c = self.config
        data = TransactionData(
            channel_id=c.channel_id,
            currency=c.currency,
            amount=amount,
            transaction_reference=transaction_id,
            description=description,
            customer_email=customer_email,
            customer_mobile=customer_mobile,
            return_url=c.return_url,
        )
        request_hash = encrypt(data.to_encoded_form(), c.key1, c.key2)
        logger.debug("Request hash for %s: %s...", transaction_id, request_hash[:16])
        fields = PaymentFields(
            channel_id=c.channel_id,
            merchant_id=c.merchant_id,
            store_id=c.store_id,
            merchant_hash=c.merchant_hash,
            merchant_username=c.merchant_username,
            merchant_password=c.merchant_password,
            transaction_reference=transaction_id,
            transaction_amount=amount,
            transaction_description=description,
            request_hash=request_hash,
            return_url=c.return_url,
            listener_url=c.listener_url,
            is_redirection_request=str(is_redirection or "1"),
            transaction_type_id=str(transaction_type or "3"),
        )
        return {"paymentUrl": c.payment_url, "paymentFields": fields.to_dict()}

    # ---------- IPN ----------
    def status_url(self, order_id: str) -> str:
        query = StatusQuery(
            merchant_id=quote(str(self.config.merchant_id), safe=""),
            store_id=quote(str(self.config.store_id), safe=""),
            order_id=quote(str(order_id), safe=""),
        )
        return self.config.base_url.rstrip("/") + STATUS_PATH + query.to_encoded_form()

    def query_status(self, order_id: str) -> dict:
        """Raw IPN order status payload as returned by the gateway."""
        url = self.status_url(order_id)
        try:
            resp = self.session.get(url, timeout=self.config.timeout)
        except RequestException as e:
            logger.exception("Alfalah IPN query failed for order_id=%s", order_id)
            raise GatewayError(f"Gateway request failed: {e}")
        if not 200 <= resp.status_code < 300:
            logger.error(
                "Alfalah IPN query failed for order_id=%s: status=%s text=%s",
                order_id, resp.status_code, resp.text[:500],
            )
            raise GatewayError(f"Order status failed: HTTP {resp.status_code}")
        return _parse_body(resp)


def get_client() -> AlfalahClient:
    return AlfalahClient(AlfalahConfig.from_settings())
