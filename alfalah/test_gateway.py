import json
from unittest.mock import Mock, patch

import requests
from django.test import SimpleTestCase

from .conf import AlfalahConfig
from .crypto import decode_fields, decrypt
from .exceptions import EncryptionError, GatewayError, HandshakeError
from .integrations.alfalah import AlfalahClient, is_paid

CONFIG = AlfalahConfig(
    base_url="https://gateway.example.com",
    payment_url="https://gateway.example.com/SSO/SSO/SSO",
    channel_id="1001",
    merchant_id="12345",
    store_id="67890",
    merchant_hash="merchant-hash",
    merchant_username="merchant",
    merchant_password="secret",
    currency="PKR",
    return_url="https://shop.example.com/api/alfa/return",
    listener_url="https://shop.example.com/api/alfa/listener",
    frontend_url="https://shop.example.com",
    key1="abcdefghijklmnopQRST",
    key2="0123456789abcdef",
    timeout=5,
)


def fake_response(status_code=200, body=None, text=None):
    resp = Mock(status_code=status_code)
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    resp.text = text if text is not None else json.dumps(body) if not isinstance(body, Exception) else ""
    return resp


class HandshakeTests(SimpleTestCase):
    def setUp(self):
        self.client_ = AlfalahClient(CONFIG)

    def test_posts_signed_form_and_returns_token(self):
        with patch("alfalah.integrations.alfalah.requests.post",
                   return_value=fake_response(body={"AuthToken": "tok", "ReturnURL": "x"})) as post:
            token = self.client_.handshake("ORD-1")

        self.assertEqual(token, "tok")
        post.assert_called_once()
        self.assertEqual(post.call_args.args[0], "https://gateway.example.com/HS/HS/HS")
        self.assertEqual(post.call_args.kwargs["timeout"], 5)
        self.assertEqual(post.call_args.kwargs["headers"]["Content-Type"], "application/x-www-form-urlencoded")
        form = post.call_args.kwargs["data"]
        self.assertEqual(form["HS_TransactionReferenceNumber"], "ORD-1")
        self.assertEqual(form["HS_IsRedirectionRequest"], "0")
        self.assertEqual(
            decrypt(form["HS_RequestHash"], CONFIG.key1, CONFIG.key2),
            "HS_ChannelId=1001&HS_MerchantId=12345&HS_StoreId=67890"
            "&HS_ReturnURL=https://shop.example.com/api/alfa/return"
            "&HS_MerchantHash=merchant-hash&HS_MerchantUsername=merchant"
            "&HS_MerchantPassword=secret&HS_TransactionReferenceNumber=ORD-1"
            "&HS_IsRedirectionRequest=0",
        )

    def test_accepts_json_encoded_as_string(self):
        body = json.dumps({"success": "true", "AuthToken": "tok2"})
        with patch("alfalah.integrations.alfalah.requests.post", return_value=fake_response(body=body)):
            self.assertEqual(self.client_.handshake("ORD-1"), "tok2")

    def test_missing_token_surfaces_gateway_message(self):
        body = {"success": "false", "AuthToken": None, "ErrorMessage": "Invalid merchant hash"}
        with patch("alfalah.integrations.alfalah.requests.post", return_value=fake_response(body=body)):
            with self.assertLogs("alfalah.integrations.alfalah", level="ERROR"):
                with self.assertRaisesMessage(HandshakeError, "Invalid merchant hash"):
                    self.client_.handshake("ORD-1")

    def test_non_json_body_without_token(self):
        resp = fake_response(body=ValueError("no json"), text="<html>oops</html>")
        with patch("alfalah.integrations.alfalah.requests.post", return_value=resp):
            with self.assertRaisesMessage(HandshakeError, "No AuthToken received"):
                self.client_.handshake("ORD-1")

    def test_http_error_is_gateway_error(self):
        resp = fake_response(status_code=500, body={}, text="server error")
        with patch("alfalah.integrations.alfalah.requests.post", return_value=resp):
            with self.assertRaises(GatewayError) as cm:
                self.client_.handshake("ORD-1")
        self.assertNotIsInstance(cm.exception, HandshakeError)
        self.assertIn("500", str(cm.exception))

    def test_network_failure_is_gateway_error(self):
        with patch("alfalah.integrations.alfalah.requests.post",
                   side_effect=requests.ConnectionError("refused")) as post:
            with self.assertRaises(GatewayError):
                self.client_.handshake("ORD-1")
        post.assert_called_once()


class FormBuilderTests(SimpleTestCase):
    def setUp(self):
        self.client_ = AlfalahClient(CONFIG)

    def test_redirect_form(self):
        with patch("alfalah.integrations.alfalah.requests.post") as post:
            form = self.client_.build_redirect_form("tok", "ORD-1", "100.00", "1")
        post.assert_not_called()
        self.assertEqual(form["action"], "https://gateway.example.com/SSO/SSO/SSO")
        fields = form["fields"]
        self.assertEqual(fields["AuthToken"], "tok")
        self.assertEqual(fields["TransactionTypeId"], "1")
        self.assertEqual(fields["TransactionAmount"], "100.00")
        plain = decrypt(fields["RequestHash"], CONFIG.key1, CONFIG.key2)
        self.assertTrue(plain.startswith("AuthToken=tok&RequestHash=&ChannelId=1001&Currency=PKR"))

    def test_payment_form_encrypts_pipe_data(self):
        form = self.client_.build_payment_form(
            "ORD-1", "100.01", customer_email="a@b.com", customer_mobile="0300", transaction_type="2",
        )
        self.assertEqual(form["paymentUrl"], CONFIG.payment_url)
        fields = form["paymentFields"]
        self.assertEqual(fields["HS_TransactionAmount"], "100.01")
        self.assertEqual(fields["HS_TransactionTypeId"], "2")
        self.assertEqual(fields["HS_IsRedirectionRequest"], "1")
        self.assertEqual(fields["HS_ListenerURL"], CONFIG.listener_url)
        self.assertEqual(
            decode_fields(fields["HS_RequestHash"], CONFIG.key1, CONFIG.key2),
            ["1001", "PKR", "100.01", "ORD-1", "Order Payment", "a@b.com", "0300", CONFIG.return_url],
        )

    def test_payment_form_with_short_keys(self):
        client = AlfalahClient(AlfalahConfig(channel_id="1001", key1="short", key2="short"))
        with self.assertRaises(EncryptionError):
            client.build_payment_form("ORD-1", "1.00")


class StatusQueryTests(SimpleTestCase):
    def test_queries_ipn_endpoint(self):
        body = {"ResponseCode": "00", "TransactionStatus": "Paid", "TransactionId": "99"}
        with patch("alfalah.integrations.alfalah.requests.get",
                   return_value=fake_response(body=json.dumps(body))) as get:
            status = AlfalahClient(CONFIG).query_status("ORD 1")
        self.assertEqual(status, body)
        self.assertEqual(
            get.call_args.args[0],
            "https://gateway.example.com/HS/api/IPN/OrderStatus/12345/67890/ORD%201",
        )
        self.assertTrue(is_paid(status))

    def test_http_error(self):
        with patch("alfalah.integrations.alfalah.requests.get",
                   return_value=fake_response(status_code=404, body={}, text="nope")):
            with self.assertRaises(GatewayError):
                AlfalahClient(CONFIG).query_status("ORD-1")

    def test_success_predicate(self):
        self.assertTrue(is_paid({"ResponseCode": "00", "TransactionStatus": "paid"}))
        self.assertTrue(is_paid({"ResponseCode": "00", "TransactionStatus": "PAID"}))
        self.assertFalse(is_paid({"ResponseCode": "01", "TransactionStatus": "paid"}))
        self.assertFalse(is_paid({"ResponseCode": "00", "TransactionStatus": "pending"}))
        self.assertFalse(is_paid({}))
        self.assertFalse(is_paid(None))
