import base64
from unittest.mock import patch

from Crypto.Cipher import AES
from Crypto.Util.Padding import pad
from django.core.cache import caches
from django.test import SimpleTestCase

from . import crypto
from .conf import AlfalahConfig, check_configuration
from .exceptions import DecryptionError, EncryptionError, ValidationError
from .fields import HandshakeFields, SSOFields, TransactionData
from .ledger import (
    FAILED,
    PENDING,
    SUCCESS,
    CacheLedger,
    InMemoryLedger,
    Outcome,
    build_ledger,
)
from .utils import format_amount, generate_order_id

KEY1 = "abcdefghijklmnop"
KEY2 = "0123456789abcdef"


class EnvelopeCodecTests(SimpleTestCase):
    def test_round_trip(self):
        plain = "1001|PKR|100.00|ORD-1|Order Payment|a@b.com|03001234567|https://x.test/return"
        token = crypto.encrypt(plain, KEY1, KEY2)
        self.assertNotEqual(token, plain)
        self.assertEqual(crypto.decrypt(token, KEY1, KEY2), plain)

    def test_round_trip_non_ascii(self):
        plain = "Mädchen|₨ 500|ok"
        self.assertEqual(crypto.decrypt(crypto.encrypt(plain, KEY1, KEY2), KEY1, KEY2), plain)

    def test_matches_plain_aes_128_cbc(self):
        plain = "HS_ChannelId=1001&HS_MerchantId=12345"
        cipher = AES.new(KEY1.encode(), AES.MODE_CBC, iv=KEY2.encode())
        expected = base64.b64encode(cipher.encrypt(pad(plain.encode(), 16))).decode()
        self.assertEqual(crypto.encrypt(plain, KEY1, KEY2), expected)

    def test_long_secrets_are_truncated_not_hashed(self):
        plain = "Test|Data"
        self.assertEqual(
            crypto.encrypt(plain, KEY1 + "EXTRA", KEY2 + "0000"),
            crypto.encrypt(plain, KEY1, KEY2),
        )

    def test_short_secret_rejected_before_looking_at_data(self):
        for data in ("", "Test|Data"):
            with self.assertRaises(EncryptionError):
                crypto.encrypt(data, "short", KEY2)
            with self.assertRaises(EncryptionError):
                crypto.encrypt(data, KEY1, "0123")
        with self.assertRaises(DecryptionError):
            crypto.decrypt("anything", KEY1, "short")

    def test_missing_secret_rejected(self):
        with self.assertRaises(EncryptionError):
            crypto.encrypt("data", None, KEY2)
        with self.assertRaises(DecryptionError):
            crypto.decrypt("data", KEY1, "")

    def test_empty_plaintext_rejected(self):
        with self.assertRaises(EncryptionError):
            crypto.encrypt("", KEY1, KEY2)

    def test_decrypt_rejects_garbage(self):
        for token in ("", "not base64 !!", base64.b64encode(b"123456789012345").decode()):
            with self.assertRaises(DecryptionError):
                crypto.decrypt(token, KEY1, KEY2)

    def test_decrypt_with_wrong_keys_fails(self):
        token = crypto.encrypt("1001|PKR|100.00|ORD-1", KEY1, KEY2)
        with self.assertRaises(DecryptionError):
            crypto.decrypt(token, "ponmlkjihgfedcba", KEY2)

    def test_decrypt_tolerates_plus_turned_into_space(self):
        token = crypto.encrypt("a|b|c|ORD-9", KEY1, KEY2)
        self.assertEqual(crypto.decrypt(token.replace("+", " "), KEY1, KEY2), "a|b|c|ORD-9")

    def test_decode_fields_splits_on_pipe(self):
        token = crypto.encrypt("1001|PKR|10.00|ORD-7", KEY1, KEY2)
        self.assertEqual(crypto.decode_fields(token, KEY1, KEY2), ["1001", "PKR", "10.00", "ORD-7"])

    def test_self_test(self):
        self.assertTrue(crypto.self_test(KEY1, KEY2))
        with self.assertLogs("alfalah.crypto", level="WARNING"):
            self.assertFalse(crypto.self_test("short", KEY2))


class FieldSetTests(SimpleTestCase):
    def test_handshake_encoded_form_order(self):
        fields = HandshakeFields(
            channel_id="1001", merchant_id="12345", store_id="67890",
            return_url="https://x.test/return", merchant_hash="mh",
            merchant_username="user", merchant_password="pw==",
            transaction_reference="ORD-1",
        )
        self.assertEqual(
            fields.to_encoded_form(),
            "HS_ChannelId=1001&HS_MerchantId=12345&HS_StoreId=67890"
            "&HS_ReturnURL=https://x.test/return&HS_MerchantHash=mh"
            "&HS_MerchantUsername=user&HS_MerchantPassword=pw=="
            "&HS_TransactionReferenceNumber=ORD-1&HS_IsRedirectionRequest=0",
        )
        signed = fields.signed(KEY1, KEY2)
        self.assertEqual(list(signed)[-1], "HS_RequestHash")
        self.assertEqual(crypto.decrypt(signed["HS_RequestHash"], KEY1, KEY2), fields.to_encoded_form())

    def test_sso_hash_covers_empty_request_hash(self):
        fields = SSOFields(
            auth_token="tok", channel_id="1001", currency="PKR",
            return_url="https://x.test/return", merchant_id="12345", store_id="67890",
            merchant_hash="mh", merchant_username="user", merchant_password="pw",
            transaction_type_id="3", transaction_reference="ORD-1", transaction_amount="100.00",
        )
        encoded = fields.to_encoded_form()
        self.assertTrue(encoded.startswith("AuthToken=tok&RequestHash=&ChannelId=1001&Currency=PKR&IsBIN=0&"))
        self.assertTrue(encoded.endswith("&TransactionTypeId=3&TransactionReferenceNumber=ORD-1&TransactionAmount=100.00"))
        signed = fields.signed(KEY1, KEY2)
        self.assertEqual(list(signed)[:2], ["AuthToken", "RequestHash"])
        self.assertEqual(crypto.decrypt(signed["RequestHash"], KEY1, KEY2), encoded)

    def test_transaction_data_is_pipe_joined(self):
        data = TransactionData(
            channel_id="1001", currency="PKR", amount="100.00", transaction_reference="ORD-1",
            description="Order Payment", customer_email="", customer_mobile=None,
            return_url="https://x.test/return",
        )
        self.assertEqual(data.to_encoded_form(), "1001|PKR|100.00|ORD-1|Order Payment|||https://x.test/return")
        self.assertEqual(data.to_encoded_form().split("|")[TransactionData.REFERENCE_INDEX], "ORD-1")


class FormatAmountTests(SimpleTestCase):
    def test_rounds_half_up_to_two_places(self):
        self.assertEqual(format_amount("100.005"), "100.01")
        self.assertEqual(format_amount(100.005), "100.01")
        self.assertEqual(format_amount("0.125"), "0.13")
        self.assertEqual(format_amount("100.004"), "100.00")
        self.assertEqual(format_amount("12"), "12.00")
        self.assertEqual(format_amount(7), "7.00")

    def test_rejects_invalid_amounts(self):
        for value in (None, "", "abc", "0", "-5", "NaN", "Infinity", True, "1e30"):
            with self.assertRaises(ValidationError, msg=repr(value)):
                format_amount(value)

    def test_rejects_amounts_that_round_to_zero(self):
        for value in ("0.004", 0.001, "-0.004"):
            with self.assertRaises(ValidationError, msg=repr(value)):
                format_amount(value)
        self.assertEqual(format_amount("0.005"), "0.01")

    def test_generate_order_id(self):
        with patch("alfalah.utils.time.time", return_value=1700000000.5):
            self.assertEqual(generate_order_id(), "ORD-1700000000500")


class InMemoryLedgerTests(SimpleTestCase):
    def setUp(self):
        self.ledger = InMemoryLedger(ttl_seconds=0, max_entries=0)

    def test_create_and_get(self):
        self.ledger.create("ORD-1", amount="100.00", customer_email="a@b.com")
        record = self.ledger.get("ORD-1")
        self.assertEqual(record.status, PENDING)
        self.assertEqual(record.amount, "100.00")
        self.assertEqual(record.customer_email, "a@b.com")
        self.assertTrue(record.created_at)

    def test_unknown_id_is_not_found(self):
        self.assertIsNone(self.ledger.get("missing"))
        self.assertIsNone(self.ledger.get(""))
        self.assertIsNone(self.ledger.get(None))

    def test_apply_result_to_unknown_id_warns(self):
        with self.assertLogs("alfalah.ledger", level="WARNING") as cm:
            result = self.ledger.apply_result("missing", Outcome(status=SUCCESS, response_code="00"))
        self.assertIsNone(result)
        self.assertIn("missing", cm.output[0])
        self.assertIsNone(self.ledger.get("missing"))

    def test_apply_same_outcome_twice_is_idempotent(self):
        self.ledger.create("ORD-1", amount="100.00")
        outcome = Outcome(status=SUCCESS, response_code="00", response_message="Paid", decrypted_data="a|b")
        once = self.ledger.apply_result("ORD-1", outcome).to_dict()
        twice = self.ledger.apply_result("ORD-1", outcome).to_dict()
        self.assertEqual(once, twice)
        self.assertEqual(self.ledger.get("ORD-1").to_dict(), once)
        self.assertEqual(once["status"], SUCCESS)
        self.assertIsNotNone(once["paid_at"])

    def test_conflicting_outcome_overwrites(self):
        self.ledger.create("ORD-1", amount="100.00")
        self.ledger.apply_result("ORD-1", Outcome(status=FAILED, response_code="01"))
        record = self.ledger.apply_result("ORD-1", Outcome(status=SUCCESS, response_code="00"))
        self.assertEqual(record.status, SUCCESS)
        self.assertEqual(record.response_code, "00")
        self.assertIsNotNone(record.failed_at)
        self.assertIsNotNone(record.paid_at)

    def test_create_overwrites_existing(self):
        self.ledger.create("ORD-1", amount="100.00")
        self.ledger.apply_result("ORD-1", Outcome(status=FAILED))
        self.ledger.create("ORD-1", amount="50.00")
        record = self.ledger.get("ORD-1")
        self.assertEqual(record.amount, "50.00")
        self.assertEqual(record.status, PENDING)

    def test_returned_records_are_copies(self):
        self.ledger.create("ORD-1", amount="100.00")
        self.ledger.get("ORD-1").status = SUCCESS
        self.assertEqual(self.ledger.get("ORD-1").status, PENDING)

    def test_outcome_must_be_terminal(self):
        with self.assertRaises(ValueError):
            Outcome(status=PENDING)

    def test_records_expire_after_ttl(self):
        now = [1000.0]
        ledger = InMemoryLedger(ttl_seconds=60, max_entries=0, clock=lambda: now[0])
        ledger.create("ORD-1", amount="1.00")
        now[0] += 30
        ledger.create("ORD-2", amount="2.00")
        ledger.apply_result("ORD-1", Outcome(status=SUCCESS, response_code="00"))
        now[0] += 31
        self.assertIsNone(ledger.get("ORD-1"))
        self.assertIsNotNone(ledger.get("ORD-2"))
        self.assertEqual(ledger.size(), 1)

    def test_capacity_evicts_oldest(self):
        ledger = InMemoryLedger(ttl_seconds=0, max_entries=2)
        for i in range(3):
            ledger.create(f"ORD-{i}", amount="1.00")
        self.assertIsNone(ledger.get("ORD-0"))
        self.assertEqual(ledger.size(), 2)


class CacheLedgerTests(SimpleTestCase):
    def setUp(self):
        caches["default"].clear()
        self.ledger = CacheLedger(ttl_seconds=60, key_prefix="test:txn:")

    def test_round_trips_records_through_cache(self):
        self.ledger.create("ORD-1", amount="100.00", customer_name="Ali")
        self.ledger.apply_result("ORD-1", Outcome(status=SUCCESS, response_code="00"))
        record = self.ledger.get("ORD-1")
        self.assertEqual(record.status, SUCCESS)
        self.assertEqual(record.customer_name, "Ali")
        self.assertIsNone(self.ledger.get("ORD-2"))
        self.assertIsNone(self.ledger.size())

    def test_build_ledger_from_settings_dict(self):
        with self.assertLogs("alfalah.ledger", level="INFO") as cm:
            ledger = build_ledger({"BACKEND": "alfalah.ledger.CacheLedger", "OPTIONS": {"ttl_seconds": 10, "max_entries": 5}})
        self.assertIsInstance(ledger, CacheLedger)
        self.assertEqual(ledger.timeout, 10)
        self.assertTrue(any("max_entries=5" in line for line in cm.output))


class CheckConfigurationTests(SimpleTestCase):
    def test_missing_values_are_critical(self):
        with self.assertLogs("alfalah.conf", level="CRITICAL") as cm:
            problems = check_configuration(AlfalahConfig(key1="short", key2=KEY2))
        self.assertIn("missing merchant_id", problems)
        self.assertIn("short key1", problems)
        self.assertTrue(any("KEY1" in line for line in cm.output))

    def test_complete_configuration_has_no_problems(self):
        config = AlfalahConfig(
            channel_id="1001", merchant_id="1", store_id="2", return_url="https://r",
            listener_url="https://l", key1=KEY1, key2=KEY2,
        )
        self.assertEqual(check_configuration(config), [])
        self.assertEqual(config.presence()["key1"], "✓")
        self.assertEqual(config.presence()["payment_url"], "✗")
