"""Explicit payload structs for each call to the gateway.

The gateway recomputes the request hash from the fields it receives, so the
field order of every struct below is part of the contract and must not be
reshuffled.  Two conventions exist:

* ``key=value`` pairs joined with ``&`` (handshake and SSO hashes)
* positional values joined with ``|`` (page redirection ``HS_RequestHash``)

Values are joined raw; the gateway hashes the unescaped text.
"""

from dataclasses import dataclass

from . import crypto

PAYMENT_TYPES = {"1": "wallet", "2": "bank", "3": "card"}
DEFAULT_DESCRIPTION = "Order Payment"


def join_pairs(pairs) -> str:
    return "&".join(f"{key}={'' if value is None else value}" for key, value in pairs)


def join_values(values) -> str:
    return crypto.FIELD_SEPARATOR.join("" if value is None else str(value) for value in values)


@dataclass
class HandshakeFields:
    channel_id: str
    merchant_id: str
    store_id: str
    return_url: str
    merchant_hash: str
    merchant_username: str
    merchant_password: str
    transaction_reference: str
    is_redirection_request: str = "0"  # 0 = JSON answer, 1 = browser redirect

    def pairs(self) -> list:
        return [
            ("HS_ChannelId", self.channel_id),
            ("HS_MerchantId", self.merchant_id),
            ("HS_StoreId", self.store_id),
            ("HS_ReturnURL", self.return_url),
            ("HS_MerchantHash", self.merchant_hash),
            ("HS_MerchantUsername", self.merchant_username),
            ("HS_MerchantPassword", self.merchant_password),
            ("HS_TransactionReferenceNumber", self.transaction_reference),
            ("HS_IsRedirectionRequest", self.is_redirection_request),
        ]

    def to_encoded_form(self) -> str:
        return join_pairs(self.pairs())

    def signed(self, key1, key2) -> dict:
        """Ordered form data with ``HS_RequestHash`` appended."""
        data = dict(self.pairs())
        data["HS_RequestHash"] = crypto.encrypt(self.to_encoded_form(), key1, key2)
        return data


@dataclass
class SSOFields:
    auth_token: str
    channel_id: str
    currency: str
    return_url: str
    merchant_id: str
    store_id: str
    merchant_hash: str
    merchant_username: str
    merchant_password: str
    transaction_type_id: str
    transaction_reference: str
    transaction_amount: str
    is_bin: str = "0"

    def pairs(self, request_hash="") -> list:
        # RequestHash takes part in its own hash as an empty value
        return [
            ("AuthToken", self.auth_token),
            ("RequestHash", request_hash),
            ("ChannelId", self.channel_id),
            ("Currency", self.currency),
            ("IsBIN", self.is_bin),
            ("ReturnURL", self.return_url),
            ("MerchantId", self.merchant_id),
            ("StoreId", self.store_id),
            ("MerchantHash", self.merchant_hash),
            ("MerchantUsername", self.merchant_username),
            ("MerchantPassword", self.merchant_password),
            ("TransactionTypeId", self.transaction_type_id),
            ("TransactionReferenceNumber", self.transaction_reference),
            ("TransactionAmount", self.transaction_amount),
        ]

    def to_encoded_form(self) -> str:
        return join_pairs(self.pairs())

    def signed(self, key1, key2) -> dict:
        request_hash = crypto.encrypt(self.to_encoded_form(), key1, key2)
        return dict(self.pairs(request_hash))


@dataclass
class TransactionData:
    """The 8 positional values encrypted into ``HS_RequestHash`` for page redirection."""

    channel_id: str
    currency: str
    amount: str
    transaction_reference: str
    description: str
    customer_email: str
    customer_mobile: str
    return_url: str

    # position of the transaction reference once decrypted and split
    REFERENCE_INDEX = 3

    def values(self) -> list:
        return [
            self.channel_id,
            self.currency,
            self.amount,
            self.transaction_reference,
            self.description,
            self.customer_email or "",
            self.customer_mobile or "",
            self.return_url,
        ]

    def to_encoded_form(self) -> str:
        return join_values(self.values())


@dataclass
class PaymentFields:
    """``HS_*`` form the browser posts to the payment page."""

    channel_id: str
    merchant_id: str
    store_id: str
    merchant_hash: str
    merchant_username: str
    merchant_password: str
    transaction_reference: str
    transaction_amount: str
    transaction_description: str
    request_hash: str
    return_url: str
    listener_url: str
    is_redirection_request: str = "1"
    transaction_type_id: str = "3"

    def to_dict(self) -> dict:
        return {
            "HS_ChannelId": self.channel_id,
            "HS_MerchantId": self.merchant_id,
            "HS_StoreId": self.store_id,
            "HS_MerchantHash": self.merchant_hash,
            "HS_MerchantUsername": self.merchant_username,
            "HS_MerchantPassword": self.merchant_password,
            "HS_TransactionReferenceNumber": self.transaction_reference,
            "HS_TransactionAmount": self.transaction_amount,
            "HS_TransactionDescription": self.transaction_description,
            "HS_RequestHash": self.request_hash,
            "HS_IsRedirectionRequest": self.is_redirection_request,
            "HS_ReturnURL": self.return_url,
            "HS_ListenerURL": self.listener_url,
            "HS_TransactionTypeId": self.transaction_type_id,
        }


@dataclass
class StatusQuery:
    merchant_id: str
    store_id: str
    order_id: str

    def to_encoded_form(self) -> str:
        return "/".join((self.merchant_id, self.store_id, self.order_id))
