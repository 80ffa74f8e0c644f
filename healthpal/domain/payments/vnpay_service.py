"""
VNPay payment gateway adapter
Builds signed redirect URLs and verifies callback / IPN signatures (HMAC-SHA512)
"""

import hashlib
import hmac
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from urllib.parse import quote

from dateutil import tz

from ...config import (
    APP_TIMEZONE,
    VNPAY_EXPIRE_MINUTES,
    VNPAY_HASH_SECRET,
    VNPAY_IPN_URL,
    VNPAY_RETURN_URL,
    VNPAY_TMN_CODE,
    VNPAY_URL,
)

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y%m%d%H%M%S"
SIGNATURE_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")
SUCCESS_RESPONSE_CODE = "00"

# Characters encodeURIComponent leaves untouched
URI_COMPONENT_SAFE = "-_.!~*'()"


def to_gateway_amount(amount) -> str:
    """VNPay amounts are VND x 100 with no decimal point"""
    return str(int((Decimal(str(amount)) * 100).to_integral_value()))


def from_gateway_amount(value: str) -> Decimal:
    return Decimal(int(value)) / 100


class VNPayService:
    """VNPay client configured from environment"""

    VERSION = "2.1.0"
    COMMAND = "pay"
    CURRENCY_CODE = "VND"
    LOCALE = "vn"
    ORDER_TYPE = "other"

    def __init__(
        self,
        tmn_code: str = VNPAY_TMN_CODE,
        hash_secret: str = VNPAY_HASH_SECRET,
        payment_url: str = VNPAY_URL,
        return_url: str = VNPAY_RETURN_URL,
        ipn_url: str = VNPAY_IPN_URL,
        timezone: str = APP_TIMEZONE,
    ):
        self.tmn_code = tmn_code
        self.hash_secret = hash_secret
        self.payment_url = payment_url
        self.return_url = return_url
        self.ipn_url = ipn_url
        self.tz = tz.gettz(timezone)

        if not self.is_available():
            logger.warning("⚠️ VNPay not configured (VNPAY_TMN_CODE / VNPAY_HASH_SECRET missing)")

    def is_available(self) -> bool:
        return bool(self.tmn_code and self.hash_secret)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    @staticmethod
    def sort_params(params: dict) -> dict:
        """Keys in ascending order, empty values dropped"""
        return {key: str(params[key]) for key in sorted(params) if params[key] not in (None, "")}

    @staticmethod
    def create_query_string(params: dict) -> str:
        return "&".join(f"{key}={quote(str(value), safe=URI_COMPONENT_SAFE)}" for key, value in params.items())

    def create_secure_hash(self, data: str) -> str:
        return hmac.new(self.hash_secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha512).hexdigest()

    def sign(self, params: dict) -> str:
        return self.create_secure_hash(self.create_query_string(self.sort_params(params)))

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def format_date(self, value: datetime) -> str:
        if value.tzinfo is not None:
            value = value.astimezone(self.tz)
        return value.strftime(DATE_FORMAT)

    @staticmethod
    def parse_date(value: Optional[str]) -> Optional[datetime]:
        """yyyyMMddHHmmss -> naive datetime in gateway local time; None if absent or malformed"""
        if not value:
            return None
        try:
            return datetime.strptime(value, DATE_FORMAT)
        except ValueError:
            logger.warning(f"⚠️ Unparseable vnp_PayDate: {value}")
            return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_payment_url(
        self,
        appointment_id: str,
        amount,
        order_info: str,
        return_url: Optional[str] = None,
        ipn_url: Optional[str] = None,
        client_ip: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Build the signed redirect URL for a payment

        Args:
            appointment_id: Used as vnp_TxnRef so callbacks map back to the appointment
            amount: Amount in VND (scaled x100 on the wire)
            order_info: Free-text order description shown by the gateway
            return_url: Browser return URL (defaults to VNPAY_RETURN_URL)
            ipn_url: Server-to-server notification URL (defaults to VNPAY_IPN_URL)
            client_ip: Payer IP, sent as vnp_IpAddr when known
            now: Clock override
        """
        now = now or datetime.now(self.tz)
        params = {
            "vnp_Version": self.VERSION,
            "vnp_Command": self.COMMAND,
            "vnp_TmnCode": self.tmn_code,
            "vnp_Amount": to_gateway_amount(amount),
            "vnp_CurrCode": self.CURRENCY_CODE,
            "vnp_TxnRef": appointment_id,
            "vnp_OrderInfo": order_info,
            "vnp_OrderType": self.ORDER_TYPE,
            "vnp_Locale": self.LOCALE,
            "vnp_ReturnUrl": return_url or self.return_url,
            "vnp_IpnUrl": ipn_url or self.ipn_url,
            "vnp_IpAddr": client_ip,
            "vnp_CreateDate": self.format_date(now),
            "vnp_ExpireDate": self.format_date(now + timedelta(minutes=VNPAY_EXPIRE_MINUTES)),
        }

        sorted_params = self.sort_params(params)
        sorted_params["vnp_SecureHash"] = self.create_secure_hash(self.create_query_string(sorted_params))
        return f"{self.payment_url}?{self.create_query_string(sorted_params)}"

    def verify_callback(self, params: dict) -> bool:
        """Recompute the signature over every field but the hash itself and compare"""
        received = params.get("vnp_SecureHash")
        if not received:
            return False
        unsigned = {key: value for key, value in params.items() if key not in SIGNATURE_FIELDS}
        return hmac.compare_digest(str(received), self.sign(unsigned))


vnpay_service = VNPayService()
