"""Outbound clients for OTAs, payment gateways and SMS/email providers.

Every provider sits behind :class:`OutboundClient`: ``send`` an operation with
a payload and get a :class:`DeliveryResult` back. Transport failures are
retried with exponential backoff and reported in the result; they are never
raised into the booking or order transaction that triggered the call.
"""
from __future__ import annotations

import logging
import smtplib
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

import httpx
from circuitbreaker import CircuitBreaker, CircuitBreakerError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class ProviderKind(str, Enum):
    OTA = "ota"
    PAYMENT = "payment"
    SMS = "sms"
    EMAIL = "email"


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    kind: ProviderKind
    base_url: str
    endpoints: Dict[str, str]
    sync_frequency: Optional[str] = None
    timeout: float = 30.0
    methods: tuple[str, ...] = ()


class ProviderCredentials(BaseSettings):
    """Credentials read from ``<PROVIDER>_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PROVIDER_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    enabled: bool = False
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    account_id: Optional[str] = None
    sender: Optional[str] = None
    host: Optional[str] = None
    port: int = 587


PROVIDERS: Dict[str, ProviderSpec] = {
    spec.name: spec
    for spec in (
        ProviderSpec(
            "makemytrip",
            ProviderKind.OTA,
            "https://affiliate-api.makemytrip.com",
            {
                "inventory": "/hotels/v2/inventory",
                "pricing": "/hotels/v2/pricing",
                "booking": "/hotels/v2/booking",
                "availability": "/hotels/v2/availability",
            },
            sync_frequency="*/30 * * * *",
        ),
        ProviderSpec(
            "airbnb",
            ProviderKind.OTA,
            "https://api.airbnb.com",
            {
                "listings": "/v2/listings",
                "pricing": "/v2/pricing_rules",
                "availability": "/v2/calendar",
                "reservations": "/v2/reservations",
            },
            sync_frequency="0 */2 * * *",
        ),
        ProviderSpec(
            "booking_com",
            ProviderKind.OTA,
            "https://supply-xml.booking.com",
            {
                "inventory": "/hotels/ota/OTA_HotelInvCount",
                "rates": "/hotels/ota/OTA_HotelRateAmount",
                "availability": "/hotels/ota/OTA_HotelAvail",
                "reservations": "/hotels/ota/OTA_HotelRes",
            },
            sync_frequency="0 * * * *",
            timeout=45.0,
        ),
        ProviderSpec(
            "yatra",
            ProviderKind.OTA,
            "https://affiliate.yatra.com/webservice",
            {
                "search": "/HotelService.svc/GetHotelSearchResults",
                "booking": "/HotelService.svc/BookHotel",
                "cancellation": "/HotelService.svc/CancelBooking",
            },
        ),
        ProviderSpec(
            "easemytrip",
            ProviderKind.OTA,
            "https://affiliate.easemytrip.com/webservice",
            {"search": "/HotelAPI/Search", "booking": "/HotelAPI/Booking", "voucher": "/HotelAPI/Voucher"},
        ),
        ProviderSpec(
            "trivago",
            ProviderKind.OTA,
            "https://connect.trivago.com",
            {"inventory": "/v1/inventory", "rates": "/v1/rates", "availability": "/v1/availability"},
            sync_frequency="0 */6 * * *",
        ),
        ProviderSpec(
            "razorpay",
            ProviderKind.PAYMENT,
            "https://api.razorpay.com",
            {"charge": "/v1/payments", "refund": "/v1/refunds"},
            methods=("card", "netbanking", "upi", "wallet"),
        ),
        ProviderSpec(
            "stripe",
            ProviderKind.PAYMENT,
            "https://api.stripe.com",
            {"charge": "/v1/payment_intents", "refund": "/v1/refunds"},
            methods=("card",),
        ),
        ProviderSpec(
            "payu",
            ProviderKind.PAYMENT,
            "https://secure.payu.in",
            {"charge": "/_payment", "verify": "/merchant/postservice.php"},
            methods=("card", "netbanking", "upi", "emi"),
        ),
        ProviderSpec(
            "twilio",
            ProviderKind.SMS,
            "https://api.twilio.com",
            {"send": "/2010-04-01/Accounts/{account_id}/Messages.json"},
        ),
        ProviderSpec("msg91", ProviderKind.SMS, "https://api.msg91.com", {"send": "/api/v5/flow/"}),
        ProviderSpec("smtp", ProviderKind.EMAIL, "smtp://", {"send": ""}),
    )
}


@dataclass
class DeliveryResult:
    provider: str
    success: bool
    attempts: int = 0
    status_code: Optional[int] = None
    error: Optional[str] = None
    body: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)


class OutboundCallFailed(Exception):
    """A retryable transport or server-side failure."""


class OutboundClient(ABC):
    def __init__(self, spec: ProviderSpec, credentials: ProviderCredentials) -> None:
        self.spec = spec
        self.credentials = credentials

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def enabled(self) -> bool:
        return self.credentials.enabled

    @abstractmethod
    def send(self, operation: str, payload: Dict[str, Any]) -> DeliveryResult:
        """Deliver ``payload`` for ``operation`` and report the outcome."""


class RetryingClient(OutboundClient):
    """Shared bounded-retry loop around a single delivery attempt."""

    def __init__(
        self,
        spec: ProviderSpec,
        credentials: ProviderCredentials,
        *,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(spec, credentials)
        self.max_retries = max_retries or settings.outbound_max_retries
        self.backoff = settings.outbound_retry_backoff if backoff is None else backoff
        self._sleep = sleep
        self._breaker = CircuitBreaker(
            failure_threshold=settings.outbound_failure_threshold,
            recovery_timeout=settings.outbound_recovery_timeout,
            expected_exception=OutboundCallFailed,
            name=f"integration-{spec.name}",
        )
        # Attempts go through the decorated form, which refuses calls while the circuit is open.
        self._guarded_attempt = self._breaker(self._attempt)

    @abstractmethod
    def _attempt(self, operation: str, payload: Dict[str, Any]) -> DeliveryResult:
        """One delivery attempt; raise OutboundCallFailed to retry."""

    def send(self, operation: str, payload: Dict[str, Any]) -> DeliveryResult:
        if not self.enabled:
            return DeliveryResult(provider=self.name, success=False, error="Provider is disabled")
        if operation not in self.spec.endpoints:
            return DeliveryResult(provider=self.name, success=False, error=f"Unsupported operation: {operation}")

        last_error: Optional[str] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                result = self._guarded_attempt(operation, payload)
            except CircuitBreakerError as exc:
                logger.warning("%s circuit open, giving up: %s", self.name, exc)
                return DeliveryResult(provider=self.name, success=False, attempts=attempt - 1, error=str(exc))
            except OutboundCallFailed as exc:
                last_error = str(exc)
                logger.warning("%s %s attempt %d/%d failed: %s", self.name, operation, attempt, self.max_retries, exc)
                if attempt < self.max_retries:
                    self._sleep(self.backoff * 2 ** (attempt - 1))
                continue
            result.attempts = attempt
            return result

        logger.error("%s %s failed after %d attempts", self.name, operation, self.max_retries)
        return DeliveryResult(provider=self.name, success=False, attempts=self.max_retries, error=last_error)


class HttpIntegrationClient(RetryingClient):
    def __init__(
        self,
        spec: ProviderSpec,
        credentials: ProviderCredentials,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(spec, credentials, **kwargs)
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.credentials.api_key:
            headers["Authorization"] = f"Bearer {self.credentials.api_key}"
        return headers

    def _path(self, operation: str) -> str:
        return self.spec.endpoints[operation].format(account_id=self.credentials.account_id or "")

    def _attempt(self, operation: str, payload: Dict[str, Any]) -> DeliveryResult:
        try:
            with httpx.Client(
                base_url=self.spec.base_url,
                timeout=min(self.spec.timeout, settings.outbound_timeout),
                transport=self._transport,
            ) as client:
                response = client.post(self._path(operation), json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise OutboundCallFailed(f"{type(exc).__name__}: {exc}") from exc
        if response.status_code == 429 or response.status_code >= 500:
            raise OutboundCallFailed(f"HTTP {response.status_code}")
        return self.interpret_response(response)

    def interpret_response(self, response: httpx.Response) -> DeliveryResult:
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        if response.is_success:
            return DeliveryResult(provider=self.name, success=True, status_code=response.status_code, body=body)
        return DeliveryResult(
            provider=self.name,
            success=False,
            status_code=response.status_code,
            error=f"Rejected with HTTP {response.status_code}",
            body=body,
        )


class SmtpEmailClient(RetryingClient):
    @contextmanager
    def _connection(self) -> Iterator[smtplib.SMTP]:
        server = smtplib.SMTP(self.credentials.host or "localhost", self.credentials.port, timeout=settings.outbound_timeout)
        try:
            server.starttls()
            if self.credentials.api_key and self.credentials.api_secret:
                server.login(self.credentials.api_key, self.credentials.api_secret)
            yield server
        finally:
            server.quit()

    def _attempt(self, operation: str, payload: Dict[str, Any]) -> DeliveryResult:
        message = MIMEText(payload["body"])
        message["Subject"] = payload.get("subject", settings.hotel_name)
        message["From"] = self.credentials.sender or f"no-reply@{self.credentials.host or 'localhost'}"
        message["To"] = payload["to"]
        try:
            with self._connection() as server:
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise OutboundCallFailed(f"{type(exc).__name__}: {exc}") from exc
        return DeliveryResult(provider=self.name, success=True)


def load_credentials(name: str) -> ProviderCredentials:
    return ProviderCredentials(_env_prefix=f"{name.upper()}_")


def build_client(name: str, transport: Optional[httpx.BaseTransport] = None, **kwargs: Any) -> OutboundClient:
    spec = PROVIDERS.get(name)
    if spec is None:
        raise KeyError(name)
    credentials = load_credentials(name)
    if spec.kind == ProviderKind.EMAIL:
        return SmtpEmailClient(spec, credentials, **kwargs)
    return HttpIntegrationClient(spec, credentials, transport=transport, **kwargs)


def providers_of(kind: ProviderKind) -> List[ProviderSpec]:
    return [spec for spec in PROVIDERS.values() if spec.kind == kind]


def first_enabled_client(kind: ProviderKind, **kwargs: Any) -> Optional[OutboundClient]:
    for spec in providers_of(kind):
        client = build_client(spec.name, **kwargs)
        if client.enabled:
            return client
    return None


def catalogue() -> List[Dict[str, Any]]:
    """Public view of the provider catalogue; credentials are never included."""

    entries = []
    for spec in PROVIDERS.values():
        entries.append(
            {
                "name": spec.name,
                "kind": spec.kind.value,
                "enabled": load_credentials(spec.name).enabled,
                "base_url": spec.base_url,
                "operations": sorted(spec.endpoints),
                "sync_frequency": spec.sync_frequency,
                "methods": list(spec.methods),
            }
        )
    return entries
