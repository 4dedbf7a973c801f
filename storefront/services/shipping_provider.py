from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
import time
from typing import Any, Dict, List, Optional
import uuid

import httpx

from storefront.config import settings
from storefront.errors import ExternalServiceError, ServiceNotConfiguredError
from storefront.utils.logger import integration_logger, logger
from storefront.utils.money import round_half_up


FEDEX_TRACKING_URL = "https://www.fedex.com/fedextrack/?trknbr="

# Refresh the OAuth token this many seconds before FedEx says it expires.
_TOKEN_SAFETY_MARGIN_SECONDS = 300

FEDEX_SERVICE_NAMES = {
    "FEDEX_GROUND": "FedEx Ground",
    "FEDEX_HOME_DELIVERY": "FedEx Home Delivery",
    "GROUND_HOME_DELIVERY": "FedEx Ground Home Delivery",
    "FEDEX_EXPRESS_SAVER": "FedEx Express Saver",
    "FEDEX_2_DAY": "FedEx 2Day",
    "FEDEX_2_DAY_AM": "FedEx 2Day A.M.",
    "STANDARD_OVERNIGHT": "FedEx Standard Overnight",
    "PRIORITY_OVERNIGHT": "FedEx Priority Overnight",
    "FIRST_OVERNIGHT": "FedEx First Overnight",
}

DEFAULT_PARCEL = {
    "weight": {"value": 1, "units": "LB"},
    "dimensions": {"length": 10, "width": 8, "height": 4, "units": "IN"},
}


def tracking_url_for(tracking_number: str) -> str:
    return f"{FEDEX_TRACKING_URL}{tracking_number}"


def parcel_for_weight(weight_oz: Optional[float]) -> Dict[str, Any]:
    if not weight_oz:
        return dict(DEFAULT_PARCEL)
    pounds = max(Decimal("0.1"), (Decimal(str(weight_oz)) / Decimal(16)).quantize(Decimal("0.1")))
    return {"weight": {"value": float(pounds), "units": "LB"}, "dimensions": DEFAULT_PARCEL["dimensions"]}


def address_from_snapshot(address: Dict[str, Any], email: Optional[str] = None) -> Dict[str, Any]:
    """Carrier-shaped recipient built from an order's shipping address snapshot."""
    street = [line for line in [address.get("addressLine1"), address.get("addressLine2")] if line]
    return {
        "streetLines": street,
        "city": address.get("city") or "",
        "stateOrProvinceCode": address.get("state") or "",
        "postalCode": address.get("postalCode") or "",
        "countryCode": address.get("country") or "US",
        "residential": True,
        "contact": {
            "personName": address.get("fullName") or "Customer",
            "phoneNumber": address.get("phone") or "0000000000",
            "emailAddress": email or address.get("email"),
        },
    }


@dataclass
class RateRequest:
    """Rates for a parcel set from the store to one destination."""

    to_address: Dict[str, Any]
    from_address: Dict[str, Any] = field(default_factory=lambda: settings.store_origin)
    parcels: List[Dict[str, Any]] = field(default_factory=lambda: [dict(DEFAULT_PARCEL)])


@dataclass
class Rate:
    service_code: str
    service_name: str
    carrier: str
    amount_cents: int
    currency: str = "USD"
    estimated_days: Optional[int] = None
    delivery_day: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serviceType": self.service_code,
            "serviceName": self.service_name,
            "carrier": self.carrier,
            "amountCents": self.amount_cents,
            "currency": self.currency,
            "transitDays": self.estimated_days,
            "deliveryDay": self.delivery_day,
        }


@dataclass
class LabelDetails:
    tracking_number: str
    carrier: str
    service_name: str
    tracking_url: str
    label_data: Optional[str] = None
    label_file_type: str = "pdf"


@dataclass
class TrackingEvent:
    timestamp: Optional[str]
    description: Optional[str]
    city: Optional[str] = None
    state: Optional[str] = None


@dataclass
class TrackingInfo:
    tracking_number: str
    status: str
    description: str = ""
    estimated_delivery: Optional[str] = None
    events: List[TrackingEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trackingNumber": self.tracking_number,
            "status": self.status,
            "statusDescription": self.description,
            "estimatedDelivery": self.estimated_delivery,
            "events": [
                {"timestamp": e.timestamp, "eventDescription": e.description, "city": e.city, "stateOrProvinceCode": e.state}
                for e in self.events
            ],
        }


class ShippingRateProvider:
    """Abstract interface for carrier rate/label/tracking providers."""

    async def get_rates(self, request: RateRequest) -> List[Rate]:  # pragma: no cover - interface
        raise NotImplementedError

    async def create_label(
        self,
        to_address: Dict[str, Any],
        parcels: List[Dict[str, Any]],
        service_type: str = "FEDEX_GROUND",
    ) -> LabelDetails:  # pragma: no cover - interface
        raise NotImplementedError

    async def track(self, tracking_number: str) -> TrackingInfo:  # pragma: no cover - interface
        raise NotImplementedError


class FakeShippingRateProvider(ShippingRateProvider):
    """Local stand-in used in debug mode when FedEx is not configured.

    Does not talk to any external service.
    """

    async def get_rates(self, request: RateRequest) -> List[Rate]:
        weight_lb = sum(float(p.get("weight", {}).get("value", 1)) for p in request.parcels) or 1.0
        ground = round_half_up(899 * weight_lb)
        express = round_half_up(ground * 2.5)
        return [
            Rate("FEDEX_GROUND", FEDEX_SERVICE_NAMES["FEDEX_GROUND"], "FedEx", ground, estimated_days=5),
            Rate("FEDEX_2_DAY", FEDEX_SERVICE_NAMES["FEDEX_2_DAY"], "FedEx", express, estimated_days=2),
        ]

    async def create_label(self, to_address, parcels, service_type="FEDEX_GROUND") -> LabelDetails:
        tracking = f"FAKE{uuid.uuid4().hex[:12].upper()}"
        return LabelDetails(
            tracking_number=tracking,
            carrier="FedEx",
            service_name=FEDEX_SERVICE_NAMES.get(service_type, service_type),
            tracking_url=tracking_url_for(tracking),
            label_data=None,
        )

    async def track(self, tracking_number: str) -> TrackingInfo:
        return TrackingInfo(tracking_number=tracking_number, status="Label created", description="Shipment information sent to FedEx")


class FedExShippingProvider(ShippingRateProvider):
    """FedEx REST API (OAuth client credentials).

    The access token is cached per process and shared by all instances.
    Rates and tracking are retried on transport errors and 5xx responses;
    label purchase is never retried.
    """

    _token: Optional[str] = None
    _token_expires_at: float = 0.0
    _token_lock = asyncio.Lock()

    def __init__(
        self,
        api_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        account_number: Optional[str] = None,
    ):
        self.api_url = (api_url or settings.FEDEX_API_URL).rstrip("/")
        self.client_id = client_id or settings.FEDEX_CLIENT_ID
        self.client_secret = client_secret or settings.FEDEX_CLIENT_SECRET
        self.account_number = account_number or settings.FEDEX_ACCOUNT_NUMBER

    @classmethod
    def clear_token_cache(cls) -> None:
        cls._token = None
        cls._token_expires_at = 0.0

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(settings.FEDEX_TIMEOUT_SECONDS, connect=10.0)

    async def get_access_token(self) -> str:
        cls = type(self)
        if cls._token and time.monotonic() < cls._token_expires_at:
            return cls._token

        async with cls._token_lock:
            # Another coroutine may have refreshed while we waited.
            if cls._token and time.monotonic() < cls._token_expires_at:
                return cls._token

            if not self.client_id or not self.client_secret:
                raise ServiceNotConfiguredError("FedEx")

            data = {
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            }
            try:
                async with httpx.AsyncClient(timeout=self._timeout()) as client:
                    resp = await client.post(
                        f"{self.api_url}/oauth/token",
                        data=data,
                        headers={"Content-Type": "application/x-www-form-urlencoded"},
                    )
            except httpx.HTTPError as exc:
                integration_logger.log_event("fedex", "OAuth token request failed", request_data=data, status="error", error=str(exc))
                raise ExternalServiceError("Failed to authenticate with FedEx", provider="fedex", detail=str(exc)) from exc

            if resp.status_code != 200:
                integration_logger.log_event(
                    "fedex",
                    "OAuth token request rejected",
                    request_data=data,
                    response_data={"status_code": resp.status_code},
                    status="error",
                    error=resp.text,
                )
                raise ExternalServiceError("Failed to authenticate with FedEx", provider="fedex", detail=resp.text)

            payload = resp.json()
            expires_in = int(payload.get("expires_in") or 0)
            cls._token = payload["access_token"]
            cls._token_expires_at = time.monotonic() + max(0, expires_in - _TOKEN_SAFETY_MARGIN_SECONDS)
            integration_logger.log_event("fedex", "OAuth token refreshed", response_data={"expires_in": expires_in}, status="success")
            return cls._token

    async def _post(self, path: str, body: Dict[str, Any], description: str, retries: int = 0) -> Dict[str, Any]:
        attempts = retries + 1
        last_error: Optional[str] = None

        for attempt in range(1, attempts + 1):
            token = await self.get_access_token()
            headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json", "X-locale": "en_US"}
            try:
                async with httpx.AsyncClient(timeout=self._timeout()) as client:
                    resp = await client.post(f"{self.api_url}{path}", json=body, headers=headers)
            except httpx.TransportError as exc:
                last_error = str(exc)
                logger.warning(f"[fedex] {description} transport error (attempt {attempt}/{attempts}): {exc}")
                continue

            if resp.status_code == 401:
                # Token revoked early; drop it so the next attempt re-authenticates.
                self.clear_token_cache()
                last_error = resp.text
                continue
            if resp.status_code >= 500 and attempt < attempts:
                last_error = resp.text
                logger.warning(f"[fedex] {description} got {resp.status_code} (attempt {attempt}/{attempts})")
                continue
            if resp.status_code >= 300:
                integration_logger.log_event(
                    "fedex", f"{description} failed", response_data={"status_code": resp.status_code}, status="error", error=resp.text
                )
                raise ExternalServiceError(f"FedEx {description} failed", provider="fedex", detail=resp.text)

            integration_logger.log_event("fedex", f"{description} succeeded", status="success")
            return resp.json()

        integration_logger.log_event("fedex", f"{description} failed", status="error", error=last_error)
        raise ExternalServiceError(f"FedEx {description} failed", provider="fedex", detail=last_error)

    async def get_rates(self, request: RateRequest) -> List[Rate]:
        body = {
            "accountNumber": {"value": self.account_number},
            "requestedShipment": {
                "shipper": {"address": request.from_address},
                "recipient": {"address": request.to_address},
                "pickupType": "DROPOFF_AT_FEDEX_LOCATION",
                "rateRequestType": ["LIST", "ACCOUNT"],
                "requestedPackageLineItems": [
                    {"weight": p.get("weight"), "dimensions": p.get("dimensions")} for p in request.parcels
                ],
            },
        }
        data = await self._post("/rate/v1/rates/quotes", body, "rate quote", retries=settings.FEDEX_READ_RETRIES)

        rates: List[Rate] = []
        for detail in (data.get("output") or {}).get("rateReplyDetails") or []:
            rated = (detail.get("ratedShipmentDetails") or [None])[0]
            if not rated:
                continue
            service = detail.get("serviceType", "")
            commit = detail.get("commit") or {}
            transit = (commit.get("transitDays") or {}).get("days")
            rates.append(
                Rate(
                    service_code=service,
                    service_name=FEDEX_SERVICE_NAMES.get(service, service),
                    carrier="FedEx",
                    amount_cents=round_half_up(Decimal(str(rated.get("totalNetCharge", 0))) * 100),
                    currency=rated.get("currency") or "USD",
                    estimated_days=int(transit) if isinstance(transit, (int, float)) else None,
                    delivery_day=(commit.get("dateDetail") or {}).get("dayOfWeek"),
                )
            )
        return sorted(rates, key=lambda r: r.amount_cents)

    async def create_label(self, to_address, parcels, service_type="FEDEX_GROUND") -> LabelDetails:
        origin = settings.store_origin
        recipient_address = {k: v for k, v in to_address.items() if k != "contact"}
        body = {
            "labelResponseOptions": "LABEL",
            "accountNumber": {"value": self.account_number},
            "requestedShipment": {
                "shipper": {
                    "contact": {
                        "personName": settings.STORE_NAME,
                        "phoneNumber": settings.STORE_PHONE,
                        "companyName": settings.STORE_NAME,
                    },
                    "address": origin,
                },
                "recipients": [{"contact": to_address.get("contact"), "address": recipient_address}],
                "pickupType": "DROPOFF_AT_FEDEX_LOCATION",
                "serviceType": service_type,
                "packagingType": "YOUR_PACKAGING",
                "shippingChargesPayment": {
                    "paymentType": "SENDER",
                    "payor": {"responsibleParty": {"accountNumber": {"value": self.account_number}}},
                },
                "labelSpecification": {"labelFormatType": "COMMON2D", "labelStockType": "PAPER_4X6", "imageType": "PDF"},
                "requestedPackageLineItems": [
                    {"sequenceNumber": i + 1, "weight": p.get("weight"), "dimensions": p.get("dimensions")}
                    for i, p in enumerate(parcels)
                ],
            },
        }
        data = await self._post("/ship/v1/shipments", body, "shipment creation", retries=0)

        shipments = (data.get("output") or {}).get("transactionShipments") or []
        piece = ((shipments[0].get("pieceResponses") or [{}])[0]) if shipments else {}
        tracking = piece.get("trackingNumber")
        documents = piece.get("packageDocuments") or [{}]
        label = documents[0].get("encodedLabel")
        if not tracking or not label:
            raise ExternalServiceError(
                "FedEx shipment creation failed", provider="fedex", detail="Missing tracking number or label from FedEx response"
            )

        return LabelDetails(
            tracking_number=tracking,
            carrier="FedEx",
            service_name=FEDEX_SERVICE_NAMES.get(service_type, service_type),
            tracking_url=tracking_url_for(tracking),
            label_data=label,
        )

    async def track(self, tracking_number: str) -> TrackingInfo:
        body = {
            "trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}],
            "includeDetailedScans": True,
        }
        data = await self._post("/track/v1/trackingnumbers", body, "tracking", retries=settings.FEDEX_READ_RETRIES)

        complete = ((data.get("output") or {}).get("completeTrackResults") or [{}])[0]
        result = (complete.get("trackResults") or [None])[0]
        if not result:
            raise ExternalServiceError("FedEx tracking failed", provider="fedex", detail="No tracking results found")

        latest = result.get("latestStatusDetail") or {}
        estimated = next(
            (d.get("dateTime") for d in result.get("dateAndTimes") or [] if d.get("type") == "ESTIMATED_DELIVERY"),
            None,
        )
        events = [
            TrackingEvent(
                timestamp=e.get("date"),
                description=e.get("eventDescription"),
                city=(e.get("scanLocation") or {}).get("city"),
                state=(e.get("scanLocation") or {}).get("stateOrProvinceCode"),
            )
            for e in result.get("scanEvents") or []
        ]
        return TrackingInfo(
            tracking_number=tracking_number,
            status=latest.get("statusByLocale") or "Unknown",
            description=latest.get("description") or "",
            estimated_delivery=estimated,
            events=events,
        )


def get_shipping_provider() -> ShippingRateProvider:
    """FastAPI dependency returning the carrier provider."""
    if settings.fedex_configured:
        return FedExShippingProvider()
    if settings.DEBUG:
        logger.info("FedEx not configured; using FakeShippingRateProvider")
        return FakeShippingRateProvider()
    raise ServiceNotConfiguredError("FedEx")
