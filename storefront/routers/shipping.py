from fastapi import APIRouter, Depends

from storefront.models.orders import FedExRatesRequest
from storefront.services.shipping_provider import (
    RateRequest,
    ShippingRateProvider,
    get_shipping_provider,
    parcel_for_weight,
)

router = APIRouter(prefix="/api/shipping", tags=["shipping"])


@router.post("/fedex-rates")
async def fedex_rates(payload: FedExRatesRequest, provider: ShippingRateProvider = Depends(get_shipping_provider)):
    """Live carrier quotes for a destination; cheapest first."""
    destination = {
        "streetLines": [""],
        "city": payload.city or "",
        "stateOrProvinceCode": payload.state or "",
        "postalCode": payload.postalCode,
        "countryCode": payload.country,
        "residential": True,
    }
    rates = await provider.get_rates(RateRequest(to_address=destination, parcels=[parcel_for_weight(payload.weightOz)]))
    return {"rates": [r.to_dict() for r in rates]}
