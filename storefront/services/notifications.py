"""Transactional email via the SendGrid v3 REST API.

Every sender returns True/False and never raises: a failed email is
logged and must not fail the checkout, webhook or admin action that
triggered it.
"""
from __future__ import annotations

from html import escape
from typing import Iterable, Optional

import httpx
from bs4 import BeautifulSoup

from storefront.config import settings
from storefront.models_sqlalchemy.models import Order, OrderItem
from storefront.utils.logger import integration_logger, logger
from storefront.utils.money import format_price


SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
SUPPORT_EMAIL = "support@3tekdesign.com"


async def send_email(to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
    if not settings.email_configured:
        logger.warning("SendGrid API key not configured, skipping email")
        return False

    payload = {
        "personalizations": [{"to": [{"email": to}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL, "name": settings.SENDGRID_FROM_NAME},
        "subject": subject,
        "content": [
            {"type": "text/plain", "value": text or _html_to_text(html)},
            {"type": "text/html", "value": html},
        ],
    }
    headers = {"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"}

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.EMAIL_TIMEOUT_SECONDS, connect=5.0)) as client:
            resp = await client.post(SENDGRID_SEND_URL, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        integration_logger.log_event("sendgrid", f"Email to {to} failed", status="error", error=str(exc))
        return False

    # SendGrid answers 202 Accepted on success.
    if resp.status_code >= 300:
        integration_logger.log_event(
            "sendgrid",
            f"Email to {to} rejected",
            response_data={"status_code": resp.status_code},
            status="error",
            error=resp.text,
        )
        return False

    integration_logger.log_event("sendgrid", f"Email sent to {to}: {subject}", status="success")
    return True


def _html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["head", "style", "script"]):
        tag.decompose()
    return soup.get_text("\n", strip=True)


def _customer_name(order: Order) -> str:
    address = order.shipping_address or {}
    return address.get("fullName") or "there"


def _base_template(title: str, content: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{escape(title)}</title></head>
<body style="margin:0;padding:0;background-color:#f5f5f5;font-family:Helvetica,Arial,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0">
    <tr><td align="center" style="padding:32px 16px;">
      <table width="600" cellpadding="0" cellspacing="0" style="background-color:#ffffff;">
        <tr><td style="background-color:#0a0a0a;padding:24px;text-align:center;">
          <h1 style="margin:0;color:#d4ff00;font-size:24px;letter-spacing:2px;">{escape(settings.STORE_NAME)}</h1>
        </td></tr>
        <tr><td style="padding:32px;color:#0a0a0a;">{content}</td></tr>
        <tr><td style="padding:24px;text-align:center;color:#888888;font-size:12px;">
          Questions? <a href="mailto:{SUPPORT_EMAIL}" style="color:#0a0a0a;">{SUPPORT_EMAIL}</a>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""


def _items_html(items: Iterable[OrderItem], with_prices: bool) -> str:
    rows = []
    for item in items:
        price = f"<td align=\"right\">{format_price(item.total_cents)}</td>" if with_prices else ""
        rows.append(
            f"<tr><td style=\"padding:8px 0;\">{escape(item.product_name)} &times; {item.quantity}</td>{price}</tr>"
        )
    return f"<table width=\"100%\" cellpadding=\"0\" cellspacing=\"0\">{''.join(rows)}</table>"


def _address_html(address: dict) -> str:
    lines = [
        address.get("fullName"),
        address.get("addressLine1"),
        address.get("addressLine2"),
        " ".join(p for p in [f"{address.get('city', '')},", address.get("state"), address.get("postalCode")] if p),
        address.get("country"),
    ]
    return "<br>".join(escape(str(line)) for line in lines if line)


async def send_order_confirmation_email(order: Order) -> bool:
    totals = [
        ("Subtotal", order.subtotal_cents),
        ("Discount", -order.discount_cents if order.discount_cents else None),
        ("Shipping", order.shipping_cents),
        ("Tax", order.tax_cents),
    ]
    totals_html = "".join(
        f"<tr><td>{label}</td><td align=\"right\">{format_price(value) if value >= 0 else '-' + format_price(-value)}</td></tr>"
        for label, value in totals
        if value is not None
    )
    content = f"""
    <h2>Thank you for your order!</h2>
    <p>Hi {escape(_customer_name(order))},</p>
    <p>We've received your order <strong>#{escape(order.order_number)}</strong> and will start printing soon.</p>
    {_items_html(order.items, with_prices=True)}
    <table width="100%" cellpadding="0" cellspacing="0" style="margin-top:16px;border-top:1px solid #eeeeee;">
      {totals_html}
      <tr><td><strong>Total</strong></td><td align="right"><strong>{format_price(order.total_cents)}</strong></td></tr>
    </table>
    <h3>Shipping to</h3>
    <p>{_address_html(order.shipping_address or {})}</p>
    <p><a href="{settings.APP_URL}/track?orderNumber={escape(order.order_number)}">Track your order</a></p>
    """
    return await send_email(
        order.email,
        f"Order Confirmed - #{order.order_number}",
        _base_template("Order confirmation", content),
    )


async def send_shipping_notification_email(order: Order) -> bool:
    tracking = ""
    if order.tracking_number:
        carrier = f"<p style=\"margin:0 0 8px 0;color:#888888;\">{escape(order.shipping_carrier)}</p>" if order.shipping_carrier else ""
        link = f"<p><a href=\"{escape(order.tracking_url)}\">Track Your Package</a></p>" if order.tracking_url else ""
        tracking = f"""
        <div style="background-color:#0a0a0a;color:#ffffff;padding:24px;text-align:center;">
          <h3>Tracking Information</h3>{carrier}
          <p style="font-family:monospace;font-size:20px;">{escape(order.tracking_number)}</p>{link}
        </div>"""

    content = f"""
    <h2>Your order is on its way!</h2>
    <p>Hi {escape(_customer_name(order))},</p>
    <p>Great news! Your order <strong>#{escape(order.order_number)}</strong> has shipped and is on its way to you.</p>
    {tracking}
    {_items_html(order.items, with_prices=False)}
    <h3>Shipping to</h3>
    <p>{_address_html(order.shipping_address or {})}</p>
    """
    return await send_email(
        order.email,
        f"Your Order Has Shipped - #{order.order_number}",
        _base_template("Shipping notification", content),
    )


REFUND_REASON_LABELS = {
    "requested_by_customer": "Customer request",
    "duplicate": "Duplicate order",
    "fraudulent": "Fraudulent",
}


async def send_refund_notification_email(order: Order, refund_amount_cents: int, is_full_refund: bool, reason: Optional[str] = None) -> bool:
    partial_note = "" if is_full_refund else f"<p style=\"color:#666666;\">out of {format_price(order.total_cents)} total</p>"
    reason_label = REFUND_REASON_LABELS.get(reason or "")
    reason_html = f"<p style=\"color:#666666;\"><strong>Reason:</strong> {escape(reason_label)}</p>" if reason_label else ""

    content = f"""
    <h2>Refund Processed</h2>
    <p>Hi {escape(_customer_name(order))},</p>
    <p>We've processed a {'full' if is_full_refund else 'partial'} refund for your order <strong>#{escape(order.order_number)}</strong>.</p>
    <div style="background-color:#f5f5f5;padding:24px;margin:24px 0;text-align:center;">
      <p style="font-family:monospace;font-size:32px;font-weight:700;color:#22c55e;margin:0;">{format_price(refund_amount_cents)}</p>
      {partial_note}
    </div>
    <p>The refund has been submitted to your original payment method. It may take <strong>5-10 business days</strong> to appear on your statement.</p>
    {reason_html}
    """
    return await send_email(
        order.email,
        f"Refund Processed - #{order.order_number}",
        _base_template("Refund processed", content),
    )
