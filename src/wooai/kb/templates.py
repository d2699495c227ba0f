"""Starter content templates for knowledge base categories that are missing.

``{store_name}`` and bracketed placeholders are left for the merchant to fill in.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from wooai.errors import InvalidArgument

TEMPLATE_VERSION = "1.0"


@dataclass
class ContentTemplate:
    title: str
    content: str
    content_type: str
    template_version: str = TEMPLATE_VERSION
    customization_needed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_TEMPLATES: dict[str, tuple[str, str, list[str]]] = {
    "shipping_policy": (
        "Shipping Policy",
        """\
We ship to [list of countries or regions]. Orders are processed within [1-2] business
days of payment; orders placed on weekends or holidays ship the next business day.

Shipping options:
- Standard shipping: [5-7] business days, [price or "free over $X"].
- Express shipping: [1-3] business days, [price].

You will receive a tracking number by email as soon as your order ships. International
orders may be subject to customs duties and taxes, which are the responsibility of the
recipient. If your package is lost or arrives damaged, contact us at [email] within
[7] days of the expected delivery date.""",
        ["countries", "processing_time", "shipping_rates", "delivery_times", "contact_email"],
    ),
    "return_policy": (
        "Returns & Refunds",
        """\
You can return most items within [30] days of delivery for a full refund. Items must be
unused, in their original packaging and accompanied by proof of purchase.

To start a return, contact us at [email] with your order number. We will send you return
instructions and, where applicable, a prepaid return label. Refunds are issued to the
original payment method within [5-10] business days after we receive the item.

Non-returnable items: [gift cards, personalised items, final-sale items]. Return shipping
costs are [paid by the customer / covered by us] unless the item arrived damaged or
incorrect.""",
        ["return_window", "contact_email", "refund_time", "non_returnable_items", "return_shipping"],
    ),
    "faq": (
        "Frequently Asked Questions",
        """\
Q: How long does shipping take?
A: Standard orders arrive within [5-7] business days. See our Shipping Policy for details.

Q: Can I change or cancel my order?
A: Contact us within [2] hours of placing your order and we will do our best to help.

Q: What payment methods do you accept?
A: We accept [credit cards, PayPal, Apple Pay, ...].

Q: How do I return an item?
A: Items can be returned within [30] days. See our Returns & Refunds page.

Q: How can I contact you?
A: Email [email] or call [phone], [business hours].""",
        ["shipping_times", "cancellation_window", "payment_methods", "return_window", "contact_details"],
    ),
    "contact_info": (
        "Contact Us",
        """\
We are happy to help with orders, products and anything else.

Email: [support email]
Phone: [phone number]
Hours: [Monday-Friday, 9:00-17:00 local time]
Address: [street, city, postal code, country]

We answer emails within [24] hours on business days. For questions about an existing
order, please include your order number.""",
        ["email", "phone", "hours", "address", "response_time"],
    ),
    "privacy_policy": (
        "Privacy Policy",
        """\
{store_name} collects the personal information you provide when you place an order or
create an account: your name, email address, shipping and billing address and phone
number. Payment details are processed by [payment provider] and are never stored on our
servers.

We use this information to fulfil orders, communicate with you about your purchases and,
if you opt in, send marketing emails. We share data only with service providers needed to
run the store (payment, shipping, email). You can request access to, correction of or
deletion of your data at any time by contacting [email].""",
        ["store_name", "payment_provider", "contact_email", "data_retention"],
    ),
    "payment_info": (
        "Payment Information",
        """\
We accept the following payment methods: [Visa, Mastercard, American Express, PayPal,
Apple Pay, Google Pay]. All prices are shown in [currency] and include [VAT / applicable
taxes] unless stated otherwise.

Your payment is processed securely by [payment provider]; we never see or store your full
card details. Your card is charged when the order is placed. If a payment fails, please
check your card details or try another payment method, or contact us at [email].""",
        ["payment_methods", "currency", "tax_display", "payment_provider", "contact_email"],
    ),
}

SUPPORTED_TEMPLATE_TYPES: tuple[str, ...] = tuple(_TEMPLATES)


def generate_content_template(content_type: str, store_name: str | None = None) -> ContentTemplate:
    """Return the starter template for *content_type*.

    Raises:
        InvalidArgument: For a type without a template.
    """
    try:
        title, content, fields = _TEMPLATES[content_type]
    except KeyError:
        raise InvalidArgument(f"Unsupported content type: {content_type}") from None
    if store_name:
        content = content.replace("{store_name}", store_name)
    else:
        content = content.replace("{store_name}", "[store name]")
    return ContentTemplate(
        title=title,
        content=content,
        content_type=content_type,
        customization_needed=list(fields),
    )
