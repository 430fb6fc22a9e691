import os
from datetime import datetime, timezone

import pytest

from pos_billing.core.schemas import InvoiceLine, InvoiceSnapshot
from pos_billing.services.invoice import InvoiceRenderer


@pytest.fixture
def invoice():
    return InvoiceSnapshot(
        bill_no="INV-00042",
        items=[
            InvoiceLine(name="Product A", unit_price=100, quantity=2),
            InvoiceLine(name="<b>Pen</b>", unit_price=50, quantity=1),
        ],
        customer_name="Asha Rao",
        customer_phone="9876543210",
        subtotal=250,
        discount_percent=10,
        discount_amount=25,
        total=225,
        timestamp=datetime(2026, 3, 1, 10, 30, tzinfo=timezone.utc),
    )


def test_print_page_contents(renderer, invoice):
    art = renderer.render(invoice, "print")
    html = art.content
    assert art.path is None
    for needle in ("BILLING SYSTEM", "Tax Invoice", "Date: 2026-03-01", "Bill No: #INV-00042",
                   "Asha Rao", "Phone: 9876543210", "INR 200.00", "Subtotal:", "INR 250.00",
                   "Discount (10%):", "INR 25.00", "Grand Total:", "INR 225.00",
                   "Thank you for your business!", "window.print()"):
        assert needle in html
    # los nombres se escapan
    assert "&lt;b&gt;Pen&lt;/b&gt;" in html


def test_download_writes_document(renderer, invoice):
    art = renderer.render(invoice, "download")
    assert art.filename.startswith("bill_") and art.filename.endswith(".html")
    assert os.path.exists(art.path)
    with open(art.path, encoding="utf-8") as f:
        body = f.read()
    assert body == art.content
    assert "window.print()" not in body


def test_guest_without_phone(renderer, invoice):
    guest = invoice.model_copy(update={"customer_name": "Guest Customer", "customer_phone": ""})
    html = renderer.render_html(guest)
    assert "Guest Customer" in html
    assert "Phone:" not in html


def test_currency_is_configurable(tmp_path, invoice):
    r = InvoiceRenderer(invoice_dir=str(tmp_path), currency="USD", title="SHOP")
    html = r.render_html(invoice)
    assert "USD 225.00" in html and "SHOP" in html


def test_unknown_action(renderer, invoice):
    with pytest.raises(ValueError):
        renderer.render(invoice, "fax")
