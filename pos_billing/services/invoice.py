from __future__ import annotations

import os
import time
from html import escape
from typing import Optional

import structlog

from ..core.config import settings
from ..core.schemas import FinalizeAction, InvoiceArtifact, InvoiceSnapshot
from ..utils.atomic_file import atomic_write_text
from .pricing import money

log = structlog.get_logger()


class InvoiceRenderer:
    """Formatea un InvoiceSnapshot; no conoce el carrito ni el catálogo.

    ``print``    -> página HTML lista para imprimir (dispara window.print()).
    ``download`` -> documento HTML guardado en ``invoice_dir`` como adjunto.
    """

    def __init__(
        self,
        invoice_dir: Optional[str] = None,
        currency: Optional[str] = None,
        title: Optional[str] = None,
    ):
        self.invoice_dir = invoice_dir or settings.invoice_dir
        self.currency = currency or settings.currency
        self.title = title or settings.company_title

    def render(self, invoice: InvoiceSnapshot, action: FinalizeAction) -> InvoiceArtifact:
        if action == "print":
            html = self.render_html(invoice, auto_print=True)
            return InvoiceArtifact(action=action, filename=f"{invoice.bill_no}.html", content=html)
        if action == "download":
            html = self.render_html(invoice, auto_print=False)
            filename = f"bill_{int(time.time() * 1000)}.html"
            path = atomic_write_text(os.path.join(self.invoice_dir, filename), html)
            log.info("invoice_written", bill_no=invoice.bill_no, path=path)
            return InvoiceArtifact(action=action, filename=filename, content=html, path=path)
        raise ValueError(f"unknown invoice action: {action!r}")

    def _amount(self, v: float) -> str:
        return f"{self.currency} {money(v)}"

    def render_html(self, invoice: InvoiceSnapshot, auto_print: bool = False) -> str:
        rows = "\n".join(
            "<tr><td>{}</td><td class='num'>{}</td><td class='num'>{}</td><td class='num'>{}</td></tr>".format(
                escape(line.name),
                line.quantity,
                self._amount(line.unit_price),
                self._amount(line.amount),
            )
            for line in invoice.items
        )
        phone = (
            f"<div>Phone: {escape(invoice.customer_phone)}</div>" if invoice.customer_phone else ""
        )
        script = "<script>window.addEventListener('load', () => window.print());</script>" if auto_print else ""
        return f"""<!doctype html>
<html lang='en'>
<head>
<meta charset='utf-8'/>
<title>{escape(invoice.bill_no)}</title>
<style>
 body{{font-family: system-ui, Segoe UI, Arial; margin:24px; color:#111}}
 header{{text-align:center}}
 h1{{margin:0; font-size:24px}}
 .meta{{display:flex; justify-content:space-between; margin:18px 0}}
 table{{width:100%; border-collapse:collapse}}
 th,td{{border:1px solid #999; padding:6px 8px; font-size:13px}}
 th{{background:#282828; color:#fff; text-align:left}}
 .num{{text-align:right}}
 .totals{{margin-top:14px; margin-left:auto; width:320px}}
 .totals div{{display:flex; justify-content:space-between; margin:4px 0}}
 .grand{{font-weight:bold; font-size:16px}}
 footer{{text-align:center; font-style:italic; margin-top:40px}}
 @media print {{ body{{margin:0}} }}
</style>
</head>
<body>
<header>
  <h1>{escape(self.title)}</h1>
  <div>Tax Invoice</div>
</header>
<section class='meta'>
  <div>
    <div>Date: {invoice.timestamp.date().isoformat()}</div>
    <div>Bill No: #{escape(invoice.bill_no)}</div>
  </div>
  <div>
    <div>Bill To:</div>
    <div><b>{escape(invoice.customer_name)}</b></div>
    {phone}
  </div>
</section>
<table>
  <thead><tr><th>Item Name</th><th>Quantity</th><th>Rate</th><th>Total</th></tr></thead>
  <tbody>
{rows}
  </tbody>
</table>
<section class='totals'>
  <div><span>Subtotal:</span><span>{self._amount(invoice.subtotal)}</span></div>
  <div><span>Discount ({invoice.discount_percent:g}%):</span><span>{self._amount(invoice.discount_amount)}</span></div>
  <div class='grand'><span>Grand Total:</span><span>{self._amount(invoice.total)}</span></div>
</section>
<footer>Thank you for your business!</footer>
{script}
</body>
</html>
"""
