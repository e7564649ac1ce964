# restopos/routers/invoices.py
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from restopos.config import settings
from restopos.db import get_db
from restopos.deps import AccountContext, require_restaurant
from restopos.errors import ConflictError
from restopos.models.core import Invoice, Order, Restaurant, RestaurantSettings
from restopos.schemas.orders import InvoiceIn
from restopos.services.billing import next_number, zatca_qr
from restopos.services.tenancy import get_owned
from restopos.util.serialize import row_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])

def _seller(db: Session, restaurant_id: str) -> tuple[str, str]:
    r = db.get(Restaurant, restaurant_id)
    rs = db.query(RestaurantSettings).filter(RestaurantSettings.restaurant_id == restaurant_id).first()
    vat_no = (rs.vat_number if rs and rs.vat_number else None) or r.vat_number or settings.SELLER_VAT_NUMBER
    return r.name or settings.SELLER_NAME, vat_no or ""

def _render_pdf(inv: Invoice) -> Optional[str]:
    """Ask the external renderer for a PDF; the invoice stands without one."""
    if not settings.INVOICE_RENDER_URL:
        return None
    try:
        with httpx.Client(timeout=3) as client:
            r = client.post(settings.INVOICE_RENDER_URL, json={"type": "INVOICE", **row_dict(inv)})
            r.raise_for_status()
            return r.json().get("pdf_path")
    except (httpx.HTTPError, ValueError):
        logger.warning(f"Invoice renderer failed for {inv.invoice_number}", exc_info=True)
        return None

@router.get("")
def list_invoices(start: Optional[datetime] = None, end: Optional[datetime] = None,
                  db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    q = db.query(Invoice).filter(Invoice.restaurant_id == ctx.restaurant_id)
    if start:
        q = q.filter(Invoice.invoice_dt >= start)
    if end:
        q = q.filter(Invoice.invoice_dt <= end)
    return [row_dict(i) for i in q.order_by(Invoice.invoice_dt.desc()).all()]

@router.get("/{invoice_id}")
def get_invoice(invoice_id: str, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    return row_dict(get_owned(db, Invoice, invoice_id, ctx.restaurant_id, "Invoice"))

@router.post("", status_code=201)
def create_invoice(body: InvoiceIn, db: Session = Depends(get_db), ctx: AccountContext = Depends(require_restaurant)):
    order = get_owned(db, Order, body.order_id, ctx.restaurant_id, "Order")
    if db.query(Invoice.id).filter(Invoice.order_id == order.id).first():
        raise ConflictError("Invoice already exists for this order")

    seller, vat_no = _seller(db, ctx.restaurant_id)
    now = datetime.now(timezone.utc)
    inv = Invoice(
        restaurant_id=ctx.restaurant_id,
        order_id=order.id,
        invoice_number=next_number(db, Invoice.invoice_number, None, "INV"),
        invoice_dt=now,
        customer_name=body.customer_name or order.customer_name or "Walk-in Customer",
        subtotal=order.subtotal,
        vat_amount=order.tax,
        total=order.total,
        qr_code=zatca_qr(seller, vat_no, now, order.total, order.tax),
    )
    db.add(inv)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Invoice already exists for this order")

    pdf_path = _render_pdf(inv)
    if pdf_path:
        inv.pdf_path = pdf_path
        db.commit()
    logger.info(f"Invoice {inv.invoice_number} issued for order {order.order_number}")
    return row_dict(inv)
