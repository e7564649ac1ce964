import base64
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy import func
from sqlalchemy.orm import Session
from restopos.config import settings
from restopos.models.core import RestaurantSettings

def money(x) -> Decimal:
    return Decimal(str(x)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

def vat_rate_for(db: Session, restaurant_id: str) -> Decimal:
    rs = db.query(RestaurantSettings).filter(RestaurantSettings.restaurant_id == restaurant_id).first()
    if rs and rs.vat_rate is not None:
        return Decimal(str(rs.vat_rate))
    return Decimal(str(settings.VAT_RATE))

def line_total(line: dict, addon_prices: dict[str, Decimal]) -> Decimal:
    qty = Decimal(str(line["quantity"]))
    unit = Decimal(str(line["price"]))
    for a in line.get("addons") or []:
        aid = a if isinstance(a, str) else a.get("id")
        aqty = Decimal("1") if isinstance(a, str) else Decimal(str(a.get("quantity", 1)))
        unit += addon_prices.get(aid, Decimal("0")) * aqty
    return unit * qty

def compute_totals(items: list[dict], vat_rate: Decimal, addon_prices: dict[str, Decimal] | None = None) -> dict:
    """Prices are VAT-exclusive; VAT is added on the subtotal."""
    subtotal = sum((line_total(l, addon_prices or {}) for l in items), Decimal("0"))
    tax = subtotal * vat_rate
    return {
        "subtotal": money(subtotal),
        "tax": money(tax),
        "total": money(subtotal) + money(tax),
    }

def split_vat(price: Decimal, vat_rate: Decimal) -> tuple[Decimal, Decimal]:
    """VAT-inclusive price -> (base, vat)."""
    base = money(Decimal(str(price)) / (1 + vat_rate))
    return base, money(Decimal(str(price)) - base)

def next_number(db: Session, column, restaurant_filter, prefix: str, offset: int = 0) -> str:
    """``<prefix>-<YYYYMMDD>-<NNNN>``, sequential per day; callers retry on IntegrityError."""
    today = datetime.now(timezone.utc).strftime('%Y%m%d')
    stem = f"{prefix}-{today}"
    q = db.query(func.count()).filter(column.like(f"{stem}-%"))
    if restaurant_filter is not None:
        q = q.filter(restaurant_filter)
    n = int(q.scalar() or 0)
    return f"{stem}-{n + 1 + offset:04d}"

def _tlv(tag: int, value: str) -> bytes:
    raw = value.encode("utf-8")
    return bytes([tag, len(raw)]) + raw

def zatca_qr(seller_name: str, vat_number: str, ts: datetime, total: Decimal, vat: Decimal) -> str:
    """Base64 TLV payload for the ZATCA phase-1 invoice QR (tags 1-5)."""
    payload = b"".join([
        _tlv(1, seller_name),
        _tlv(2, vat_number),
        _tlv(3, ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")),
        _tlv(4, f"{money(total):.2f}"),
        _tlv(5, f"{money(vat):.2f}"),
    ])
    return base64.b64encode(payload).decode("ascii")
