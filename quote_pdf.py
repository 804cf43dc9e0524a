from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from io import BytesIO
from typing import Optional, Sequence, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas

from quote_model import Quote


@dataclass(frozen=True)
class QuotePdfLineItem:
    row_number: int
    size_label: str
    fabric_label: str
    amount_cents: Optional[int]


@dataclass(frozen=True)
class QuotePdfArtifact:
    quote_id: str
    quote_date: date
    line_items: Tuple[QuotePdfLineItem, ...]
    total_cents: Optional[int]
    title: str = "Roller Blind Quote"
    notes: Tuple[str, ...] = ()


def format_amount(amount_cents: Optional[int]) -> str:
    """
    Format an amount held in integer cents; missing amounts render as "-".

    Prices come from a flat matrix lookup, so no currency symbol is applied.
    """
    if amount_cents is None:
        return "-"
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise TypeError(f"amount must be int cents (got {type(amount_cents).__name__})")
    sign = "-" if amount_cents < 0 else ""
    return f"{sign}{abs(amount_cents) / 100.0:,.2f}"


def _to_cents(value: Optional[float]) -> Optional[int]:
    if value is None:
        return None
    return int(round(float(value) * 100))


def quote_pdf_artifact_from_quote(quote: Quote, *, quote_id: str, quote_date: date) -> QuotePdfArtifact:
    """
    Build the PDF artifact from a quote, skipping rows with no dimensions
    (the trailing entry row).
    """
    lines = []
    for idx, item in enumerate(quote.items, start=1):
        if not item.has_any_dimension():
            continue
        w = "-" if item.width is None else str(item.width)
        h = "-" if item.height is None else str(item.height)
        lines.append(
            QuotePdfLineItem(
                row_number=idx,
                size_label=f"{w} x {h} cm",
                fabric_label=item.fabric_type.value if item.fabric_type is not None else "-",
                amount_cents=_to_cents(item.line_price),
            )
        )
    notes: Tuple[str, ...] = ()
    if any(li.amount_cents is None for li in lines):
        notes = ("Rows marked '-' have not been priced yet.",)
    return QuotePdfArtifact(
        quote_id=quote_id,
        quote_date=quote_date,
        line_items=tuple(lines),
        total_cents=_to_cents(quote.summary.total_sum),
        notes=notes,
    )


def make_quote_pdf_bytes(artifact: QuotePdfArtifact) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    # Uncompressed pages keep text searchable in the raw bytes.
    c.setPageCompression(0)
    w, h = A4

    margin = 0.6 * inch
    row_h = 0.26 * inch
    footer_y = margin + 0.35 * inch

    remaining = list(artifact.line_items)
    page_no = 1
    while True:
        y = _draw_header(c, artifact, page_no=page_no, page_w=w, page_h=h, margin=margin)
        # Keep room for the total box on the page that finishes the table.
        rows_fit = max(1, int((y - footer_y - 0.9 * inch) // row_h))
        page_rows, remaining = remaining[:rows_fit], remaining[rows_fit:]
        y = _draw_table(c, page_rows, top_y=y, page_w=w, margin=margin, row_h=row_h)
        if not remaining:
            _draw_total(c, artifact.total_cents, y=y - 0.25 * inch, page_w=w, margin=margin)
            _draw_footer(c, artifact.notes, footer_y=footer_y, margin=margin)
            c.showPage()
            break
        c.showPage()
        page_no += 1

    c.save()
    return buf.getvalue()


def _draw_header(c: canvas.Canvas, artifact: QuotePdfArtifact, *, page_no: int, page_w: float, page_h: float, margin: float) -> float:
    top = page_h - margin
    c.setFont("Helvetica-Bold", 14)
    c.drawString(margin, top - 0.2 * inch, artifact.title if page_no == 1 else f"{artifact.title} (continued)")
    c.setFont("Helvetica", 9)
    c.drawRightString(page_w - margin, top - 0.15 * inch, f"QTE-{artifact.quote_id}")
    c.drawRightString(page_w - margin, top - 0.32 * inch, f"Date: {artifact.quote_date.isoformat()}")
    _hline(c, margin, page_w - margin, top - 0.45 * inch)
    return top - 0.75 * inch


def _draw_table(
    c: canvas.Canvas,
    rows: Sequence[QuotePdfLineItem],
    *,
    top_y: float,
    page_w: float,
    margin: float,
    row_h: float,
) -> float:
    col_size = margin + 0.6 * inch
    col_fabric = margin + 3.2 * inch
    col_amount = page_w - margin

    c.setFont("Helvetica-Bold", 9)
    c.drawString(margin, top_y, "#")
    c.drawString(col_size, top_y, "SIZE (W x H)")
    c.drawString(col_fabric, top_y, "FABRIC")
    c.drawRightString(col_amount, top_y, "AMOUNT")
    _hline(c, margin, page_w - margin, top_y - 0.1 * inch)

    y = top_y - row_h
    c.setFont("Helvetica", 9)
    for li in rows:
        c.drawString(margin, y, str(li.row_number))
        _draw_truncated(c, col_size, y, li.size_label, max_width=col_fabric - col_size - 0.1 * inch)
        c.drawString(col_fabric, y, li.fabric_label)
        c.drawRightString(col_amount, y, format_amount(li.amount_cents))
        y -= row_h
    if not rows:
        c.setFillColor(colors.grey)
        c.drawString(margin, y, "No line items.")
        c.setFillColor(colors.black)
        y -= row_h
    return y


def _draw_total(c: canvas.Canvas, total_cents: Optional[int], *, y: float, page_w: float, margin: float) -> None:
    box_w = 2.4 * inch
    box_h = 0.4 * inch
    x = page_w - margin - box_w
    c.rect(x, y - box_h, box_w, box_h, stroke=1, fill=0)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(x + 0.12 * inch, y - 0.26 * inch, "Total")
    c.drawRightString(x + box_w - 0.12 * inch, y - 0.26 * inch, format_amount(total_cents))


def _draw_footer(c: canvas.Canvas, notes: Sequence[str], *, footer_y: float, margin: float) -> None:
    c.setFont("Helvetica", 8)
    y = footer_y
    for n in notes[:3]:
        c.drawString(margin, y, f"Note: {n}")
        y += 0.12 * inch


def _hline(c: canvas.Canvas, x1: float, x2: float, y: float) -> None:
    c.line(x1, y, x2, y)


def _draw_truncated(c: canvas.Canvas, x: float, y: float, text: str, *, max_width: float) -> None:
    """
    Draw text truncated with an ASCII ellipsis so it stays inside its column.
    """
    t = (text or "").strip()
    if not t or max_width <= 0:
        return
    if c.stringWidth(t) <= max_width:
        c.drawString(x, y, t)
        return
    ell = "..."
    lo, hi = 0, len(t)
    best = ""
    while lo <= hi:
        mid = (lo + hi) // 2
        cand = t[:mid].rstrip() + ell
        if c.stringWidth(cand) <= max_width:
            best = cand
            lo = mid + 1
        else:
            hi = mid - 1
    if best:
        c.drawString(x, y, best)
