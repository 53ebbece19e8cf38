"""
PDF report rendering on top of Pillow.

Pages are drawn as A4 images (150 dpi) with ``ImageDraw`` and written out
as one multi-page PDF. ``PdfDocument`` handles the running layout (cursor,
page breaks, striped tables, footers); the ``*_report`` builders lay out
the three BrewOps report types from plain dict data.
"""
import io
import logging
from datetime import date, datetime

from PIL import Image, ImageDraw, ImageFont

from helpers import as_float

logger = logging.getLogger(__name__)

BRAND = "BrewOps Tea Factory"
REPORT_TYPES = ("inventory", "supplier", "dashboard")

# A4 at 150 dpi
PAGE_WIDTH = 1240
PAGE_HEIGHT = 1754
DPI = 150
MARGIN = 90
FOOTER_HEIGHT = 80
CELL_PAD_X = 12
CELL_PAD_Y = 8

BLACK = (0, 0, 0)
GREY = (100, 100, 100)
DARK_GREEN = (0, 100, 0)
GREEN = (0, 128, 0)
STRIPE = (240, 248, 240)
WHITE = (255, 255, 255)
RED = (200, 0, 0)
ORANGE = (200, 100, 0)
OK_GREEN = (0, 150, 0)

TONES = {"urgent": RED, "warning": ORANGE, "good": OK_GREEN, "normal": BLACK}

_FONT_PATHS = {
    "regular": ("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", "arial.ttf"),
    "bold": ("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", "arialbd.ttf"),
}
_font_cache = {}


def load_font(size: int, bold: bool = False):
    key = (size, bold)
    if key in _font_cache:
        return _font_cache[key]

    font = None
    for path in _FONT_PATHS["bold" if bold else "regular"]:
        try:
            font = ImageFont.truetype(path, size)
            break
        except (OSError, IOError):
            continue
    if font is None:
        try:
            font = ImageFont.load_default(size=size)
        except TypeError:
            # Pillow < 10.1 only ships the fixed-size bitmap font
            font = ImageFont.load_default()
    _font_cache[key] = font
    return font


def _printable(font, text) -> str:
    text = "" if text is None else str(text)
    if isinstance(font, ImageFont.ImageFont):
        # bitmap font is latin-1 only
        text = text.replace("≥", ">=").replace("•", "-")
        text = text.encode("latin-1", "replace").decode("latin-1")
    return text


def format_date(value) -> str:
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    if isinstance(value, datetime):
        value = value.date()
    if not value:
        return "-"
    return f"{value:%B} {value.day}, {value.year}"


def format_currency(amount) -> str:
    return f"LKR {as_float(amount):,.2f}"


def format_kg(amount) -> str:
    qty = as_float(amount)
    if qty == int(qty):
        return f"{int(qty):,} kg"
    return f"{qty:,.2f} kg"


def report_filename(report_type: str, day=None) -> str:
    day = day or date.today()
    return f"brewops-{report_type}-report-{day.isoformat()}.pdf"


class PdfDocument:
    """Top-to-bottom page layout with automatic page breaks."""

    def __init__(self, title: str, footer_label: str = "Confidential"):
        self.title = title
        self.footer_label = footer_label
        self.pages = []
        self.y = MARGIN
        self._new_page()

    # ----- page handling -----
    def _new_page(self):
        page = Image.new("RGB", (PAGE_WIDTH, PAGE_HEIGHT), color="white")
        self.pages.append(page)
        self.draw = ImageDraw.Draw(page)
        self.y = MARGIN

    @property
    def bottom(self) -> int:
        return PAGE_HEIGHT - MARGIN - FOOTER_HEIGHT

    def ensure_space(self, height: int) -> bool:
        """Start a new page when ``height`` does not fit; True if one was added."""
        if self.y + height > self.bottom:
            self._new_page()
            return True
        return False

    def _line_height(self, font) -> int:
        left, top, right, bottom = font.getbbox("Hg")
        return bottom - top

    def _text_width(self, font, text) -> float:
        return self.draw.textlength(_printable(font, text), font=font)

    # ----- content -----
    def header(self, generated_on=None, subtitle_lines=()):
        self.text(BRAND, size=40, bold=True, color=DARK_GREEN, align="center")
        self.text(self.title, size=32, bold=True, align="center")
        generated_on = generated_on or date.today()
        self.text(f"Generated on: {format_date(generated_on)}", size=22, color=GREY, align="center")
        for line in subtitle_lines:
            self.text(line, size=22, color=GREY, align="center")
        self.space(20)

    def space(self, height: int):
        self.y += height

    def text(self, value, size=24, bold=False, color=BLACK, indent=0, align="left"):
        font = load_font(size, bold)
        height = self._line_height(font)
        self.ensure_space(height)

        value = _printable(font, value)
        if align == "center":
            x = (PAGE_WIDTH - self.draw.textlength(value, font=font)) / 2
        else:
            x = MARGIN + indent
        self.draw.text((x, self.y), value, fill=color, font=font)
        self.y += height + 14

    def heading(self, value):
        self.space(10)
        # keep a heading together with at least one following line
        self.ensure_space(90)
        self.text(value, size=28, bold=True)

    def lines(self, values, indent=30):
        for value in values:
            self.text(value, indent=indent)

    def bullets(self, items, indent=30):
        """``items`` are strings or ``(text, tone)`` pairs."""
        for item in items:
            text, tone = item if isinstance(item, tuple) else (item, "normal")
            self.text(f"• {text}", color=TONES.get(tone, BLACK), indent=indent)

    def table(self, headers, rows, header_fill=GREEN, stripe=STRIPE):
        """Striped table with content-sized columns; the header repeats after a page break."""
        font = load_font(20)
        head_font = load_font(20, bold=True)
        rows = [["-" if c in (None, "") else str(c) for c in row] for row in rows]

        widths = []
        for i, head in enumerate(headers):
            cells = [self._text_width(font, r[i]) for r in rows if i < len(r)]
            widths.append(max([self._text_width(head_font, head)] + cells) + 2 * CELL_PAD_X)

        available = PAGE_WIDTH - 2 * MARGIN
        scale = available / sum(widths)
        widths = [w * scale for w in widths]

        row_height = self._line_height(font) + 2 * CELL_PAD_Y + 6

        def draw_header():
            x = MARGIN
            self.draw.rectangle(
                [MARGIN, self.y, MARGIN + available, self.y + row_height], fill=header_fill
            )
            for head, width in zip(headers, widths):
                self._cell(x, head, width, head_font, WHITE)
                x += width
            self.y += row_height

        self.ensure_space(row_height * 2)
        draw_header()

        for idx, row in enumerate(rows):
            if self.ensure_space(row_height):
                draw_header()
            if idx % 2 == 1:
                self.draw.rectangle(
                    [MARGIN, self.y, MARGIN + available, self.y + row_height], fill=stripe
                )
            x = MARGIN
            for cell, width in zip(row, widths):
                self._cell(x, cell, width, font, BLACK)
                x += width
            self.y += row_height

        self.y += 20

    def _cell(self, x, value, width, font, color):
        value = _printable(font, value)
        limit = width - 2 * CELL_PAD_X
        if self.draw.textlength(value, font=font) > limit:
            while value and self.draw.textlength(value + "...", font=font) > limit:
                value = value[:-1]
            value += "..."
        self.draw.text((x + CELL_PAD_X, self.y + CELL_PAD_Y), value, fill=color, font=font)

    # ----- output -----
    def _draw_footers(self):
        font = load_font(18)
        total = len(self.pages)
        for number, page in enumerate(self.pages, start=1):
            draw = ImageDraw.Draw(page)
            label = _printable(
                font, f"{BRAND} - {self.footer_label} - Page {number} of {total}"
            )
            x = (PAGE_WIDTH - draw.textlength(label, font=font)) / 2
            draw.text((x, PAGE_HEIGHT - MARGIN), label, fill=GREY, font=font)

    def to_bytes(self) -> bytes:
        self._draw_footers()
        buffer = io.BytesIO()
        first, rest = self.pages[0], self.pages[1:]
        first.save(buffer, format="PDF", save_all=True, append_images=rest, resolution=DPI)
        logger.debug("Rendered '%s' (%d pages)", self.title, len(self.pages))
        return buffer.getvalue()


# ---------- Recommendations ----------
def inventory_recommendations(total_kg, minimum=10000):
    total_kg = as_float(total_kg)
    if total_kg < minimum:
        items = [
            ("URGENT: Inventory is below minimum required level.", "urgent"),
            (f"Order at least {minimum - total_kg:,.0f} kg more raw leaves.", "urgent"),
        ]
    else:
        items = [("Inventory levels are adequate.", "good")]
    items.append("Monitor daily usage and maintain optimal stock levels.")
    items.append("Schedule regular inventory audits for data accuracy.")
    return items


def dashboard_recommendations(stats, minimum=10000):
    inventory = stats.get("inventoryStats") or {}
    payments = stats.get("paymentStats") or {}
    suppliers = stats.get("supplierStats") or {}

    items = []
    total_kg = as_float(inventory.get("total_quantity"))
    if total_kg < minimum:
        items.append(("URGENT: Inventory is below minimum required level.", "urgent"))
        items.append((f"Order at least {minimum - total_kg:,.0f} kg more raw leaves.", "urgent"))

    low_items = int(inventory.get("low_stock_items") or 0)
    if low_items > 0:
        items.append(
            (f"{low_items} inventory items have low stock. Consider reordering.", "urgent")
        )
    else:
        items.append(("Inventory levels are currently adequate.", "good"))

    pending = as_float(payments.get("pending_amount"))
    if pending > 0:
        items.append(
            (f"{format_currency(pending)} in pending payments requires attention.", "warning")
        )

    deliveries = int(suppliers.get("total_deliveries") or 0)
    if deliveries > 20:
        items.append("High supplier activity indicates strong supply chain performance.")
    elif deliveries < 10:
        items.append("Low supplier activity may require supplier engagement initiatives.")
    else:
        items.append("Supplier activity is at normal levels.")

    items.append("Continue monitoring inventory levels to maintain optimal production capacity.")
    items.append("Regular supplier performance reviews recommended to ensure quality consistency.")
    return items


def inventory_health(low_stock_items) -> str:
    low_stock_items = int(low_stock_items or 0)
    if low_stock_items == 0:
        return "Good"
    if low_stock_items < 3:
        return "Fair"
    return "Needs Attention"


def pending_ratio(payment_stats) -> float:
    total = int(payment_stats.get("total_payments") or 0) or 1
    return int(payment_stats.get("pending_count") or 0) / total * 100


# ---------- Builders ----------
def inventory_report(summary, today=None) -> bytes:
    return build_inventory_report(summary, today=today).to_bytes()


def build_inventory_report(summary, today=None) -> PdfDocument:
    doc = PdfDocument("Inventory Status Report")
    doc.header(generated_on=today)

    raw = summary["rawLeaves"]
    doc.heading("Inventory Summary")
    doc.lines(
        [
            f"Total Raw Leaves Inventory: {format_kg(raw['totalKg'])}",
            f"Minimum Required Level: {format_kg(raw['minimumKg'])}",
            "Status: "
            + ("Adequate" if raw["status"] == "adequate" else "Low Stock - Action Required"),
        ]
    )

    doc.heading("Past Month Overview")
    doc.lines(
        [
            f"Report Period: {format_date(summary['periodStart'])} - {format_date(summary['periodEnd'])}",
            f"Total Records: {summary['totalRecords']}",
            f"Total Quantity: {format_kg(summary['totalQuantity'])}",
            f"Average per Entry: {format_kg(round(summary['averageQuantity']))}",
            f"Highest Single Entry: {format_kg(summary['maxQuantity'])}",
            f"Lowest Single Entry: {format_kg(summary['minQuantity'])}",
        ]
    )

    if len(summary["weekly"]) > 1:
        doc.heading("Weekly Trend Analysis")
        doc.table(
            ["Week Starting", "Entries", "Total Quantity (kg)", "Average (kg)"],
            [
                [
                    format_date(w["weekStart"]),
                    w["count"],
                    f"{w['totalQuantity']:,.2f}",
                    f"{w['averageQuantity']:,.2f}",
                ]
                for w in summary["weekly"]
            ],
        )

    if summary["totalRecords"]:
        doc.heading("Stock Level Distribution")
        doc.table(
            ["Stock Level", "Count", "Percentage", "Total Quantity (kg)"],
            [
                [d["label"], d["count"], f"{d['percentage']:.1f}%", f"{d['totalQuantity']:,.2f}"]
                for d in summary["distribution"]
            ],
        )

    doc.heading("Recent Inventory Entries")
    records = summary["records"][:15]
    if records:
        doc.table(
            ["#", "Inventory ID", "Quantity", "Date Created", "Status"],
            [
                [i, r["inventoryid"], format_kg(r["quantity"]), format_date(r["created_at"]), r["status"]]
                for i, r in enumerate(records, start=1)
            ],
        )
    else:
        doc.text("No inventory entries in the past month.", color=GREY, indent=30)

    doc.heading("Recommendations")
    doc.bullets(inventory_recommendations(raw["totalKg"], minimum=raw["minimumKg"]))
    return doc


def _activity_rows(activities):
    return [
        [i, format_date(a.get("date")), a.get("description"), format_currency(a.get("amount"))]
        for i, a in enumerate(activities, start=1)
    ]


def supplier_report(suppliers, stats, today=None) -> bytes:
    return build_supplier_report(suppliers, stats, today=today).to_bytes()


def build_supplier_report(suppliers, stats, today=None) -> PdfDocument:
    """``suppliers`` are supplier dicts, ``stats`` the 30-day dashboard figures."""
    doc = PdfDocument("Supplier Management Report")
    doc.header(generated_on=today)

    supplier_stats = stats.get("supplierStats") or {}
    doc.heading("Supplier Summary")
    doc.lines(
        [
            f"Total Active Suppliers: {len(suppliers)}",
            f"Recent Deliveries (30 days): {supplier_stats.get('total_deliveries') or 0}",
            f"Total Quantity Delivered: {format_kg(round(as_float(supplier_stats.get('total_quantity'))))}",
            f"Total Amount Paid: {format_currency(supplier_stats.get('total_amount'))}",
            f"Average Rate Per Kg: {format_currency(supplier_stats.get('avg_rate'))}/kg",
        ]
    )

    doc.heading("Supplier List")
    if suppliers:
        doc.table(
            ["#", "Supplier ID", "Name", "Contact", "Rate"],
            [
                [i, s.get("supplier_id"), s.get("name"), s.get("contact_number"), f"{as_float(s.get('rate')):,.2f} LKR/kg"]
                for i, s in enumerate(suppliers[:15], start=1)
            ],
        )
    else:
        doc.text("No active suppliers.", color=GREY, indent=30)

    activities = stats.get("recentActivities") or []
    if activities:
        doc.heading("Recent Supplier Activities")
        doc.table(["#", "Date", "Description", "Amount"], _activity_rows(activities), header_fill=DARK_GREEN)
    return doc


def dashboard_report(stats, today=None) -> bytes:
    return build_dashboard_report(stats, today=today).to_bytes()


def build_dashboard_report(stats, today=None) -> PdfDocument:
    doc = PdfDocument("Executive Dashboard Report")
    days = str(stats.get("period") or "30d").rstrip("d")
    doc.header(generated_on=today, subtitle_lines=[f"Reporting Period: Last {days} days"])

    supplier_stats = stats.get("supplierStats") or {}
    inventory_stats = stats.get("inventoryStats") or {}
    payment_stats = stats.get("paymentStats") or {}

    doc.heading("Key Performance Indicators")
    doc.text("Supplier Metrics", bold=True, color=(0, 0, 150), indent=10)
    doc.lines(
        [
            f"Active Suppliers: {supplier_stats.get('active_suppliers') or 0}",
            f"Total Deliveries: {supplier_stats.get('total_deliveries') or 0}",
            f"Total Quantity: {format_kg(round(as_float(supplier_stats.get('total_quantity'))))}",
        ]
    )
    doc.text("Inventory Metrics", bold=True, color=DARK_GREEN, indent=10)
    doc.lines(
        [
            f"Total Items: {inventory_stats.get('total_items') or 0}",
            f"Total Quantity: {format_kg(round(as_float(inventory_stats.get('total_quantity'))))}",
            f"Low Stock Items: {inventory_stats.get('low_stock_items') or 0}",
        ]
    )
    doc.text("Payment Metrics", bold=True, color=(150, 75, 0), indent=10)
    doc.lines(
        [
            f"Total Payments: {payment_stats.get('total_payments') or 0}",
            f"Paid: {format_currency(payment_stats.get('paid_amount'))}",
            f"Pending: {format_currency(payment_stats.get('pending_amount'))}",
        ]
    )
    doc.text("Overall Metrics", bold=True, color=(150, 0, 75), indent=10)
    doc.lines(
        [
            f"Avg Rate: {format_currency(supplier_stats.get('avg_rate'))}/kg",
            f"Pending Ratio: {pending_ratio(payment_stats):.1f}%",
            f"Inventory Health: {inventory_health(inventory_stats.get('low_stock_items'))}",
        ]
    )

    activities = (stats.get("recentActivities") or [])[:10]
    doc.heading("Recent Activities")
    if activities:
        doc.table(["#", "Date", "Description", "Amount"], _activity_rows(activities), header_fill=DARK_GREEN)
    else:
        doc.text("No deliveries recorded in this period.", color=GREY, indent=30)

    doc.heading("Analysis & Recommendations")
    doc.bullets(dashboard_recommendations(stats))
    return doc
