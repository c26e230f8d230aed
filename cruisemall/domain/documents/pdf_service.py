"""
Purchase certificate and quote PDFs
Korean text is rendered with ReportLab's built-in HYSMyeongJo CID font
"""

import io
import logging
from datetime import datetime
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ...models_mall import CruiseProduct, Payment

logger = logging.getLogger(__name__)

FONT_NAME = "HYSMyeongJo-Medium"
pdfmetrics.registerFont(UnicodeCIDFont(FONT_NAME))

BRAND_COLOR = colors.HexColor("#0b4f8a")
DARK_GRAY = colors.HexColor("#1e293b")
LIGHT_GRAY = colors.HexColor("#f1f5f9")


def _won(amount: int) -> str:
    return f"{amount:,}원"


class _BasePDF:
    def __init__(self, title: str):
        self.title = title
        self.margin = 20 * mm
        styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle(
            "DocTitle", parent=styles["Heading1"], fontName=FONT_NAME, fontSize=22,
            textColor=BRAND_COLOR, alignment=1, spaceAfter=14,
        )
        self.body_style = ParagraphStyle(
            "DocBody", parent=styles["Normal"], fontName=FONT_NAME, fontSize=10,
            textColor=DARK_GRAY, leading=15,
        )
        self.small_style = ParagraphStyle(
            "DocSmall", parent=self.body_style, fontSize=8, textColor=colors.grey,
        )

    def _table(self, rows: list[list], col_widths: list, header: bool = False) -> Table:
        table = Table(rows, colWidths=col_widths)
        style = [
            ("FONTNAME", (0, 0), (-1, -1), FONT_NAME),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cbd5e1")),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]
        if header:
            style += [
                ("BACKGROUND", (0, 0), (-1, 0), BRAND_COLOR),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ]
        else:
            style.append(("BACKGROUND", (0, 0), (0, -1), LIGHT_GRAY))
        table.setStyle(TableStyle(style))
        return table

    def _build(self, story: list) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=self.margin,
            leftMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=self.title,
        )
        doc.build(story)
        pdf_bytes = buffer.getvalue()
        buffer.close()
        return pdf_bytes


class CertificatePDFGenerator(_BasePDF):
    """Purchase certificate (구매확인서) for a paid order"""

    def __init__(self, payment: Payment, product: CruiseProduct):
        super().__init__(f"구매확인서 CERT-{payment.order_id}")
        self.payment = payment
        self.product = product

    @property
    def certificate_number(self) -> str:
        return f"CERT-{self.payment.order_id}"

    def generate(self) -> bytes:
        logger.info(f"📄 Generating purchase certificate {self.certificate_number}")
        p, product = self.payment, self.product
        width = A4[0] - 2 * self.margin

        rows = [
            ["증명서 번호", self.certificate_number],
            ["주문번호", p.order_id],
            ["구매자", p.buyer_name],
            ["상품명", product.title],
            ["선사 / 선박", " / ".join(x for x in (product.cruise_line, product.ship_name) if x) or "-"],
            ["출발일", product.departure_date.isoformat() if product.departure_date else "-"],
            ["인원", f"{p.quantity}명"],
            ["결제금액", _won(p.amount)],
            ["결제일시", p.paid_at.strftime("%Y-%m-%d %H:%M") if p.paid_at else "-"],
        ]
        story = [
            Paragraph("구매확인서", self.title_style),
            Spacer(1, 6 * mm),
            self._table(rows, [width * 0.3, width * 0.7]),
            Spacer(1, 10 * mm),
            Paragraph("위 고객이 상기 크루즈 상품을 구매하였음을 확인합니다.", self.body_style),
            Spacer(1, 4 * mm),
            Paragraph(f"발급일: {datetime.now().strftime('%Y-%m-%d')}", self.small_style),
        ]
        return self._build(story)


class QuotePDFGenerator(_BasePDF):
    """Quote (견적서) for a product and passenger count"""

    def __init__(
        self,
        product: CruiseProduct,
        passengers: int,
        customer_name: Optional[str] = None,
        extra_items: Optional[list[dict]] = None,
        partner_name: Optional[str] = None,
    ):
        super().__init__(f"견적서 {product.product_code}")
        self.product = product
        self.passengers = passengers
        self.customer_name = customer_name
        self.extra_items = extra_items or []
        self.partner_name = partner_name

    def line_items(self) -> list[tuple[str, int, int]]:
        """(description, quantity, unit price)"""
        items = [(self.product.title, self.passengers, self.product.base_price)]
        for item in self.extra_items:
            items.append((item.get("description", "-"), int(item.get("quantity", 1)), int(item.get("unit_price", 0))))
        return items

    def total(self) -> int:
        return sum(qty * price for _, qty, price in self.line_items())

    def generate(self) -> bytes:
        logger.info(f"📄 Generating quote for {self.product.product_code} x{self.passengers}")
        width = A4[0] - 2 * self.margin

        rows = [["항목", "수량", "단가", "금액"]]
        for description, qty, price in self.line_items():
            rows.append([Paragraph(description, self.body_style), str(qty), _won(price), _won(qty * price)])
        rows.append(["합계", "", "", _won(self.total())])

        story = [Paragraph("견적서", self.title_style)]
        if self.customer_name:
            story.append(Paragraph(f"고객명: {self.customer_name}", self.body_style))
        if self.product.departure_date:
            story.append(Paragraph(f"출발일: {self.product.departure_date.isoformat()}", self.body_style))
        story += [
            Spacer(1, 6 * mm),
            self._table(rows, [width * 0.46, width * 0.12, width * 0.21, width * 0.21], header=True),
            Spacer(1, 8 * mm),
            Paragraph("본 견적은 발행일로부터 7일간 유효하며 선사 사정에 따라 변동될 수 있습니다.", self.small_style),
        ]
        if self.partner_name:
            story.append(Paragraph(f"담당: {self.partner_name}", self.small_style))
        return self._build(story)
