"""
MJML Email Templates
"""

import html
from typing import Optional

THEME = {
    "primary": "#0b5394",
    "background": "#f4f7fb",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_muted": "#64748b",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML wrapper for all emails"""
    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="16px 0">
          <mj-column>
            <mj-button href="{cta_url}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="16px 32px" font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="'Apple SD Gothic Neo', 'Malgun Gothic', Arial, sans-serif" />
          <mj-text color="{THEME['text_primary']}" font-size="15px" line-height="1.6" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="{THEME['card_bg']}" padding="32px 24px" border-radius="12px">
          <mj-column>
            <mj-text font-size="22px" font-weight="700">{title}</mj-text>
            {content_sections}
          </mj-column>
        </mj-section>
        {cta_section}
        <mj-section>
          <mj-column>
            <mj-text align="center" font-size="12px" color="{THEME['text_muted']}">
              Cruise Mall
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _paragraphs(body: str) -> str:
    escaped = html.escape(body).replace("\n", "<br />")
    return f"<mj-text>{escaped}</mj-text>"


def welcome_email_template(user_name: str) -> str:
    content = _paragraphs(f"{user_name}님, 크루즈몰 가입을 환영합니다.\n지금 바로 다양한 크루즈 상품을 둘러보세요.")
    return get_base_template("가입을 환영합니다", "크루즈몰 가입 완료", content)


def message_email_template(title: str, body: str) -> str:
    """Scheduled and funnel messages sent over email"""
    return get_base_template(html.escape(title), html.escape(title), _paragraphs(body))


def passport_request_template(customer_name: str, link: str, expires_label: str) -> str:
    content = _paragraphs(
        f"{customer_name}님, 크루즈 승선을 위해 여권 정보 제출이 필요합니다.\n"
        f"아래 버튼을 눌러 {expires_label}까지 제출해 주세요."
    )
    return get_base_template("여권 정보 제출 요청", "여권 정보를 제출해 주세요", content, link, "여권 정보 제출하기")


def purchase_confirmation_template(buyer_name: str, product_title: str, order_id: str, amount: str) -> str:
    content = _paragraphs(
        f"{buyer_name}님, 결제가 완료되었습니다.\n\n상품: {product_title}\n주문번호: {order_id}\n결제금액: {amount}"
    )
    return get_base_template("결제 완료 안내", "크루즈 상품 결제 완료", content)
