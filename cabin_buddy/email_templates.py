"""
MJML Email Templates
Responsive templates compiled to HTML by email_service
"""

from html import escape
from typing import Optional

THEME = {
    "primary": "#2f6f4f",
    "primary_light": "#e3f1e9",
    "background": "#f6f5f1",
    "text_primary": "#1f2a24",
    "text_secondary": "#3c4a42",
    "text_muted": "#6b776f",
    "border": "#dfe3dd",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button href="{cta_url}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="18px 40px" font-size="16px">
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
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>
        {cta_section}
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="12px" color="{THEME['text_muted']}" padding="0">
              You're receiving this because you belong to a Cabin Buddy organization.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def guest_split_notification_template(
    recipient_name: str,
    organization_name: str,
    source_family_group: str,
    daily_breakdown: list[dict],
    total_amount: float,
    description: Optional[str] = None,
    payments_url: Optional[str] = None,
) -> str:
    """Guest cost split MJML template with a per-day breakdown table"""
    rows = "".join(
        f"""
        <tr style="border-bottom: 1px solid {THEME['border']};">
          <td style="padding: 8px 0;">{escape(str(day['date']))}</td>
          <td style="padding: 8px 0; text-align: center;">{int(day.get('guests') or 0)}</td>
          <td style="padding: 8px 0; text-align: right;">${float(day.get('cost') or 0):.2f}</td>
        </tr>"""
        for day in daily_breakdown
    )

    description_section = ""
    if description:
        description_section = f"""
    <mj-text color="{THEME['text_muted']}" padding="0 0 16px 0">
      {escape(description)}
    </mj-text>
    """

    content = f"""
    <mj-text>
      Hi {escape(recipient_name)},
    </mj-text>
    <mj-text>
      {escape(source_family_group)} has split part of their stay cost with you
      in {escape(organization_name)}.
    </mj-text>
    {description_section}
    <mj-table font-size="14px" color="{THEME['text_secondary']}">
      <tr style="border-bottom: 2px solid {THEME['border']}; text-align: left;">
        <th style="padding: 8px 0;">Date</th>
        <th style="padding: 8px 0; text-align: center;">Guests</th>
        <th style="padding: 8px 0; text-align: right;">Cost</th>
      </tr>
      {rows}
    </mj-table>
    <mj-text font-size="18px" font-weight="600" color="{THEME['text_primary']}" padding="16px 0 0 0">
      Total: ${total_amount:.2f}
    </mj-text>
    """

    return get_base_template(
        title="Guest Cost Split",
        preview_text=f"{source_family_group} split ${total_amount:.2f} of their stay with you",
        content_sections=content,
        cta_url=payments_url,
        cta_label="View Payment" if payments_url else None,
    )
