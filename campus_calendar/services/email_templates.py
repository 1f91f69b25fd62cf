"""
MJML Email Templates
Calendar event notices rendered with MJML for cross-client compatibility
"""

from html import escape
from typing import Optional

# Navy/Gold campus color scheme
THEME = {
    "primary": "#1e3a8a",
    "primary_dark": "#172554",
    "accent": "#d4a017",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "danger": "#b91c1c",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    header_text: Optional[str] = None,
    footer_text: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for calendar emails"""

    header_section = ""
    if header_text:
        header_section = f"""
        <mj-section background-color="{THEME['primary']}" padding="20px">
          <mj-column>
            <mj-text align="center" font-size="18px" font-weight="600" color="#ffffff" padding="0">
              {escape(header_text)}
            </mj-text>
          </mj-column>
        </mj-section>
        """

    footer_notice = ""
    if footer_text:
        footer_notice = f"""
        <mj-text align="center" font-size="12px" color="#94a3b8" padding="12px 0 0 0">
          {escape(footer_text)}
        </mj-text>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{escape(title)}</mj-title>
        <mj-preview>{escape(preview_text)}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        {header_section}

        <!-- Main Content -->
        <mj-section background-color="{THEME['card_bg']}" padding="32px 40px 40px 40px">
          <mj-column>
            <mj-text font-size="22px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {escape(title)}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="0 0 24px 0" />

            {content_sections}
          </mj-column>
        </mj-section>

        <!-- Footer -->
        <mj-section padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              This is an automated calendar notice. Please do not reply to this email.
            </mj-text>
            {footer_notice}
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _body_lines(body: str) -> str:
    """Plain text notice body as MJML text, one paragraph per blank-line block"""
    sections = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        lines = "<br/>".join(escape(line) for line in block.split("\n"))
        sections.append(f'<mj-text padding="0 0 16px 0">{lines}</mj-text>')
    return "\n".join(sections)


def calendar_event_notice_template(
    title: str,
    body: str,
    links: Optional[list[tuple[str, str]]] = None,
    organization_name: Optional[str] = None,
    canceled: bool = False,
) -> str:
    """Calendar event notice, links are (label, url) pairs shown as buttons"""
    content = _body_lines(body)

    if canceled:
        content += f"""
        <mj-text color="{THEME['danger']}" font-weight="600" padding="8px 0 0 0">
          This event has been canceled.
        </mj-text>
        """

    for label, url in links or []:
        content += f"""
        <mj-button
          href="{escape(url, quote=True)}"
          background-color="{THEME['primary']}"
          color="#ffffff"
          font-weight="600"
          border-radius="6px"
          padding="8px 0"
          align="left">
          {escape(label)}
        </mj-button>
        """

    return get_base_template(
        title=title,
        preview_text=title,
        content_sections=content,
        header_text=organization_name,
        footer_text="A calendar file is attached when available." if not canceled else None,
    )
