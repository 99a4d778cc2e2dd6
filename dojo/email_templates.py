"""
MJML Email Templates
All email templates using MJML for responsive, cross-client compatibility
"""

from typing import Optional

from .config import FRONTEND_URL, SCHOOL_NAME

# School theme colors - red/charcoal
THEME = {
    "primary": "#b91c1c",
    "primary_dark": "#7f1d1d",
    "primary_light": "#fee2e2",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#111827",
    "text_secondary": "#374151",
    "text_muted": "#6b7280",
    "border": "#e5e7eb",
    "success": "#15803d",
    "warning": "#f59e0b",
    "danger": "#ef4444",
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
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
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
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 20px 16px 20px">
          <mj-column>
            <mj-text align="center" font-size="20px" font-weight="700" color="{THEME['primary_dark']}">
              {SCHOOL_NAME}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="16px 0 0 0" />
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              You're receiving this because your family is registered with {SCHOOL_NAME}.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def payment_receipt_template(
    family_name: str,
    payment_type_label: str,
    amount: str,
    payment_date: str,
    receipt_url: Optional[str] = None,
) -> str:
    """Receipt sent after a payment succeeds"""
    content = f"""
    <mj-text>
      Hi {family_name},
    </mj-text>

    <mj-text>
      Thank you! We received your payment for <strong>{payment_type_label}</strong>.
    </mj-text>

    <mj-text align="center" font-size="32px" color="{THEME['primary']}" font-weight="800" padding="20px 0">
      {amount}
    </mj-text>

    <mj-text color="{THEME['text_muted']}">
      Payment date: {payment_date}
    </mj-text>
    """

    return get_base_template(
        title="Payment Received",
        preview_text=f"Payment received: {amount}",
        content_sections=content,
        cta_url=receipt_url,
        cta_label="View Receipt" if receipt_url else None,
    )


def payment_reminder_template(family_name: str, students: list[dict]) -> str:
    """
    Reminder for students whose paid_until is close or already passed.
    Each student dict has name, class_name, paid_until and expired.
    """
    rows = ""
    for student in students:
        state = "expired on" if student["expired"] else "expires on"
        color = THEME["danger"] if student["expired"] else THEME["warning"]
        rows += f"""
        <mj-text padding="4px 0">
          <strong>{student['name']}</strong> ({student['class_name']}):
          <span style="color: {color};">{state} {student['paid_until']}</span>
        </mj-text>
        """

    content = f"""
    <mj-text>
      Hi {family_name},
    </mj-text>

    <mj-text>
      This is a friendly reminder that the following memberships need attention:
    </mj-text>

    {rows}

    <mj-text color="{THEME['text_muted']}" padding="16px 0 0 0">
      Payments made within 7 days of expiration keep your original billing date.
    </mj-text>
    """

    return get_base_template(
        title="Membership Payment Reminder",
        preview_text="Your class membership is due for renewal",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/family/payment",
        cta_label="Make a Payment",
    )


def waiver_reminder_template(family_name: str, waiver_titles: list[str]) -> str:
    items = "".join(f"<li>{title}</li>" for title in waiver_titles)
    content = f"""
    <mj-text>
      Hi {family_name},
    </mj-text>

    <mj-text>
      Before your students can train, please sign the following waivers:
    </mj-text>

    <mj-text>
      <ul>{items}</ul>
    </mj-text>
    """

    return get_base_template(
        title="Waivers Required",
        preview_text="Please sign the required waivers",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/family/waivers",
        cta_label="Sign Waivers",
    )


def waitlist_promoted_template(family_name: str, student_name: str, class_name: str) -> str:
    content = f"""
    <mj-text>
      Hi {family_name},
    </mj-text>

    <mj-text>
      Good news! A spot opened up and <strong>{student_name}</strong> has been moved from the
      waitlist into <strong>{class_name}</strong>.
    </mj-text>
    """

    return get_base_template(
        title="You're Off the Waitlist",
        preview_text=f"{student_name} is now enrolled in {class_name}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/family",
        cta_label="View Schedule",
    )


def monthly_revenue_report_template(
    period_label: str, totals_by_type: dict[str, str], grand_total: str, payment_count: int
) -> str:
    rows = "".join(
        f'<tr><td style="padding: 4px 0;">{label}</td><td style="text-align: right;">{amount}</td></tr>'
        for label, amount in totals_by_type.items()
    )
    content = f"""
    <mj-text>
      Revenue summary for <strong>{period_label}</strong> ({payment_count} successful payments).
    </mj-text>

    <mj-table>
      {rows}
      <tr style="border-top: 1px solid {THEME['border']}; font-weight: 700;">
        <td style="padding: 8px 0;">Total</td><td style="text-align: right;">{grand_total}</td>
      </tr>
    </mj-table>
    """

    return get_base_template(
        title="Monthly Revenue Report",
        preview_text=f"Revenue for {period_label}: {grand_total}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/admin/payments",
        cta_label="Open Payments",
    )


def invoice_template(
    family_name: str, invoice_number: str, amount_due: str, due_date: str, line_items: list[dict]
) -> str:
    rows = "".join(
        f'<tr><td style="padding: 4px 0;">{item["description"]} x {item["quantity"]}</td>'
        f'<td style="text-align: right;">{item["line_total"]}</td></tr>'
        for item in line_items
    )
    content = f"""
    <mj-text>
      Hi {family_name},
    </mj-text>

    <mj-text>
      Invoice <strong>{invoice_number}</strong> is ready. Amount due: <strong>{amount_due}</strong>
      by {due_date}.
    </mj-text>

    <mj-table>
      {rows}
    </mj-table>
    """

    return get_base_template(
        title=f"Invoice {invoice_number}",
        preview_text=f"Invoice {invoice_number}: {amount_due} due {due_date}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/family/invoices",
        cta_label="View Invoice",
    )


def new_message_template(recipient_name: str, sender_name: str, subject: str, preview: str) -> str:
    content = f"""
    <mj-text>
      Hi {recipient_name},
    </mj-text>

    <mj-text>
      <strong>{sender_name}</strong> sent you a message: <em>{subject}</em>
    </mj-text>

    <mj-text color="{THEME['text_muted']}" padding="8px 0 0 0">
      {preview}
    </mj-text>
    """

    return get_base_template(
        title="New Message",
        preview_text=f"New message from {sender_name}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/conversations",
        cta_label="Read Message",
    )
