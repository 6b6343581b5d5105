"""
Email Templates - Jinja2 HTML for every notification type.

Each NotificationType maps to one EmailTemplate (subject builder + template
name). The mapping is checked at lookup time: a type without an entry raises
UnsupportedNotificationType. Autoescaping is on, so metadata strings
(institution messages, names) are HTML-escaped when rendered.
"""

from typing import Any, Callable, Dict, Optional, Tuple

from jinja2 import DictLoader, Environment, select_autoescape

from edumatch.core.config import get_settings
from edumatch.core.errors import UnsupportedNotificationType
from edumatch.schemas.schemas import NotificationMessage, NotificationType

settings = get_settings()


_BASE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{{ heading }}</title>
  <style>
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background: {{ color }}; color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }
    .content { background: #f9f9f9; padding: 30px; border-radius: 0 0 10px 10px; }
    .box { background: white; padding: 20px; border-radius: 5px; margin: 20px 0; }
    .button { display: inline-block; background: {{ color }}; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; margin: 20px 0; }
    .footer { text-align: center; margin-top: 30px; color: #666; font-size: 14px; }
  </style>
</head>
<body>
  <div class="header"><h1>{{ heading }}</h1></div>
  <div class="content">
    {% block body %}{% endblock %}
    {% if cta_url %}<div style="text-align: center;"><a href="{{ cta_url }}" class="button">{{ cta_label }}</a></div>{% endif %}
    <p>Best regards,<br>The EduMatch Team</p>
  </div>
  <div class="footer"><p>&copy; EduMatch. All rights reserved.</p></div>
</body>
</html>
"""

_TEMPLATES = {
    "base.html": _BASE,
    "welcome.html": """{% extends "base.html" %}{% block body %}
<h2>Hi {{ m.first_name }},</h2>
<p>Welcome to EduMatch! Your account has been created successfully.</p>
<p>Complete your profile to start discovering programmes, scholarships and research positions that fit you.</p>
{% endblock %}""",
    "profile_created.html": """{% extends "base.html" %}{% block body %}
<h2>Congratulations {{ m.first_name }} {{ m.last_name }}!</h2>
<p>Your {{ m.role }} profile has been created and is now live.</p>
<div class="box"><p><strong>Profile ID:</strong> {{ m.profile_id }}</p></div>
{% endblock %}""",
    "payment_deadline.html": """{% extends "base.html" %}{% block body %}
<h2>Your payment is due soon</h2>
<div class="box">
  <p>Plan: {{ m.plan_name }}</p>
  <p>Amount: {{ "%.2f"|format(m.amount) }} {{ m.currency }}</p>
  <p>Due date: {{ m.deadline_date }}</p>
</div>
<p>Please complete the payment to keep your subscription active.</p>
{% endblock %}""",
    "application_status.html": """{% extends "base.html" %}{% block body %}
<h2>Your Application Status Has Been Updated</h2>
<p>We have an update regarding your application to <strong>{{ m.program_name }}</strong> at <strong>{{ m.institution_name }}</strong>.</p>
<div class="box">
  <p><strong>Application Details:</strong></p>
  <p>Program: {{ m.program_name }}</p>
  <p>Institution: {{ m.institution_name }}</p>
  <p>Previous Status: {{ m.old_status }}</p>
  <p>New Status: <strong>{{ m.new_status }}</strong></p>
</div>
{% set status = m.new_status|lower %}
{% if status == "accepted" %}
<div class="box" style="border-left: 4px solid #4CAF50;"><h3>Congratulations!</h3>
<p>Your application has been approved! The institution will contact you soon with next steps.</p></div>
{% elif status == "rejected" %}
<div class="box" style="border-left: 4px solid #f44336;"><h3>Application Not Selected</h3>
<p>Unfortunately, your application was not selected this time. Don't give up - there are many other opportunities available!</p></div>
{% elif status == "require_update" %}
<div class="box" style="border-left: 4px solid #2196F3;"><h3>Action Required - Application Review Update</h3>
<p>The institution has reviewed your application and requires additional information or updates.</p>
{% if m.message %}<div class="institution-message"><p><strong>Message from the institution:</strong></p>
<p style="white-space: pre-wrap;">{{ m.message }}</p></div>{% endif %}
<p>Please check your application dashboard and messages to view the complete details and take the necessary action.</p></div>
{% elif status == "submitted" %}
<div class="box" style="border-left: 4px solid #ff9800;"><h3>Application Under Review</h3>
<p>Your application has been submitted and is currently being reviewed by the institution. We'll notify you as soon as there are any updates.</p></div>
{% elif status == "updated" %}
<div class="box" style="border-left: 4px solid #2196F3;"><h3>Application Updated</h3>
<p>Your application has been updated. The institution will review your changes.</p></div>
{% else %}
<div class="box" style="border-left: 4px solid #2196F3;"><h3>Status Update</h3>
<p>Your application status has been updated. Please check your application dashboard for more details.</p></div>
{% endif %}
{% endblock %}""",
    "document_updated.html": """{% extends "base.html" %}{% block body %}
<h2>Application documents updated</h2>
<p>{{ m.applicant_name }} has uploaded or updated {{ m.document_count }} document(s) for their application to <strong>{{ m.program_name }}</strong>.</p>
<p>Please review the updated documents.</p>
{% endblock %}""",
    "payment_success.html": """{% extends "base.html" %}{% block body %}
<h2>Thank you for your payment</h2>
<div class="box">
  <p>Plan: {{ m.plan_name }}</p>
  <p>Amount: {{ "%.2f"|format(m.amount) }} {{ m.currency }}</p>
  <p>Transaction ID: {{ m.transaction_id }}</p>
</div>
{% endblock %}""",
    "payment_failed.html": """{% extends "base.html" %}{% block body %}
<h2>We could not process your payment</h2>
<div class="box">
  <p>Plan: {{ m.plan_name }}</p>
  <p>Amount: {{ "%.2f"|format(m.amount) }} {{ m.currency }}</p>
  <p>Reason: {{ m.failure_reason }}</p>
</div>
<p>Please update your payment method to avoid interruption of your subscription.</p>
{% endblock %}""",
    "subscription_expiring.html": """{% extends "base.html" %}{% block body %}
<h2>Your subscription is expiring soon</h2>
<p>Your <strong>{{ m.plan_name }}</strong> subscription expires on {{ m.expiry_date }}
({{ m.days_remaining }} day{{ "s" if m.days_remaining != 1 }} remaining).</p>
{% endblock %}""",
    "user_banned.html": """{% extends "base.html" %}{% block body %}
<h2>Hi {{ m.first_name }} {{ m.last_name }},</h2>
<p>Your EduMatch account has been suspended.</p>
<div class="box">
  <p>Reason: {{ m.reason }}</p>
  <p>Suspended until: {{ m.banned_until or "further notice" }}</p>
</div>
<p>If you believe this is a mistake, please contact support.</p>
{% endblock %}""",
    "session_revoked.html": """{% extends "base.html" %}{% block body %}
<h2>Hi {{ m.first_name }} {{ m.last_name }},</h2>
<p>One of your active sessions was signed out.</p>
<div class="box">
  <p>Reason: {{ m.reason }}</p>
  {% if m.device_info %}<p>Device: {{ m.device_info }}</p>{% endif %}
</div>
<p>If this wasn't you, change your password immediately.</p>
{% endblock %}""",
    "wishlist_deadline.html": """{% extends "base.html" %}{% block body %}
<h2>Don't miss this opportunity!</h2>
<p><strong>{{ m.post_title }}</strong>{% if m.institution_name %} at {{ m.institution_name }}{% endif %}
closes in {{ m.days_remaining }} day{{ "s" if m.days_remaining != 1 }} ({{ m.deadline_date }}).</p>
<p>Make sure to submit your application before it expires!</p>
{% endblock %}""",
    "password_changed.html": """{% extends "base.html" %}{% block body %}
<h2>Hi {{ m.first_name }} {{ m.last_name }},</h2>
<p>Your password was changed at {{ m.change_time }}.</p>
{% if m.ip_address %}<p>IP address: {{ m.ip_address }}</p>{% endif %}
<p>If you did not make this change, contact support right away.</p>
{% endblock %}""",
    "account_deleted.html": """{% extends "base.html" %}{% block body %}
<h2>Goodbye {{ m.first_name }},</h2>
<p>Your EduMatch account was deleted at {{ m.deletion_time }}. We're sorry to see you go.</p>
{% endblock %}""",
    "support_reply.html": """{% extends "base.html" %}{% block body %}
<h2>Hi {{ m.first_name }} {{ m.last_name }},</h2>
<p>Our support team has replied to your request <strong>{{ m.original_subject }}</strong>.</p>
<div class="box"><p><strong>Your message:</strong></p><p style="white-space: pre-wrap;">{{ m.original_message }}</p></div>
<div class="box"><p><strong>Reply from {{ m.replied_by }}:</strong></p><p style="white-space: pre-wrap;">{{ m.reply_message }}</p></div>
{% endblock %}""",
    "post_status_update.html": """{% extends "base.html" %}{% block body %}
<h2>{{ m.post_type }} status update</h2>
<p>Your {{ m.post_type|lower }} <strong>{{ m.post_title }}</strong> changed from {{ m.old_status }} to <strong>{{ m.new_status }}</strong>.</p>
{% if m.rejection_reason %}<div class="box"><p>Reason: {{ m.rejection_reason }}</p></div>{% endif %}
{% endblock %}""",
    "support_request.html": """
<p><strong>Problem type:</strong> {{ problem_type }}</p>
<p><strong>From:</strong> {{ sender_email }}</p>
<p><strong>Authenticated:</strong> {{ "Yes" if authenticated else "No" }}</p>
{% if support_id %}<p><strong>Support ID:</strong> {{ support_id }}</p>{% endif %}
{% if attachments %}<p><strong>Attachments:</strong> {{ attachments|join(", ") }}</p>{% endif %}
<hr style="border:none;height:1px;background:#e5e7eb;margin:12px 0;" />
<pre style="white-space:pre-wrap;font-family:inherit;">{{ question }}</pre>
""",
    "support_confirmation.html": """
<p>Thank you for contacting EduMatch support. We have received your request and our team will review it shortly.</p>
<p><strong>Your Request Details:</strong></p>
{% if support_id %}<p><strong>Support ID:</strong> {{ support_id }}</p>{% endif %}
<p><strong>Problem type:</strong> {{ problem_type }}</p>
<p><strong>Your message:</strong></p>
<pre style="white-space:pre-wrap;font-family:inherit;background:#f5f5f5;padding:12px;border-radius:4px;">{{ question }}</pre>
<p><strong>What happens next?</strong></p>
<ul>
  <li>Our support team will review your request</li>
  <li>You will receive a response via email within 24-48 hours</li>
  <li>If you need urgent assistance, please contact us directly</li>
</ul>
{% if support_id %}<p>When contacting us about this request, please include your Support ID: <strong>{{ support_id }}</strong></p>{% endif %}
""",
    "company.html": """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>{{ title }}</title>
  <style>
    body { margin: 0; background: #f7f7fb; font-family: -apple-system, Segoe UI, Roboto, Arial, sans-serif; color: #1f2937; }
    .container { max-width: 640px; margin: 0 auto; padding: 24px 16px; }
    .card { background: #fff; border: 1px solid #e5e7eb; border-radius: 12px; overflow: hidden; }
    .header { background: {{ color }}; padding: 28px 24px; color: #fff; }
    .content { padding: 24px; }
    .button { display: inline-block; padding: 12px 18px; border-radius: 8px; background: {{ color }}; color: #fff; text-decoration: none; font-weight: 600; }
    .footer { padding: 16px 24px 22px; color: #6b7280; font-size: 13px; }
    .preheader { display: none !important; }
  </style>
</head>
<body>
  <div class="preheader">{{ preheader }}</div>
  <div class="container"><div class="card">
    <div class="header"><h1>{{ brand_name }}</h1><p>{{ brand_tagline }}</p></div>
    <div class="content">
      {% if title %}<h2>{{ title }}</h2>{% endif %}
      <div class="body">{{ body_html|safe }}</div>
      {% if cta %}<p><a class="button" href="{{ cta.url }}">{{ cta.label }}</a></p>{% endif %}
    </div>
    <div class="footer">
      {% if footer_html %}{{ footer_html|safe }}{% endif %}
      <p>Need help? Visit our <a href="{{ help_center_url }}">Help Center</a>.</p>
    </div>
  </div></div>
</body>
</html>
""",
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(default=True, default_for_string=True),
    trim_blocks=True,
    lstrip_blocks=True,
)


class EmailTemplate:
    """Subject builder + template name + header styling for one notification type."""

    def __init__(self, template: str, subject: Callable[[Any], str], heading: str,
                 color: str = "#126E64", cta: Optional[Tuple[str, str]] = None):
        self.template = template
        self.subject = subject
        self.heading = heading
        self.color = color
        self.cta = cta  # (label, app path)

    def render(self, metadata) -> Tuple[str, str]:
        cta_url = f"{settings.app_url}{self.cta[1]}" if self.cta else None
        html = _env.get_template(self.template).render(
            m=metadata,
            heading=self.heading,
            color=self.color,
            cta_url=cta_url,
            cta_label=self.cta[0] if self.cta else None,
        )
        return self.subject(metadata), html


TEMPLATE_REGISTRY: Dict[NotificationType, EmailTemplate] = {
    NotificationType.WELCOME: EmailTemplate(
        "welcome.html", lambda m: f"Welcome to EduMatch, {m.first_name}!",
        "Welcome to EduMatch!", cta=("Complete Your Profile", "/profile/create")),
    NotificationType.PROFILE_CREATED: EmailTemplate(
        "profile_created.html", lambda m: "Profile Created Successfully - Welcome to EduMatch!",
        "Profile Created!", cta=("View Profile", "/profile/view")),
    NotificationType.PAYMENT_DEADLINE: EmailTemplate(
        "payment_deadline.html", lambda m: f"Payment Deadline Reminder - {m.plan_name} Subscription",
        "Payment Deadline Reminder", color="#ff9800", cta=("Pay Now", "/pricing")),
    NotificationType.APPLICATION_STATUS_UPDATE: EmailTemplate(
        "application_status.html", lambda m: f"Application Status Update - {m.program_name}",
        "Application Status Update", color="#1976D2", cta=("View Application", "/profile/applications")),
    NotificationType.DOCUMENT_UPDATED: EmailTemplate(
        "document_updated.html", lambda m: f"Document Updated - {m.program_name}",
        "Documents Updated", color="#1976D2", cta=("Review Application", "/institution/dashboard/applications")),
    NotificationType.PAYMENT_SUCCESS: EmailTemplate(
        "payment_success.html", lambda m: f"Payment Successful - {m.plan_name} Subscription",
        "Payment Successful", color="#4CAF50"),
    NotificationType.PAYMENT_FAILED: EmailTemplate(
        "payment_failed.html", lambda m: f"Payment Failed - {m.plan_name} Subscription",
        "Payment Failed", color="#f44336", cta=("Update Payment Method", "/pricing")),
    NotificationType.SUBSCRIPTION_EXPIRING: EmailTemplate(
        "subscription_expiring.html", lambda m: f"Subscription Expiring Soon - {m.plan_name}",
        "Subscription Expiring Soon", color="#ff9800", cta=("Renew Subscription", "/pricing")),
    NotificationType.USER_BANNED: EmailTemplate(
        "user_banned.html", lambda m: "Account Suspended - EduMatch",
        "Account Suspended", color="#f44336"),
    NotificationType.SESSION_REVOKED: EmailTemplate(
        "session_revoked.html", lambda m: "Security Alert - Session Revoked",
        "Session Revoked", color="#f44336"),
    NotificationType.WISHLIST_DEADLINE: EmailTemplate(
        "wishlist_deadline.html", lambda m: f"Deadline Approaching - {m.post_title}",
        "Deadline Approaching", color="#ff9800", cta=("View Wishlist", "/profile/wishlist")),
    NotificationType.PASSWORD_CHANGED: EmailTemplate(
        "password_changed.html", lambda m: "Your EduMatch password was changed",
        "Password Changed"),
    NotificationType.ACCOUNT_DELETED: EmailTemplate(
        "account_deleted.html", lambda m: "Your EduMatch account has been deleted",
        "Account Deleted", color="#6b7280"),
    NotificationType.SUPPORT_REPLY: EmailTemplate(
        "support_reply.html", lambda m: f"Re: {m.original_subject}",
        "Support Reply", cta=("Contact Support", "/support")),
    NotificationType.POST_STATUS_UPDATE: EmailTemplate(
        "post_status_update.html", lambda m: f"{m.post_type} Status Update - {m.post_title}",
        "Post Status Update", cta=("View Posts", "/institution/dashboard/posts")),
}


def render_notification(message: NotificationMessage) -> Tuple[str, str]:
    """
    (subject, html) for a notification.

    Raises UnsupportedNotificationType when the type has no template;
    metadata that does not fit the type raises pydantic.ValidationError.
    """
    template = TEMPLATE_REGISTRY.get(message.type)
    if template is None:
        raise UnsupportedNotificationType(message.type)
    return template.render(message.typed_metadata())


def render_company_email(body_html: str, title: str = "", preheader: str = "",
                         cta: Optional[Dict[str, str]] = None, footer_html: str = "",
                         brand_name: str = "EduMatch",
                         brand_tagline: str = "Connecting students and institutions worldwide",
                         color: str = "#126E64", help_center_url: Optional[str] = None) -> str:
    """Branded shell around caller-provided (already escaped) body HTML."""
    return _env.get_template("company.html").render(
        title=title,
        preheader=preheader,
        body_html=body_html,
        cta=cta,
        footer_html=footer_html,
        brand_name=brand_name,
        brand_tagline=brand_tagline,
        color=color,
        help_center_url=help_center_url or f"{settings.app_url}/support",
    )


def render_fragment(name: str, **context) -> str:
    """Render an escaped HTML body fragment (support_request.html, ...)."""
    return _env.get_template(name).render(**context)
