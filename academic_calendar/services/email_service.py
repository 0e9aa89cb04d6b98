import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from datetime import datetime
from typing import Optional
import logging
from jinja2 import Template

from academic_calendar.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Email service using SMTP"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL
        self.from_name = settings.SMTP_FROM_NAME
        self.use_tls = settings.SMTP_USE_TLS

    @property
    def configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def send_email(
        self,
        to_email: str,
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
        reply_to: Optional[str] = None
    ) -> bool:
        """Send an email via SMTP. Returns False instead of raising on failure."""
        if not self.configured:
            logger.info(f"SMTP not configured, skipping email to {to_email}: {subject}")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            if reply_to:
                msg['Reply-To'] = reply_to

            msg.attach(MIMEText(body_text, 'plain', 'utf-8'))
            if body_html:
                msg.attach(MIMEText(body_html, 'html', 'utf-8'))

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                if self.use_tls:
                    server.starttls()
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}", exc_info=True)
            return False


LIFECYCLE_TEXT = Template("""
Dear {{ name }},

{{ school_name }} has started {% if is_new_session %}the {{ session_name }} academic session{% else %}{{ term_name }} of the {{ session_name }} session{% endif %}.

- {% if is_new_session %}Session{% else %}Term{% endif %}: {% if is_new_session %}{{ session_name }}{% else %}{{ term_name }}{% endif %}
- Current term: {{ term_name }}
- Starts: {{ start_date }}
- Ends: {{ end_date }}

Best regards,
{{ school_name }}
""")

LIFECYCLE_HTML = Template("""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2>{% if is_new_session %}New Academic Session{% else %}New Term{% endif %}: {{ school_name }}</h2>
        <p>Dear {{ name }},</p>
        <p>
            {% if is_new_session %}The <strong>{{ session_name }}</strong> academic session has started.
            {% else %}<strong>{{ term_name }}</strong> of the {{ session_name }} session has started.{% endif %}
        </p>
        <table>
            <tr><td><strong>Current term:</strong></td><td>{{ term_name }}</td></tr>
            <tr><td><strong>Starts:</strong></td><td>{{ start_date }}</td></tr>
            <tr><td><strong>Ends:</strong></td><td>{{ end_date }}</td></tr>
        </table>
        <p style="color: #666; font-size: 12px;">This is an automated message from {{ school_name }}.</p>
    </div>
</body>
</html>
""")

PROMOTION_TEXT = Template("""
Dear {{ name }},

{% if graduated %}Congratulations on completing {{ previous_class }} at {{ school_name }}. You have graduated and are now part of our alumni.
{% else %}Congratulations! For the {{ session_name }} session you have been promoted from {{ previous_class }} to {{ new_class }}.
{% endif %}
Best regards,
{{ school_name }}
""")

PROMOTION_HTML = Template("""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2>{% if graduated %}Congratulations, Graduate!{% else %}Promotion Notice{% endif %}</h2>
        <p>Dear {{ name }},</p>
        {% if graduated %}
        <p>You have completed <strong>{{ previous_class }}</strong> and graduated from {{ school_name }}.</p>
        {% else %}
        <p>For the <strong>{{ session_name }}</strong> session you have been promoted from
           <strong>{{ previous_class }}</strong> to <strong>{{ new_class }}</strong>.</p>
        {% endif %}
        <p style="color: #666; font-size: 12px;">This is an automated message from {{ school_name }}.</p>
    </div>
</body>
</html>
""")


class EmailTemplates:
    """Email templates for calendar notifications"""

    @staticmethod
    def lifecycle_notice(
        name: str,
        school_name: str,
        session_name: str,
        term_name: str,
        start_date: datetime,
        end_date: datetime,
        is_new_session: bool
    ) -> tuple[str, str, str]:
        """Session/term start email as (subject, text, html)"""
        context = {
            "name": name,
            "school_name": school_name,
            "session_name": session_name,
            "term_name": term_name,
            "start_date": start_date.strftime("%d %B %Y"),
            "end_date": end_date.strftime("%d %B %Y"),
            "is_new_session": is_new_session,
        }
        if is_new_session:
            subject = f"{school_name}: {session_name} session has started"
        else:
            subject = f"{school_name}: {term_name} has started"
        return subject, LIFECYCLE_TEXT.render(**context), LIFECYCLE_HTML.render(**context)

    @staticmethod
    def promotion_notice(
        name: str,
        previous_class: str,
        new_class: str,
        session_name: str,
        school_name: str,
        graduated: bool
    ) -> tuple[str, str, str]:
        """Promotion or graduation email as (subject, text, html)"""
        context = {
            "name": name,
            "previous_class": previous_class,
            "new_class": new_class,
            "session_name": session_name,
            "school_name": school_name,
            "graduated": graduated,
        }
        if graduated:
            subject = f"{school_name}: Congratulations on your graduation"
        else:
            subject = f"{school_name}: You have been promoted to {new_class}"
        return subject, PROMOTION_TEXT.render(**context), PROMOTION_HTML.render(**context)


# Singleton instance
email_service = EmailService()
