"""Outgoing e-mail for signup confirmations, password resets and post reports.

Messages are rendered from ``templates/email`` and sent over SMTP. When
``SMTP_HOST`` is not configured the message is logged and dropped.
"""
import smtplib
from collections import namedtuple
from email.mime.text import MIMEText

from flask import current_app, render_template

EmailTemplate = namedtuple('EmailTemplate', ['subject', 'template_name'])

NEW_SIGNUP_TEMPLATE = EmailTemplate('Please confirm your account', 'email/new_signup.txt')
PASSWORD_RESET_REQUEST_TEMPLATE = EmailTemplate('Password reset request', 'email/password_reset_request.txt')
REPORT_SUBMITTED_TEMPLATE = EmailTemplate('Your report has been received', 'email/report_submitted.txt')


def send_email(recipient, context, template):
    cfg = current_app.config
    if not recipient:
        current_app.logger.warning(f"No recipient for e-mail '{template.subject}', skipping")
        return False

    body = render_template(template.template_name, site_url=cfg.get('SITE_URL', ''), **context)

    host = cfg.get('SMTP_HOST')
    if not host:
        current_app.logger.warning(f"SMTP_HOST not set, not sending '{template.subject}' to {recipient}")
        return False

    msg = MIMEText(body, 'plain', 'utf-8')
    msg['Subject'] = template.subject
    msg['From'] = cfg.get('MAIL_FROM') or cfg.get('SMTP_USER') or 'noreply@localhost'
    msg['To'] = recipient

    try:
        port = int(cfg.get('SMTP_PORT', 587))
        with smtplib.SMTP(host, port, timeout=10) as server:
            if port == 587:
                server.starttls()
            user = cfg.get('SMTP_USER')
            password = cfg.get('SMTP_PASS')
            if user and password:
                server.login(user, password)
            server.sendmail(msg['From'], [recipient], msg.as_string())
        current_app.logger.info(f"E-mail '{template.subject}' sent to {recipient}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        current_app.logger.error(f"Failed to send '{template.subject}' to {recipient}: {e}", exc_info=True)
        return False


def send_email_to_user(user, context, template):
    return send_email(user.email, dict(context, user=user), template)
