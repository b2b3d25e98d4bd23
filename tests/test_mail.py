import smtplib
from email.mime.text import MIMEText
from types import SimpleNamespace
from unittest import mock

from forumapi.mail import NEW_SIGNUP_TEMPLATE, REPORT_SUBMITTED_TEMPLATE, send_email, send_email_to_user


def _signup_context():
    user = SimpleNamespace(username='carol', email='carol@example.com')
    confirmation = SimpleNamespace(confirmation_key='abc-123')
    return user, {'confirmation': confirmation}


def test_send_email_without_smtp_host_is_skipped(app):
    user, context = _signup_context()
    with mock.patch('forumapi.mail.smtplib.SMTP') as smtp:
        assert send_email_to_user(user, context, NEW_SIGNUP_TEMPLATE) is False
    smtp.assert_not_called()


def test_send_email_over_smtp(app):
    app.config.update(SMTP_HOST='smtp.example.com', SMTP_PORT=587, SMTP_USER='mailer', SMTP_PASS='secret',
                      MAIL_FROM='forum@example.com')
    user, context = _signup_context()

    with mock.patch('forumapi.mail.smtplib.SMTP') as smtp:
        assert send_email_to_user(user, context, NEW_SIGNUP_TEMPLATE) is True

    smtp.assert_called_once_with('smtp.example.com', 587, timeout=10)
    server = smtp.return_value.__enter__.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with('mailer', 'secret')
    from_addr, to_addrs, message = server.sendmail.call_args.args
    assert from_addr == 'forum@example.com'
    assert to_addrs == ['carol@example.com']
    assert 'Subject: Please confirm your account' in message


def test_rendered_body_contains_confirmation_link(app):
    app.config.update(SMTP_HOST='smtp.example.com', SMTP_PORT=25)
    user, context = _signup_context()

    with mock.patch('forumapi.mail.MIMEText', wraps=MIMEText) as mime, mock.patch('forumapi.mail.smtplib.SMTP'):
        send_email_to_user(user, context, NEW_SIGNUP_TEMPLATE)
    body = mime.call_args.args[0]
    assert 'http://forum.test/confirm/abc-123' in body
    assert 'Hello carol' in body


def test_smtp_failure_returns_false(app):
    app.config.update(SMTP_HOST='smtp.example.com', SMTP_PORT=25)
    report = SimpleNamespace(reporter_name='Visitor', post_id=4, body='spam')

    with mock.patch('forumapi.mail.smtplib.SMTP', side_effect=smtplib.SMTPConnectError(421, 'busy')):
        assert send_email('visitor@example.com', {'report': report}, REPORT_SUBMITTED_TEMPLATE) is False


def test_missing_recipient(app):
    assert send_email('', {}, REPORT_SUBMITTED_TEMPLATE) is False
