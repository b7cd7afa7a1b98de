"""
Email Service for appointment notifications
"""
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from flask import current_app
from markupsafe import escape

logger = logging.getLogger(__name__)


_BASE_STYLE = """
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #4a90a4; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; }}
        .content {{ background: #f9f9f9; padding: 30px; border: 1px solid #ddd; }}
        .details {{ background: white; padding: 20px; border-radius: 5px; margin: 20px 0; border-left: 4px solid #4a90a4; }}
        .details td:first-child {{ font-weight: bold; width: 100px; }}
        .footer {{ text-align: center; padding: 20px; color: #666; font-size: 12px; }}
"""


def _wrap_html(title, intro, rows, closing):
    # Row values come from user input (reason, notes, names)
    details = "".join(
        f"<tr><td>{escape(label)}:</td><td><strong>{escape(value)}</strong></td></tr>"
        for label, value in rows if value
    )
    style = _BASE_STYLE.format()
    return f"""
<!DOCTYPE html>
<html>
<head>
    <style>{style}</style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{escape(title)}</h1>
        </div>
        <div class="content">
            <p>{escape(intro)}</p>
            <div class="details">
                <table>{details}</table>
            </div>
            <p>{escape(closing)}</p>
        </div>
        <div class="footer">
            <p>School Clinic Appointment System</p>
        </div>
    </div>
</body>
</html>
        """


def _wrap_text(title, intro, rows, closing):
    lines = [title, "", intro, ""]
    lines.extend(f"{label}: {value}" for label, value in rows if value)
    lines.extend(["", closing, "", "School Clinic Appointment System"])
    return "\n".join(lines)


def _appointment_request(data):
    title = 'New Appointment Request'
    intro = 'A student has requested an appointment with you.'
    rows = [
        ('Student', data.get('student_name')),
        ('Date', data.get('date')),
        ('Time', data.get('time')),
        ('Reason', data.get('reason')),
    ]
    closing = 'Please log in to your dashboard to approve or reject this appointment.'
    return title, intro, rows, closing


def _appointment_status(data):
    status = data.get('status', 'updated')
    title = f"Appointment {status.replace('_', ' ').title()}"
    intro = f"Your appointment has been {status.replace('_', ' ')}."
    rows = [
        ('Date', data.get('date')),
        ('Time', data.get('time')),
        ('Nurse', data.get('nurse_name')),
        ('Reason', data.get('reason')),
        ('Notes', data.get('notes')),
    ]
    if status == 'confirmed':
        closing = 'Please arrive 15 minutes early for your appointment.'
    else:
        closing = 'If you have any questions, please contact the clinic.'
    return title, intro, rows, closing


def _appointment_reminder(data):
    title = 'Appointment Reminder'
    intro = 'This is a reminder of your clinic appointment tomorrow.'
    rows = [
        ('Date', data.get('date')),
        ('Time', data.get('time')),
        ('Nurse', data.get('nurse_name')),
        ('Reason', data.get('reason')),
    ]
    closing = 'Please bring your QR code and arrive 15 minutes early.'
    return title, intro, rows, closing


def _record_created(data):
    title = 'Clinic Visit Recorded'
    intro = 'A record of your clinic visit has been saved.'
    rows = [
        ('Date', data.get('date')),
        ('Nurse', data.get('nurse_name')),
        ('Diagnosis', data.get('diagnosis')),
        ('Follow-up', data.get('follow_up_date')),
    ]
    closing = 'Log in to view the full record.'
    return title, intro, rows, closing


TEMPLATES = {
    'appointment_request': _appointment_request,
    'appointment_status': _appointment_status,
    'appointment_reminder': _appointment_reminder,
    'record_created': _record_created,
}


def send_email(to_email, subject, body_text, body_html=None):
    """
    Generic email sending function

    Args:
        to_email: Recipient email
        subject: Email subject
        body_text: Plain text body
        body_html: HTML body (optional)

    Returns:
        bool: True if sent successfully
    """
    try:
        mail_server = current_app.config.get('MAIL_SERVER')
        mail_port = current_app.config.get('MAIL_PORT')
        mail_use_tls = current_app.config.get('MAIL_USE_TLS')
        mail_username = current_app.config.get('MAIL_USERNAME')
        mail_password = current_app.config.get('MAIL_PASSWORD')
        mail_sender = current_app.config.get('MAIL_DEFAULT_SENDER')

        if not mail_username or not mail_password:
            logger.warning("Email not configured. Skipping '%s' to %s", subject, to_email)
            return False

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = mail_sender
        msg['To'] = to_email

        msg.attach(MIMEText(body_text, 'plain'))
        if body_html:
            msg.attach(MIMEText(body_html, 'html'))

        with smtplib.SMTP(mail_server, mail_port, timeout=10) as server:
            if mail_use_tls:
                server.starttls()
            server.login(mail_username, mail_password)
            server.sendmail(mail_sender, to_email, msg.as_string())

        logger.info(f"Email sent to {to_email}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def send_template_email(template, address, data):
    """
    Render one of TEMPLATES and send it.

    Never raises: unknown templates, missing addresses and SMTP failures all
    return False.
    """
    builder = TEMPLATES.get(template)
    if builder is None:
        logger.error("Unknown email template: %s", template)
        return False
    if not address:
        logger.warning("No address for '%s' email, skipping", template)
        return False

    title, intro, rows, closing = builder(data)
    return send_email(
        address,
        title,
        _wrap_text(title, intro, rows, closing),
        _wrap_html(title, intro, rows, closing),
    )
