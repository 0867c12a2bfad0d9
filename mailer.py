import logging
from datetime import datetime
from html import escape

import requests

import config
from errors import MailError

logger = logging.getLogger(__name__)

BREVO_URL = "https://api.brevo.com/v3/smtp/email"


def render_inquiry_html(inquiry: dict) -> str:
    def field(name, default=""):
        return escape(str(inquiry.get(name) or default))

    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color:#7c3aed">New Property Inquiry</h2>
            <table style="width: 100%; margin: 20px 0;">
                <tr><td><b>Full Name:</b></td><td>{field("fullName")}</td></tr>
                <tr><td><b>Mobile:</b></td><td>{field("mobile")}</td></tr>
                <tr><td><b>Email:</b></td><td>{field("email", "Not provided")}</td></tr>
                <tr><td><b>Inquiry Type:</b></td><td>{field("type", "General")}</td></tr>
                <tr><td><b>Location:</b></td><td>{field("location", "Not specified")}</td></tr>
            </table>
            <h3>Message</h3>
            <div style="background-color:#f5f3ff; padding: 15px;">{field("message")}</div>
            <p style="color:#666; font-size: 12px;">This inquiry was submitted through BashaChai.com
            &copy; {datetime.utcnow().year}</p>
        </div>
    """


def send_inquiry_email(inquiry: dict) -> None:
    if not config.BREVO_API_KEY:
        raise MailError("Mail service is not configured", detail="BREVO_API_KEY is not set")

    payload = {
        "sender": {"name": inquiry["fullName"], "email": config.MAIL_SENDER},
        "to": [{"email": config.INQUIRY_RECIPIENT}],
        "subject": f"Property Inquiry from {inquiry['fullName']}",
        "htmlContent": render_inquiry_html(inquiry),
    }
    if inquiry.get("email"):
        payload["replyTo"] = {"email": inquiry["email"], "name": inquiry["fullName"]}

    try:
        response = requests.post(
            BREVO_URL,
            headers={
                "api-key": config.BREVO_API_KEY,
                "Content-Type": "application/json",
            },
            json=payload,
            timeout=10,
        )
    except requests.RequestException as e:
        logger.exception("Inquiry e-mail request failed")
        raise MailError(detail=str(e))

    if response.status_code not in (200, 201, 202):
        logger.error("Brevo error %s: %s", response.status_code, response.text[:200])
        raise MailError(detail=f"Brevo error: {response.text}")
    logger.info("Inquiry e-mail sent for %s", inquiry.get("fullName"))
