"""
AWS SES Email Service for security notifications.

Handles template rendering and AWS SES delivery for device alerts,
verification codes and account-change notices.
"""

import logging
from html import escape
from typing import Any, Dict, Optional, Tuple
import boto3
from botocore.exceptions import ClientError, BotoCoreError
from app.core.config import settings

logger = logging.getLogger(__name__)


class UnknownTemplateError(ValueError):
    pass


def _device_rows(device: Optional[Dict[str, Any]]) -> Tuple[str, str]:
    """Device details as (html, text) fragments."""
    if not device:
        return "", ""
    labels = [
        ("Device", device.get("device_name")),
        ("Browser", device.get("browser")),
        ("Operating system", device.get("os")),
        ("IP address", device.get("ip_address")),
    ]
    html_rows = "".join(
        f'<p style="margin: 8px 0; color: #5f6368;"><strong>{label}:</strong> {escape(str(value))}</p>'
        for label, value in labels if value
    )
    text_rows = "\n".join(f"{label}: {value}" for label, value in labels if value)
    return html_rows, text_rows


class EmailService:
    """
    Service for sending emails via AWS SES.

    Supports both development (sandbox) and production modes.
    """

    def __init__(self, ses_client=None):
        """Initialize AWS SES client"""
        if ses_client is not None:
            self.ses_client = ses_client
            return

        session_kwargs = {
            'region_name': settings.AWS_REGION,
        }

        # Add credentials if provided (otherwise uses IAM role)
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            session_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
            session_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY

        self.ses_client = boto3.client('ses', **session_kwargs)

    def send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        """
        Send one email.

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        try:
            response = self.ses_client.send_email(
                Source=f"{settings.AWS_SES_FROM_NAME} <{settings.AWS_SES_FROM_EMAIL}>",
                Destination={'ToAddresses': [to_email]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': {
                        'Html': {'Data': html_body, 'Charset': 'UTF-8'},
                        'Text': {'Data': text_body, 'Charset': 'UTF-8'}
                    }
                }
            )

            message_id = response.get('MessageId')
            logger.info(f"Email '{subject}' sent to {to_email} (MessageId: {message_id})")
            return True

        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            logger.error(f"AWS SES ClientError: {error_code} - {error_message}")

            if error_code == 'MessageRejected':
                logger.error(f"Email rejected: {error_message}")
            elif error_code == 'MailFromDomainNotVerified':
                logger.error("Sender email not verified in SES")

            return False

        except BotoCoreError as e:
            logger.error(f"AWS BotoCoreError: {str(e)}")
            return False

    def send_template(self, to_email: str, template_id: str, context: Dict[str, Any]) -> bool:
        subject, html_body, text_body = self.render(template_id, context)
        return self.send_email(to_email, subject, html_body, text_body)

    def render(self, template_id: str, context: Dict[str, Any]) -> Tuple[str, str, str]:
        """
        Render a template to (subject, html, text).

        Raises:
            UnknownTemplateError: for template ids without a renderer
        """
        renderer = getattr(self, f"_render_{template_id}", None)
        if renderer is None:
            raise UnknownTemplateError(template_id)
        return renderer(context)

    def _render_device_alert(self, context: Dict[str, Any]) -> Tuple[str, str, str]:
        email = context.get("email", "")
        html_rows, text_rows = _device_rows(context.get("device"))
        subject = "New login to your account"
        body = f"""
            <h1 style="margin: 0 0 16px; color: #1a73e8;">New Login Alert</h1>
            <p style="color: #202124; font-size: 16px;">A new login was detected on your account ({escape(email)}).</p>
            {html_rows}
            <p style="color: #999999; font-size: 13px;">If this wasn't you, revoke the device from your security settings and change your password.</p>
        """
        text = (
            f"A new login was detected on your account ({email}).\n\n{text_rows}\n\n"
            "If this wasn't you, revoke the device from your security settings and change your password."
        )
        return subject, self._layout(subject, body), text

    def _render_devices_revoked(self, context: Dict[str, Any]) -> Tuple[str, str, str]:
        count = int(context.get("count", 0))
        noun = "device" if count == 1 else "devices"
        subject = f"{count} {noun} logged out of your account"
        body = f"""
            <h1 style="margin: 0 0 16px; color: #333333;">Devices logged out</h1>
            <p style="color: #666666; font-size: 16px;">{count} {noun} {"was" if count == 1 else "were"} logged out of your account.</p>
            <p style="color: #999999; font-size: 13px;">If you didn't do this, secure your account immediately.</p>
        """
        text = f"{count} {noun} {'was' if count == 1 else 'were'} logged out of your account.\n\nIf you didn't do this, secure your account immediately."
        return subject, self._layout(subject, body), text

    def _render_email_verification_code(self, context: Dict[str, Any]) -> Tuple[str, str, str]:
        code = context["code"]
        minutes = context.get("expires_in_minutes", 10)
        html_rows, text_rows = _device_rows(context.get("device"))
        subject = "Your verification code"
        body = f"""
            <h1 style="margin: 0 0 16px; color: #333333;">Verify it's you</h1>
            <p style="color: #666666; font-size: 16px;">Use this code to continue:</p>
            <div style="background-color: #f8f9fa; border-radius: 8px; padding: 30px; text-align: center; margin: 0 0 30px 0;">
                <div style="font-size: 36px; font-weight: 700; letter-spacing: 8px; color: #4F46E5; font-family: 'Courier New', monospace;">{escape(code)}</div>
            </div>
            <p style="color: #666666; font-size: 14px;">This code will expire in <strong>{minutes} minutes</strong>.</p>
            {html_rows}
        """
        text = f"Use this code to continue:\n\n{code}\n\nThis code will expire in {minutes} minutes.\n\n{text_rows}"
        return subject, self._layout(subject, body), text

    def _render_two_factor_disabled(self, context: Dict[str, Any]) -> Tuple[str, str, str]:
        method = context.get("method", "two-factor authentication")
        subject = "Two-factor authentication was disabled"
        body = f"""
            <h1 style="margin: 0 0 16px; color: #333333;">Two-factor method removed</h1>
            <p style="color: #666666; font-size: 16px;">The {escape(str(method))} method was removed from your account.</p>
            <p style="color: #999999; font-size: 13px;">If you didn't do this, secure your account immediately.</p>
        """
        text = f"The {method} method was removed from your account.\n\nIf you didn't do this, secure your account immediately."
        return subject, self._layout(subject, body), text

    def _layout(self, title: str, body: str) -> str:
        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4;">
    <table role="presentation" style="width: 100%; border-collapse: collapse;">
        <tr>
            <td align="center" style="padding: 40px 0;">
                <table role="presentation" style="width: 600px; border-collapse: collapse; background-color: #ffffff; border-radius: 8px;">
                    <tr>
                        <td style="padding: 40px;">{body}</td>
                    </tr>
                    <tr>
                        <td style="padding: 20px 40px; background-color: #f8f9fa; border-top: 1px solid #e5e7eb;">
                            <p style="margin: 0; color: #999999; font-size: 12px; text-align: center;">{escape(settings.AWS_SES_FROM_NAME)}</p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>
"""


# Singleton instance
email_service = EmailService()
