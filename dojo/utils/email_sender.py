"""
Email Sender - Transactional dojo emails via SendGrid or SMTP

Uses requests directly for the SendGrid API when an API key is configured,
otherwise falls back to SMTP over SSL. Send failures are logged and reported
as False, never raised.
"""

import smtplib
import requests
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class EmailSender:
    """Send dojo emails using the configured SendGrid or SMTP account"""

    SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, config):
        """
        Initialize email sender with dojo configuration

        Args:
            config: DojoConfig instance
        """
        self.config = config
        self.sendgrid_api_key = getattr(config, 'sendgrid_api_key', None)
        self.use_sendgrid = bool(self.sendgrid_api_key)

        self.from_email = getattr(config, 'from_email', 'noreply@example.com')
        self.from_name = getattr(config, 'from_name', 'Dojo')

        # SMTP fallback settings
        self.smtp_host = getattr(config, 'smtp_host', 'smtp.gmail.com')
        self.smtp_port = getattr(config, 'smtp_port', 465)
        self.smtp_username = getattr(config, 'smtp_username', '')
        self.smtp_password = getattr(config, 'smtp_password', '')

        logger.debug(f"Email sender initialized (SendGrid: {self.use_sendgrid})")

    def send_email(
        self,
        to: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None
    ) -> bool:
        """
        Send an email via SendGrid or SMTP

        Args:
            to: Recipient email address
            subject: Email subject
            body_html: HTML email body
            body_text: Plain text email body (optional)

        Returns:
            True if sent successfully, False otherwise
        """
        if self.use_sendgrid:
            return self._send_via_sendgrid(to, subject, body_html, body_text)
        return self._send_via_smtp(to, subject, body_html, body_text)

    def _send_via_sendgrid(
        self,
        to: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None
    ) -> bool:
        """Send email via SendGrid API using requests"""
        try:
            payload = {
                "personalizations": [{"to": [{"email": to}]}],
                "from": {"email": self.from_email, "name": self.from_name},
                "subject": subject,
                "content": [{"type": "text/html", "value": body_html}]
            }

            if body_text:
                payload["content"].insert(0, {"type": "text/plain", "value": body_text})

            headers = {
                "Authorization": f"Bearer {self.sendgrid_api_key}",
                "Content-Type": "application/json"
            }

            response = requests.post(
                self.SENDGRID_API_URL,
                headers=headers,
                json=payload,
                timeout=30
            )

            if response.status_code in [200, 201, 202]:
                logger.info(f"Email sent via SendGrid to {to}: {subject}")
                return True

            logger.error(f"SendGrid error: {response.status_code} - {response.text}")
            return False

        except Exception as e:
            logger.error(f"SendGrid send failed to {to}: {e}")
            return False

    def _send_via_smtp(
        self,
        to: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None
    ) -> bool:
        """Send email via SMTP (fallback)"""
        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to

            if body_text:
                msg.attach(MIMEText(body_text, 'plain'))
            msg.attach(MIMEText(body_html, 'html'))

            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port) as server:
                if self.smtp_username and self.smtp_password:
                    server.login(self.smtp_username, self.smtp_password)
                server.sendmail(self.from_email, [to], msg.as_string())

            logger.info(f"Email sent via SMTP to {to}: {subject}")
            return True

        except Exception as e:
            logger.error(f"SMTP send failed to {to}: {e}")
            return False

    def _wrap(self, title: str, content: str, accent: str = "#d97706") -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
        </head>
        <body style="font-family: Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
            <div style="background-color: {accent}; color: white; padding: 30px; text-align: center;">
                <h1 style="margin: 0;">{title}</h1>
            </div>

            <div style="padding: 30px;">
                {content}
            </div>

            <div style="background-color: #f8f9fa; padding: 20px; text-align: center; font-size: 12px; color: #666;">
                <p style="margin: 0;">Este es un correo automático, por favor no respondas.</p>
                <p style="margin: 5px 0 0 0;">&copy; {datetime.now().year} {self.from_name}</p>
            </div>
        </body>
        </html>
        """

    def send_unlock_code_email(
        self,
        to: str,
        username: str,
        code: str,
        ttl_minutes: int = 30
    ) -> bool:
        """Send the 6-digit code that unlocks an account locked by failed logins"""
        content = f"""
                <p>Hola <strong>{username}</strong>,</p>

                <p>Tu cuenta ha sido bloqueada temporalmente debido a múltiples intentos
                fallidos de inicio de sesión.</p>

                <p>Usa el siguiente código para desbloquear tu cuenta:</p>

                <div style="margin: 30px 0; padding: 20px; background-color: #f8f9fa; text-align: center;
                            font-size: 32px; letter-spacing: 8px; font-weight: bold;">
                    {code}
                </div>

                <p><strong>Este código expira en {ttl_minutes} minutos.</strong></p>

                <div style="margin-top: 20px; padding: 15px; border-left: 4px solid #dc2626; background-color: #fef2f2;">
                    <p style="margin: 0;"><strong>Importante:</strong> Si no intentaste iniciar sesión,
                    es posible que alguien esté intentando acceder a tu cuenta. Contacta al administrador.</p>
                </div>
        """
        body_text = (
            f"Hola {username},\n\n"
            f"Tu cuenta ha sido bloqueada por múltiples intentos fallidos.\n"
            f"Código de desbloqueo: {code}\n"
            f"El código expira en {ttl_minutes} minutos."
        )
        return self.send_email(
            to=to,
            subject="Código de desbloqueo de cuenta",
            body_html=self._wrap("Tu cuenta ha sido bloqueada", content, accent="#dc2626"),
            body_text=body_text
        )

    def send_password_reset_email(
        self,
        to: str,
        reset_url: str,
        ttl_minutes: int = 15
    ) -> bool:
        """Send the password reset link"""
        content = f"""
                <p>Recibimos una solicitud para restablecer la contraseña de tu cuenta.</p>

                <p style="text-align: center; margin: 30px 0;">
                    <a href="{reset_url}" style="background-color: #d97706; color: white; padding: 12px 24px;
                       text-decoration: none; border-radius: 6px;">Restablecer contraseña</a>
                </p>

                <p><strong>Este enlace expira en {ttl_minutes} minutos.</strong></p>

                <p>Si no solicitaste restablecer tu contraseña, puedes ignorar este correo.</p>
        """
        body_text = (
            "Recibimos una solicitud para restablecer la contraseña de tu cuenta.\n"
            f"Abre este enlace para continuar: {reset_url}\n"
            f"El enlace expira en {ttl_minutes} minutos."
        )
        return self.send_email(
            to=to,
            subject="Restablecer tu contraseña",
            body_html=self._wrap("Restablecer tu contraseña", content),
            body_text=body_text
        )
