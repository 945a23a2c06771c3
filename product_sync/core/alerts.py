"""
Alert delivery for the sync service.

Admin messages go out by email (SMTP) and, optionally, to a JSON webhook.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

import requests

from product_sync.core.clock import utcnow
from product_sync.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class AlertLevel:
    """Niveles de alerta"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AlertManager:
    """Gestor centralizado de alertas"""

    def __init__(self, settings: Settings = None):
        self.settings = settings or default_settings
        self.enabled = self.settings.alerts_enabled
        self.channels = self._load_channels()

    def _load_channels(self) -> Dict[str, bool]:
        """Cargar canales de alerta habilitados desde configuración"""
        return {
            'email': self.settings.alert_email_enabled,
            'webhook': self.settings.alert_webhook_enabled,
        }

    def send(self, to_address: str, subject: str, body: str) -> None:
        """
        Send an admin message to every enabled channel.

        Args:
            to_address: Recipient email address
            subject: Message subject
            body: Plain text body
        """
        if not self.enabled:
            logger.debug("Alertas deshabilitadas globalmente")
            return

        alert_data = {
            'title': subject,
            'message': body,
            'to': to_address,
            'timestamp': utcnow().isoformat()
        }

        for channel, enabled in self.channels.items():
            if not enabled:
                continue
            try:
                if channel == 'email':
                    self._send_email(alert_data)
                elif channel == 'webhook':
                    self._send_webhook(alert_data)
            except Exception as e:
                logger.error(
                    f"Error sending alert to {channel}: {e}",
                    exc_info=True
                )

    def send_alert(
        self,
        title: str,
        message: str,
        level: str = AlertLevel.ERROR,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Send an operational alert to the configured admin address.

        Args:
            title: Título de la alerta
            message: Mensaje de la alerta
            level: Nivel de severidad (info, warning, error, critical)
            context: Contexto adicional
        """
        body = message
        if context:
            body += "\n\n" + "\n".join(f"{key}: {value}" for key, value in context.items())
        self.send(self.settings.admin_email, f"[{level.upper()}] {title}", body)

    def _send_email(self, alert_data: Dict[str, Any]):
        """Enviar alerta por email"""
        to_email = alert_data['to']
        if not to_email:
            logger.warning("No email recipient configured for alerts")
            return

        msg = MIMEMultipart('alternative')
        msg['Subject'] = alert_data['title']
        msg['From'] = self.settings.alert_email_from
        msg['To'] = to_email
        msg.attach(MIMEText(alert_data['message'], 'plain'))

        with smtplib.SMTP(self.settings.alert_email_smtp_host, self.settings.alert_email_smtp_port) as server:
            if self.settings.alert_email_smtp_user and self.settings.alert_email_smtp_password:
                server.starttls()
                server.login(self.settings.alert_email_smtp_user, self.settings.alert_email_smtp_password)
            server.send_message(msg)
            logger.info(f"Email alert sent to {to_email}")

    def _send_webhook(self, alert_data: Dict[str, Any]):
        """Enviar alerta a webhook personalizado"""
        webhook_url = self.settings.alert_webhook_url

        if not webhook_url:
            logger.warning("Webhook URL not configured")
            return

        response = requests.post(webhook_url, json=alert_data, timeout=10)
        response.raise_for_status()
        logger.info("Webhook alert sent successfully")


def send_batch_completion_alert(
    manager: AlertManager,
    total: int,
    completed: int,
    failed: int,
    trigger: str
):
    """
    Alerta de resumen de sincronización completada

    Only sent when the run had failures, to keep steady-state runs quiet.
    """
    if failed <= 0:
        return
    message = f"""
Product price sync finished ({trigger})

Summary:
• Total: {total}
• Succeeded: {completed}
• Failed: {failed}
"""
    manager.send_alert(
        title=f"Product sync finished with {failed} failure(s)",
        message=message,
        level=AlertLevel.WARNING,
        context={'trigger': trigger}
    )
