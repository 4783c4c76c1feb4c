"""Colaboradores salientes vía HTTP: bus de eventos y correo transaccional.

La publicación de eventos es de mejor esfuerzo: un fallo se registra en el
log y no se reintenta ni se propaga. El envío de correo sí informa el fallo
al llamador con DeliveryError.
"""

import logging
from typing import Any, Dict
import requests
from config import get_settings
from errors import DeliveryError

settings = get_settings()
logger = logging.getLogger("accounts.notifier")

USER_TOPIC = 'user/notification'
USER_DELETED_EVENT = 'notificationUserDeletion'

RESET_SUBJECT = 'Reset your password'
RESET_TEMPLATE = (
    '<html><body><p>Hi {{ params.firstName | default : "NAME" }} {{ params.lastName | default : "SURNAME" }},</p>'
    '<p>We have recovered your password. Please use the following credentials to authenticate in '
    '<a href="{login_url}">{login_url}</a>:</p>'
    '<p> username: {{ params.username | default : "USERNAME" }}</p>'
    '<p> password: {{ params.password | default : "PASSWORD" }}</p></br>'
    '<p>Please do not respond to this email,</p><p><strong>{sender}</strong></p></body></html>'
)


class EventPublisher:
    """Publica eventos en el bus de notificaciones mediante POST HTTP."""
    def __init__(self, url: str = None, api_key: str = None, timeout: float = None):
        self.url = (url if url is not None else settings.notify_url).rstrip('/')
        self.api_key = api_key if api_key is not None else settings.notify_api_key
        self.timeout = timeout or settings.request_timeout

    # publish: Envía el evento; retorna True si el bus lo aceptó, False en cualquier fallo.
    def publish(self, topic: str, event_type: str, payload: Dict[str, Any]) -> bool:
        if not self.url:
            logger.debug("Notification bus not configured, dropping %s/%s", topic, event_type)
            return False
        body = {'topic': topic, 'event': event_type, 'payload': payload}
        try:
            resp = requests.post(
                f"{self.url}/publish",
                json=body,
                headers={'x-api-key': self.api_key},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning("Could not publish %s/%s: %s", topic, event_type, e)
            return False


class EmailSender:
    """Envía correos transaccionales a través de la API REST de Brevo."""
    def __init__(self, api_url: str = None, api_key: str = None, timeout: float = None):
        self.api_url = api_url or settings.brevo_api_url
        self.api_key = api_key if api_key is not None else settings.brevo_api_key
        self.timeout = timeout or settings.request_timeout

    # _reset_payload: Construye el cuerpo del correo con los parámetros de la plantilla.
    def _reset_payload(self, account, password: str) -> Dict[str, Any]:
        html = (RESET_TEMPLATE
                .replace('{login_url}', settings.login_url)
                .replace('{sender}', settings.mail_sender_name))
        return {
            'subject': RESET_SUBJECT,
            'htmlContent': html,
            'sender': {'name': settings.mail_sender_name, 'email': settings.mail_sender_email},
            'to': [{'email': account.email, 'name': f"{account.first_name} {account.last_name}".strip()}],
            'params': {
                'username': account.username,
                'password': password,
                'firstName': account.first_name,
                'lastName': account.last_name,
            },
        }

    def send_password_reset(self, account, password: str) -> None:
        payload = self._reset_payload(account, password)
        try:
            resp = requests.post(
                self.api_url,
                json=payload,
                headers={'api-key': self.api_key, 'accept': 'application/json'},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Password reset email for %s failed: %s", account.username, e)
            raise DeliveryError()
