"""
Push notification delivery.

The dispatcher is handed a backend when the app is built, so tests and
development setups can swap Firebase Cloud Messaging for something else.
Delivery is best effort: failures are counted and logged, never raised.
"""
import os
import logging
from abc import ABC, abstractmethod
from collections import namedtuple
from lifepulse.errors import BackendUnavailable

logger = logging.getLogger(__name__)

Recipient = namedtuple('Recipient', ['id', 'push_token'])

URGENCY_MARKERS = {
    'LOW': '🟢',
    'MEDIUM': '🟡',
    'HIGH': '🟠',
    'CRITICAL': '🔴',
}


class NotificationResult:
    """Per-batch delivery counts."""

    def __init__(self, success_count=0, failure_count=0, error=None):
        self.success_count = success_count
        self.failure_count = failure_count
        self.error = error

    @property
    def success(self):
        return self.success_count > 0 and self.error is None

    def to_dict(self):
        return {
            'successCount': self.success_count,
            'failureCount': self.failure_count,
            'error': self.error,
        }

    def __repr__(self):
        return f'<NotificationResult ok={self.success_count} failed={self.failure_count} error={self.error}>'


class PushBackend(ABC):
    """Delivers a single message to a single device token."""

    @abstractmethod
    def send(self, token, title, body, data):
        """Send one message. Returns a message id.

        Raises BackendUnavailable when the backend cannot be used at all;
        any other exception is a failure for that token only.
        """


class ConsoleBackend(PushBackend):
    """Logs messages instead of delivering them (for development)."""

    def send(self, token, title, body, data):
        logger.info("[PUSH] to=%s... title=%r body=%r data=%s", token[:12], title, body, data)
        return f'console-{token[:12]}'


class FCMBackend(PushBackend):
    """Firebase Cloud Messaging via firebase-admin, initialized on first use."""

    def __init__(self):
        self._app = None

    def _credentials(self):
        from firebase_admin import credentials

        cred_path = os.getenv('FIREBASE_CREDENTIALS_PATH')
        if cred_path and os.path.exists(cred_path):
            return credentials.Certificate(cred_path)

        project_id = os.getenv('FIREBASE_PROJECT_ID')
        private_key = os.getenv('FIREBASE_PRIVATE_KEY')
        client_email = os.getenv('FIREBASE_CLIENT_EMAIL')
        if not all([project_id, private_key, client_email]):
            return None

        return credentials.Certificate({
            'type': 'service_account',
            'project_id': project_id,
            'private_key_id': os.getenv('FIREBASE_PRIVATE_KEY_ID'),
            'private_key': private_key.replace('\\n', '\n'),
            'client_email': client_email,
            'client_id': os.getenv('FIREBASE_CLIENT_ID'),
            'token_uri': os.getenv('FIREBASE_TOKEN_URI', 'https://oauth2.googleapis.com/token'),
        })

    def _get_app(self):
        if self._app is not None:
            return self._app

        try:
            import firebase_admin
        except ImportError:
            raise BackendUnavailable('firebase-admin not installed')

        try:
            self._app = firebase_admin.get_app()
            return self._app
        except ValueError:
            pass

        try:
            cred = self._credentials()
        except (ValueError, OSError) as e:
            logger.error("Invalid Firebase credentials: %s", e)
            raise BackendUnavailable('Firebase credentials invalid')

        if cred is None:
            logger.warning(
                "Firebase credentials not found. Push notifications will be disabled. "
                "Set FIREBASE_CREDENTIALS_PATH or FIREBASE_PROJECT_ID/FIREBASE_PRIVATE_KEY/FIREBASE_CLIENT_EMAIL."
            )
            raise BackendUnavailable('Firebase not configured')

        self._app = firebase_admin.initialize_app(cred)
        logger.info("Firebase Admin SDK initialized successfully")
        return self._app

    def send(self, token, title, body, data):
        app = self._get_app()
        from firebase_admin import messaging

        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=data,
            token=token,
        )
        try:
            return messaging.send(message, app=app)
        except messaging.UnregisteredError:
            logger.warning("Push token %s... is unregistered", token[:12])
            raise


class NotificationDispatcher:
    """Fans a message out to recipients through a push backend."""

    def __init__(self, backend: PushBackend):
        self.backend = backend

    @staticmethod
    def _payload(data):
        # FCM data payloads only carry strings
        payload = {k: str(v) for k, v in (data or {}).items() if v is not None}
        payload['click_action'] = 'FLUTTER_NOTIFICATION_CLICK'
        return payload

    def notify_many(self, recipients, title, body, data=None) -> NotificationResult:
        """Send to every recipient; recipients without a token count as failures."""
        result = NotificationResult()
        payload = self._payload(data)

        pending = []
        for recipient in recipients:
            if recipient.push_token:
                pending.append(recipient)
            else:
                result.failure_count += 1

        for index, recipient in enumerate(pending):
            try:
                message_id = self.backend.send(recipient.push_token, title, body, payload)
                logger.info("Sent notification to user %s, response: %s", recipient.id, message_id)
                result.success_count += 1
            except BackendUnavailable as e:
                logger.warning("Cannot send notifications: %s", e.message)
                result.failure_count += len(pending) - index
                result.error = BackendUnavailable.code
                break
            except Exception as e:
                logger.error("Failed to send notification to user %s: %s", recipient.id, e)
                result.failure_count += 1

        if not pending and result.failure_count and result.error is None:
            result.error = 'No push tokens'
        return result

    def notify_one(self, recipient, title, body, data=None) -> bool:
        return self.notify_many([recipient], title, body, data).success_count == 1

    # Message templates

    def request_created(self, recipients, blood_request) -> NotificationResult:
        marker = URGENCY_MARKERS.get(blood_request.urgency, '')
        return self.notify_many(
            recipients,
            title=f"{marker} New Blood Request Nearby".strip(),
            body=f"{blood_request.blood_group} blood needed - {blood_request.hospital_name}",
            data={
                'type': 'blood_request',
                'requestId': blood_request.id,
                'bloodType': blood_request.blood_group,
                'urgency': blood_request.urgency,
            },
        )

    def request_accepted(self, requester, donor, blood_request) -> bool:
        return self.notify_one(
            Recipient(requester.id, requester.push_token),
            title="✅ Blood Request Accepted",
            body=f"{donor.name} has accepted your blood request",
            data={
                'type': 'request_accepted',
                'requestId': blood_request.id,
                'donorId': donor.id,
                'donorName': donor.name,
                'donorPhone': donor.phone,
            },
        )

    def eligibility_reminder(self, donor) -> bool:
        return self.notify_one(
            Recipient(donor.id, donor.push_token),
            title="You are eligible to donate blood again!",
            body="Thank you for being a lifesaver. You can now donate blood again.",
            data={'type': 'eligibility_reminder'},
        )

    def chat_message(self, recipient, sender_name, text, request_id) -> bool:
        body = text if len(text) <= 60 else text[:57] + '...'
        return self.notify_one(
            Recipient(recipient.id, recipient.push_token),
            title=f"New message from {sender_name}",
            body=body,
            data={'type': 'chat_message', 'requestId': request_id},
        )


def recipients_for(users):
    return [Recipient(u.id, u.push_token) for u in users]
