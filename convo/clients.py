"""
Collaborators used by the digest and merge engines and by the views.

Each client talks to one outside service. The search and notification
clients fall back to logging when no endpoint is configured, and the
storage client does the same when Cloudinary is not set up, so a
development checkout runs without any of them.
"""

import logging

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import requests
from django.conf import settings
from django.core import signing

from .mail import MailClient

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5
NOTIFICATION_TOKEN_SALT = "convo.notifications"


# ============================================================================
# SEARCH
# ============================================================================

def user_document(user):
    return {
        "id": user.pk,
        "email": user.email,
        "emails": list(user.emails or []),
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "avatar": user.avatar,
        "is_registered": user.is_registered,
    }


class SearchClient:
    """
    User search index on an Elasticsearch-compatible REST endpoint.

    ``update`` and ``delete`` never raise: the index is allowed to lag
    behind the database.
    """

    def __init__(self, base_url):
        self.base_url = base_url.rstrip('/')

    def _doc_url(self, user_id):
        return f"{self.base_url}/users/_doc/{user_id}"

    def update(self, user):
        try:
            resp = requests.put(self._doc_url(user.pk), json=user_document(user), timeout=REQUEST_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to index user {user.pk}: {e}")

    def delete(self, user_id):
        try:
            resp = requests.delete(self._doc_url(user_id), timeout=REQUEST_TIMEOUT)
            if resp.status_code != 404:
                resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to remove user {user_id} from the index: {e}")

    def search(self, query, limit=10):
        """Return the ids of users matching ``query``, best match first."""
        body = {
            "size": limit,
            "query": {
                "multi_match": {
                    "query": query,
                    "type": "phrase_prefix",
                    "fields": ["full_name", "email", "emails"],
                }
            },
        }
        resp = requests.post(f"{self.base_url}/users/_search", json=body, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        hits = resp.json().get("hits", {}).get("hits", [])
        return [int(hit["_id"]) for hit in hits]


class LoggingSearchClient:
    """Search client used when no index is configured."""

    def update(self, user):
        logger.info(f"Search index update for user {user.pk} skipped (no index configured)")

    def delete(self, user_id):
        logger.info(f"Search index delete for user {user_id} skipped (no index configured)")

    def search(self, query, limit=10):
        from .models import User

        users = User.objects.filter(first_name__icontains=query) | User.objects.filter(email__icontains=query)
        return list(users.order_by('pk').values_list('pk', flat=True)[:limit])


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationClient:
    """
    Realtime notifications.

    Tokens are signed user ids a realtime gateway can verify with the shared
    secret. Notifications are POSTed to a webhook, or only logged when none
    is configured.
    """

    def __init__(self, webhook_url=None):
        self.webhook_url = webhook_url

    def generate_token(self, user_id):
        return signing.dumps({"user_id": user_id}, salt=NOTIFICATION_TOKEN_SALT)

    def verify_token(self, token):
        try:
            return signing.loads(token, salt=NOTIFICATION_TOKEN_SALT)["user_id"]
        except signing.BadSignature:
            return None

    def put(self, notification):
        if not self.webhook_url:
            logger.info(f"Notification {notification.get('type')} for users {notification.get('user_ids')}")
            return

        try:
            resp = requests.post(self.webhook_url, json=notification, timeout=REQUEST_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Failed to send notification {notification.get('type')}: {e}")


# ============================================================================
# PHOTO STORAGE
# ============================================================================

class StorageClient:
    """Deletes photo blobs from Cloudinary."""

    def __init__(self, cloud_name, api_key, api_secret):
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def delete_photo(self, key):
        try:
            result = cloudinary.uploader.destroy(key)
        except cloudinary.exceptions.Error as e:
            logger.warning(f"Failed to delete photo {key}: {e}")
            return False
        return result.get("result") == "ok"


class LoggingStorageClient:

    def delete_photo(self, key):
        logger.info(f"Photo {key} not deleted (no storage configured)")
        return False


# ============================================================================
# RESOURCES
# ============================================================================

class Resources:
    """
    The collaborators a unit of work needs.

    Built once per request or command run and passed explicitly into the
    engines.
    """

    def __init__(self, mail, search, notifications, storage):
        self.mail = mail
        self.search = search
        self.notifications = notifications
        self.storage = storage

    @classmethod
    def from_settings(cls):
        if settings.CONVO_SEARCH_URL:
            search = SearchClient(settings.CONVO_SEARCH_URL)
        else:
            search = LoggingSearchClient()

        if settings.CLOUDINARY_CLOUD_NAME:
            storage = StorageClient(
                settings.CLOUDINARY_CLOUD_NAME,
                settings.CLOUDINARY_API_KEY,
                settings.CLOUDINARY_API_SECRET,
            )
        else:
            storage = LoggingStorageClient()

        return cls(
            mail=MailClient(settings.CONVO_FROM_EMAIL, settings.CONVO_FROM_NAME),
            search=search,
            notifications=NotificationClient(settings.CONVO_NOTIFICATIONS_URL),
            storage=storage,
        )
