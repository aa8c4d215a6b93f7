import itertools
from datetime import timedelta

import pytest
from django.test import Client
from django.utils import timezone

from convo.clients import Resources
from convo.errors import DeliveryFailure
from convo.models import Event, Message, Thread, User

_counter = itertools.count(1)


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeMail:

    def __init__(self):
        self.digests = []
        self.verifications = []
        self.fail = False

    def send_digest(self, items, upcoming, user):
        if self.fail:
            raise DeliveryFailure("mail is down")
        self.digests.append((list(items), list(upcoming), user))

    def send_verify_email(self, user, email, link):
        if self.fail:
            raise DeliveryFailure("mail is down")
        self.verifications.append((user, email, link))


class FakeSearch:

    def __init__(self):
        self.updated = []
        self.deleted = []
        self.results = []

    def update(self, user):
        self.updated.append(user.pk)

    def delete(self, user_id):
        self.deleted.append(user_id)

    def search(self, query, limit=10):
        return list(self.results)


class FakeNotifications:

    def __init__(self):
        self.sent = []

    def generate_token(self, user_id):
        return f"rt-{user_id}"

    def put(self, notification):
        self.sent.append(notification)


class FakeStorage:

    def __init__(self):
        self.deleted = []

    def delete_photo(self, key):
        self.deleted.append(key)
        return True


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def convo_settings(settings):
    settings.SECURE_SSL_REDIRECT = False
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    settings.CONVO_SEARCH_URL = ''
    settings.CONVO_NOTIFICATIONS_URL = ''
    settings.CONVO_TASK_TOKEN = 'task-secret'
    settings.CLOUDINARY_CLOUD_NAME = ''
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    return settings


@pytest.fixture
def resources():
    return Resources(
        mail=FakeMail(),
        search=FakeSearch(),
        notifications=FakeNotifications(),
        storage=FakeStorage(),
    )


@pytest.fixture
def view_resources(resources, monkeypatch):
    monkeypatch.setattr('convo.views.get_resources', lambda: resources)
    return resources


@pytest.fixture
def make_user(db):
    def make(first_name="Test", last_name="User", email=None, registered=True, avatar=''):
        email = email or f"user{next(_counter)}@example.com"
        if registered:
            user = User.objects.create_with_password(email, first_name, last_name, "s3cret-pass!")
            user.add_email(email)
        else:
            user = User.objects.create_incomplete(email)
            user.first_name = first_name
            user.last_name = last_name
        user.avatar = avatar
        user.save()
        return user
    return make


@pytest.fixture
def make_thread(db):
    def make(owner, users=(), subject="Test thread"):
        return Thread.objects.create_thread(subject, owner, list(users))
    return make


@pytest.fixture
def make_event(db):
    def make(owner, users=(), name="Test event", starts_in=timedelta(days=1)):
        event = Event.objects.create(
            name=name,
            owner=owner,
            timestamp=timezone.now() + starts_in,
        )
        event.users.add(owner, *users)
        return event
    return make


@pytest.fixture
def post(db):
    def make(user, container, body="hello"):
        if isinstance(container, Thread):
            message = Message.objects.create_thread_message(user, container, body)
            container.save(update_fields=['response_count', 'reads'])
        else:
            message = Message.objects.create_event_message(user, container, body)
            container.save(update_fields=['reads'])
        return message
    return make


class ApiClient(Client):
    """Test client that sends a user's bearer token."""

    def as_user(self, user):
        self.defaults['HTTP_AUTHORIZATION'] = f"Bearer {user.token}"
        return self

    def json(self, method, path, data=None, **extra):
        return getattr(self, method)(path, data=data, content_type='application/json', **extra)


@pytest.fixture
def api():
    return ApiClient()
