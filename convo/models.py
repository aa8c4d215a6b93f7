"""
================================================================================
CONVO - DATABASE MODELS
================================================================================

@file        models.py
@description Django ORM models for users, threads, events and messages

MODULE PURPOSE
================================================================================
This module defines the data model of the Convo messaging backend:
- User model (extended from AbstractUser) with verified email aliases
- Threads and events, the two kinds of message containers
- Messages posted to a thread or an event
- Per-user read markers shared by all three

DATABASE STRUCTURE
================================================================================
1. Capabilities (abstract)
   - ReadableModel: JSON list of read markers
   - Container: owner, members and child messages (the digestable kind)

2. Users
   - User (AbstractUser extension, contacts via M2M to self)

3. Containers
   - Thread (subject, response count)
   - Event (name, address, start time, RSVPs)

4. Messages
   - Message (authored by a user, child of exactly one container)

MODEL RELATIONSHIPS
================================================================================
User (1) ──────> (N) Thread      (owned_threads)
User (N) <─────> (N) Thread      (threads)
User (1) ──────> (N) Event       (owned_events)
User (N) <─────> (N) Event       (events, rsvped_events)
User (1) ──────> (N) Message     (messages)
Thread (1) ────> (N) Message     (messages)
Event (1) ─────> (N) Message     (messages)
User (N) <─────> (N) User        (contacts / contact_of)

READ MARKERS
================================================================================
Threads, events and messages keep a ``reads`` list of
{"user_id", "timestamp"} objects, at most one per user. Helpers in
convo/read.py mutate the list in memory; the caller saves the entity.

USER LIFECYCLE
================================================================================
- Incomplete: created when someone is invited by email (unusable password)
- Registered: password or OAuth set, and the primary email verified
- Merged away: deleted after its data is moved to another account

================================================================================
"""

import uuid
from urllib.parse import urlencode

import pytz
from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager as BaseUserManager
from django.core import signing
from django.db import models
from django.db.models import Q
from django.urls import reverse
from django.utils import timezone as dj_timezone

from .errors import BadRequest, InvalidState
from .read import clear_reads, mark_as_read

# ============================================================================
# CONSTANTS & CHOICES
# ============================================================================

TIMEZONE_CHOICES = [(tz, tz) for tz in pytz.all_timezones]

VERIFY_EMAIL_SALT = "convo.verify-email"


def new_token():
    return uuid.uuid4().hex


def normalize_email(email):
    return (email or "").strip().lower()


# ============================================================================
# SECTION 1: CAPABILITIES
# ============================================================================

class ReadableModel(models.Model):
    """
    Anything that tracks which users have read it.

    Attributes:
        reads (JSONField): list of {"user_id", "timestamp"} markers
    """

    reads = models.JSONField(
        default=list,
        blank=True,
        help_text="Per-user read markers"
    )

    class Meta:
        abstract = True

    def get_reads(self):
        return list(self.reads or [])

    def set_reads(self, reads):
        self.reads = list(reads)

    def read_user_ids(self):
        return [r["user_id"] for r in self.get_reads()]


class ContainerQuerySet(models.QuerySet):

    def for_user(self, user):
        """Containers the user owns or is a member of, newest first."""
        return self.filter(
            Q(owner=user) | Q(users=user)
        ).distinct().order_by('-created_at', '-pk')


class Container(ReadableModel):
    """
    A thread or an event: something users belong to and post messages in.

    Containers are digestable: they expose a key, a display name and their
    child messages so that unread messages can be collected uniformly.

    Attributes:
        owner (ForeignKey): User who created the container
        users (ManyToManyField): Members
        created_at (DateTimeField): Creation timestamp
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='owned_%(class)ss',
        help_text="User who created this container"
    )
    users = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        blank=True,
        related_name='%(class)ss',
        help_text="Members"
    )
    created_at = models.DateTimeField(
        default=dj_timezone.now,
        help_text="Creation timestamp"
    )

    objects = ContainerQuerySet.as_manager()

    class Meta:
        abstract = True

    def get_key(self):
        """Digest key, unique across threads and events."""
        return (self._meta.model_name, self.pk)

    def get_name(self):
        raise NotImplementedError

    def get_messages(self):
        return list(self.messages.select_related('user').order_by('timestamp', 'pk'))

    def owner_is(self, user):
        return self.owner_id == user.pk

    def has_user(self, user):
        return self.users.filter(pk=user.pk).exists()

    def can_view(self, user):
        return self.owner_is(user) or self.has_user(user)

    def member_ids(self):
        ids = list(self.users.values_list('pk', flat=True))
        if self.owner_id not in ids:
            ids.append(self.owner_id)
        return ids


# ============================================================================
# SECTION 2: USERS
# ============================================================================

class UserManager(BaseUserManager):
    """
    Lookups by email and token plus the three ways a user comes to exist.

    Example:
        user, created = User.objects.get_or_create_by_email("a@b.com")
    """

    def get_by_email(self, email):
        """
        Find the user whose primary email or verified alias is ``email``.

        Returns:
            User or None

        Raises:
            InvalidState: the primary email is shared by several users
        """
        email = normalize_email(email)
        if not email:
            return None

        users = list(self.filter(email=email)[:2])
        if len(users) > 1:
            raise InvalidState(f"email={email} is duplicated")
        if users:
            return users[0]

        # JSON contains is not portable across backends, so narrow down on
        # the serialized text and confirm on the decoded list.
        for candidate in self.filter(emails__icontains=email):
            if candidate.has_email(email):
                return candidate

        return None

    def get_by_token(self, token):
        if not token:
            return None
        return self.filter(token=token).first()

    def get_or_create_by_email(self, email):
        user = self.get_by_email(email)
        if user is not None:
            return user, False
        return self.create_incomplete(email), True

    def create_incomplete(self, email):
        email = normalize_email(email)
        user = self.model(
            username=new_token(),
            email=email,
            first_name=email.split('@')[0],
            verified=False,
        )
        user.set_unusable_password()
        user.save()
        return user

    def create_with_password(self, email, first_name, last_name, password):
        user = self.model(
            username=new_token(),
            email=normalize_email(email),
            first_name=first_name,
            last_name=last_name,
            verified=False,
        )
        user.set_password(password)
        user.save()
        return user

    def create_with_oauth(self, email, first_name, last_name, avatar, provider, oauth_id):
        if provider not in ('google', 'facebook'):
            raise BadRequest(f"{provider!r} is not a valid OAuth provider")

        email = normalize_email(email)
        user = self.model(
            username=new_token(),
            email=email,
            emails=[email],
            first_name=first_name,
            last_name=last_name,
            avatar=avatar or '',
            verified=True,
        )
        if provider == 'google':
            user.oauth_google_id = oauth_id
        else:
            user.oauth_facebook_id = oauth_id
        user.set_unusable_password()
        user.save()
        return user


class User(AbstractUser):
    """
    Convo account.

    Extends Django's AbstractUser with verified email aliases, contacts,
    an API token and linked OAuth identities.

    Attributes:
        emails (JSONField): Verified, lowercase email addresses
        avatar (URLField): Avatar URL
        token (CharField): API token sent as "Authorization: Bearer <token>"
        oauth_google_id (CharField): Linked Google account id
        oauth_facebook_id (CharField): Linked Facebook account id
        verified (BooleanField): Whether the primary email is verified
        is_locked (BooleanField): Locked until the email owner proves control
        contacts (ManyToManyField): Users in this user's address book
        timezone (CharField): Preferred timezone for emails
        created_at (DateTimeField): Creation timestamp

    Properties:
        full_name, is_password_set, is_google_linked, is_facebook_linked,
        is_registered

    Invariant:
        After derive_properties(), verified == has_email(email), and email is
        one of emails whenever any email is verified.
    """

    emails = models.JSONField(
        default=list,
        blank=True,
        help_text="Verified email addresses"
    )
    avatar = models.URLField(
        max_length=500,
        blank=True,
        help_text="Avatar image URL"
    )
    token = models.CharField(
        max_length=64,
        unique=True,
        default=new_token,
        help_text="API token"
    )
    oauth_google_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Linked Google account id"
    )
    oauth_facebook_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Linked Facebook account id"
    )
    verified = models.BooleanField(
        default=False,
        help_text="Primary email is verified"
    )
    is_locked = models.BooleanField(
        default=False,
        help_text="Locked pending email verification"
    )
    contacts = models.ManyToManyField(
        'self',
        symmetrical=False,
        blank=True,
        related_name='contact_of',
        help_text="Users in this user's contact list"
    )
    timezone = models.CharField(
        max_length=100,
        choices=TIMEZONE_CHOICES,
        default='UTC',
        help_text="Preferred timezone for dates in emails"
    )
    created_at = models.DateTimeField(
        default=dj_timezone.now,
        help_text="Creation timestamp"
    )

    objects = UserManager()

    def __str__(self):
        return self.full_name or self.email

    # --- Derived properties ---

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_password_set(self):
        return self.has_usable_password()

    @property
    def is_google_linked(self):
        return bool(self.oauth_google_id)

    @property
    def is_facebook_linked(self):
        return bool(self.oauth_facebook_id)

    @property
    def is_registered(self):
        return (self.is_google_linked or self.is_facebook_linked or self.is_password_set) and self.verified

    def derive_properties(self):
        """
        Restore the email invariants.

        A verified primary email is kept in ``emails``; an unverified primary
        is replaced by the first verified alias when there is one.
        """
        if self.verified and self.email and not self.has_email(self.email):
            self.add_email(self.email)

        if not self.verified and not self.has_email(self.email) and self.emails:
            self.email = self.emails[0]

        self.verified = self.has_email(self.email)

    def save(self, *args, **kwargs):
        self.first_name = (self.first_name or '').strip()
        self.last_name = (self.last_name or '').strip()
        if self.first_name and self.last_name:
            self.first_name = self.first_name.title()
            self.last_name = self.last_name.title()
        self.email = normalize_email(self.email)
        self.derive_properties()
        super().save(*args, **kwargs)

    # --- Emails ---

    def has_email(self, email):
        email = normalize_email(email)
        return bool(email) and email in (self.emails or [])

    def add_email(self, email):
        email = normalize_email(email)
        if not email or self.has_email(email):
            return
        self.emails = list(self.emails or []) + [email]

    def remove_email(self, email):
        email = normalize_email(email)
        if not self.has_email(email):
            return
        if self.email == email:
            raise BadRequest("You cannot remove your primary email")
        self.emails = [e for e in self.emails if e != email]

    def make_email_primary(self, email):
        if not self.has_email(email):
            raise BadRequest("You cannot make an unverified email primary")
        self.email = normalize_email(email)
        self.verified = True

    def get_verify_email_link(self, email):
        """
        Build a signed link that verifies ``email`` for this user.

        The salt embeds whether the address is already verified, so the link
        stops working once it has been used.
        """
        email = normalize_email(email)
        token = signing.dumps(
            {"user_id": self.pk, "email": email},
            salt=self._verify_salt(email),
        )
        query = urlencode({"email": email, "token": token})
        return f"{settings.CONVO_APP_URL}{reverse('verify_email')}?{query}"

    def check_verify_email_token(self, email, token):
        """Return True if ``token`` verifies ``email`` for this user."""
        email = normalize_email(email)
        try:
            payload = signing.loads(
                token,
                salt=self._verify_salt(email),
                max_age=settings.CONVO_MAGIC_LINK_MAX_AGE,
            )
        except signing.BadSignature:
            return False
        return payload.get("user_id") == self.pk and payload.get("email") == email

    def _verify_salt(self, email):
        return f"{VERIFY_EMAIL_SALT}:{email}:{self.has_email(email)}"

    # --- Contacts ---

    def has_contact(self, other):
        return self.contacts.filter(pk=other.pk).exists()

    def add_contact(self, other):
        if self.has_contact(other):
            raise BadRequest("You already have this contact")
        if self.pk == other.pk:
            raise BadRequest("You cannot add yourself as a contact")
        if self.contacts.count() >= settings.CONVO_MAX_CONTACTS:
            raise BadRequest(f"You can have a maximum of {settings.CONVO_MAX_CONTACTS} contacts")
        self.contacts.add(other)

    def remove_contact(self, other):
        if not self.has_contact(other):
            raise BadRequest("You don't have this contact")
        self.contacts.remove(other)


# ============================================================================
# SECTION 3: CONTAINERS
# ============================================================================

class ThreadManager(models.Manager.from_queryset(ContainerQuerySet)):

    def create_thread(self, subject, owner, users):
        """
        Create a thread owned by ``owner`` with ``users`` as members.

        Duplicate users are dropped and the owner is always a member. An
        empty subject is derived from the members' first names.

        Raises:
            BadRequest: more than CONVO_MAX_THREAD_USERS members
        """
        members = []
        seen = set()
        for u in users:
            if u.pk in seen:
                continue
            seen.add(u.pk)
            members.append(u)
        if owner.pk not in seen:
            members.append(owner)

        if len(members) > settings.CONVO_MAX_THREAD_USERS:
            raise BadRequest(
                f"Convos have a maximum of {settings.CONVO_MAX_THREAD_USERS} members")

        if not subject:
            if len(members) == 1:
                subject = f"{owner.first_name}'s Private Convo"
            else:
                names = [m.first_name for m in members]
                subject = f"{', '.join(names[:-1])} and {names[-1]}"

        thread = self.create(subject=subject[:255], owner=owner)
        thread.users.add(*members)
        return thread


class Thread(Container):
    """
    Conversation between a small group of users.

    Attributes:
        subject (CharField): Display name
        response_count (IntegerField): Number of messages posted

    Example:
        thread = Thread.objects.create_thread("Dinner", owner, [alice, bob])
    """

    subject = models.CharField(
        max_length=255,
        blank=True,
        help_text="Thread subject"
    )
    response_count = models.IntegerField(
        default=0,
        help_text="Number of messages in the thread"
    )

    objects = ThreadManager()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.subject or f"Thread #{self.pk}"

    def get_name(self):
        return self.subject


class Event(Container):
    """
    Scheduled gathering with invited guests.

    Attributes:
        name (CharField): Display name
        address (CharField): Where it happens
        description (TextField): Free-form details
        timestamp (DateTimeField): When it starts
        rsvps (ManyToManyField): Guests who said they are coming
    """

    name = models.CharField(
        max_length=255,
        help_text="Event name"
    )
    address = models.CharField(
        max_length=500,
        blank=True,
        help_text="Event address"
    )
    description = models.TextField(
        blank=True,
        help_text="Event description"
    )
    timestamp = models.DateTimeField(
        help_text="Start time"
    )
    rsvps = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        blank=True,
        related_name='rsvped_events',
        help_text="Guests who have RSVP'd"
    )

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.name

    def get_name(self):
        return self.name

    def is_upcoming(self):
        return self.timestamp > dj_timezone.now()

    def has_rsvp(self, user):
        return self.rsvps.filter(pk=user.pk).exists()


# ============================================================================
# SECTION 4: MESSAGES
# ============================================================================

class MessageManager(models.Manager):

    def create_thread_message(self, user, thread, body, photo_key=None):
        """
        Post ``body`` to ``thread``.

        The thread becomes unread for everyone but the poster and its
        response count goes up. The caller saves the thread.
        """
        message = self._new(user, body, photo_key, thread=thread)
        thread.response_count += 1
        clear_reads(thread)
        mark_as_read(thread, user.pk)
        return message

    def create_event_message(self, user, event, body, photo_key=None):
        message = self._new(user, body, photo_key, event=event)
        clear_reads(event)
        mark_as_read(event, user.pk)
        return message

    def _new(self, user, body, photo_key, **parent):
        message = self.model(user=user, body=body, **parent)
        if photo_key:
            message.photo_keys = [photo_key]
        mark_as_read(message, user.pk)
        message.save()
        return message


class Message(ReadableModel):
    """
    Message posted to a thread or an event.

    Exactly one of ``thread`` and ``event`` is set. Messages are immutable
    except for their read markers and photo keys.

    Attributes:
        user (ForeignKey): Author
        thread (ForeignKey): Parent thread, if any
        event (ForeignKey): Parent event, if any
        body (TextField): Message text
        timestamp (DateTimeField): When it was posted
        photo_keys (JSONField): Storage keys of attached photos
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='messages',
        help_text="Author"
    )
    thread = models.ForeignKey(
        Thread,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='messages',
        help_text="Parent thread"
    )
    event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='messages',
        help_text="Parent event"
    )
    body = models.TextField(
        blank=True,
        help_text="Message text"
    )
    timestamp = models.DateTimeField(
        default=dj_timezone.now,
        db_index=True,
        help_text="Creation timestamp"
    )
    photo_keys = models.JSONField(
        default=list,
        blank=True,
        help_text="Storage keys of attached photos"
    )

    objects = MessageManager()

    class Meta:
        ordering = ['timestamp', 'pk']

    def __str__(self):
        return f"{self.user}: {self.body[:30]}"

    @property
    def parent(self):
        return self.thread if self.thread_id else self.event

    @property
    def parent_id(self):
        return self.thread_id or self.event_id

    def owner_is(self, user):
        return self.user_id == user.pk

    def has_photo(self):
        return bool(self.photo_keys)

    def has_photo_key(self, key):
        return key in (self.photo_keys or [])

    def remove_photo_key(self, key):
        self.photo_keys = [k for k in self.photo_keys if k != key]
