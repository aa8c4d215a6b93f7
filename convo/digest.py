"""
Daily digest of unread messages.

For one user, the digest collects the unread messages of every thread and
event they belong to, emails them together with the user's upcoming events,
and only then marks the emailed messages as read. A failed delivery leaves
every read marker untouched so the next run sends the same digest again.
"""

import logging

from .errors import NothingToDigest
from .models import Event, Thread, User
from .read import is_read, mark_as_read
from .store import UnitOfWork

logger = logging.getLogger(__name__)


class DigestItem:
    """Unread messages of one thread or event."""

    def __init__(self, parent_id, name, messages):
        self.parent_id = parent_id
        self.name = name
        self.messages = messages

    def __repr__(self):
        return f"DigestItem(parent_id={self.parent_id!r}, name={self.name!r}, messages={len(self.messages)})"

    def __eq__(self, other):
        if not isinstance(other, DigestItem):
            return NotImplemented
        return (
            self.parent_id == other.parent_id
            and self.name == other.name
            and [m.pk for m in self.messages] == [m.pk for m in other.messages]
        )


def generate_digest_item(container, user):
    """
    Build the digest item for ``container``.

    Raises:
        NothingToDigest: every message in the container is read by ``user``
    """
    unread = [m for m in container.get_messages() if not is_read(m, user.pk)]
    if not unread:
        raise NothingToDigest(f"{container} has no unread messages for user {user.pk}")

    return DigestItem(container.get_key(), container.get_name(), unread)


def generate_digest_list(containers, user):
    items = []
    for container in containers:
        try:
            items.append(generate_digest_item(container, user))
        except NothingToDigest:
            continue
    return items


def mark_digested_messages_as_read(items, user):
    messages = []
    for item in items:
        for message in item.messages:
            mark_as_read(message, user.pk)
            messages.append(message)

    with UnitOfWork() as uow:
        uow.put_multi(messages, ['reads'])


def run_digest_for_user(user, resources):
    """
    Send ``user`` their digest and mark what was sent as read.

    Returns:
        list[DigestItem]: the items that were emailed, possibly empty

    Raises:
        DeliveryFailure: nothing was marked read
        DatabaseError: fetching messages or writing the read markers failed
    """
    events = list(Event.objects.for_user(user))
    threads = list(Thread.objects.for_user(user))

    candidates = []
    upcoming = []
    for event in events:
        if not is_read(event, user.pk):
            candidates.append(event)
        if event.is_upcoming():
            upcoming.append(event)

    for thread in threads:
        if not is_read(thread, user.pk):
            candidates.append(thread)

    items = generate_digest_list(candidates, user)

    if not items and not upcoming:
        logger.info(f"Nothing to digest for user {user.pk}")
        return []

    resources.mail.send_digest(items, upcoming, user)
    mark_digested_messages_as_read(items, user)

    count = sum(len(item.messages) for item in items)
    logger.info(f"Sent digest to user {user.pk}: {len(items)} items, {count} messages, {len(upcoming)} upcoming events")
    return items


def run_digests(resources):
    """
    Run the digest for every registered user.

    One user's failure is logged and counted without stopping the batch.

    Returns:
        tuple: (users digested, users that failed)
    """
    sent = 0
    failed = 0
    for user in User.objects.filter(verified=True, is_active=True).order_by('pk').iterator():
        if not user.is_registered:
            continue
        try:
            run_digest_for_user(user, resources)
        except Exception:
            logger.exception(f"Digest failed for user {user.pk}")
            failed += 1
            continue
        sent += 1

    logger.info(f"Digest run finished: {sent} users ok, {failed} failed")
    return sent, failed
