"""
Account merge.

When a user verifies an email address that already belongs to another
account, the other account is folded into theirs: every contact entry,
message, thread and event that references the superseded user is moved to
the survivor, the survivor picks up whatever profile fields it lacks, and
the superseded user is deleted.

All of it happens in one transaction. Each step swaps the superseded user
for the survivor and de-duplicates, so merging two users who already share
a thread leaves the survivor in it exactly once.
"""

import logging

from django.db import DatabaseError
from django.db.models import Q

from .errors import InvalidState, TransactionFailure
from .models import Event, Message, Thread, User
from .read import swap_read_users
from .store import UnitOfWork

logger = logging.getLogger(__name__)


def _swap_member(relation, superseded, survivor):
    if relation.filter(pk=superseded.pk).exists():
        relation.remove(superseded)
        relation.add(survivor)


# ============================================================================
# STEP 1: CONTACTS
# ============================================================================

def _reassign_contacts(uow, superseded, survivor):
    ids = User.objects.filter(contacts=superseded).exclude(
        pk__in=[survivor.pk, superseded.pk]
    ).values_list('pk', flat=True)

    users = uow.get_all(User, pk__in=list(ids))
    for user in users:
        _swap_member(user.contacts, superseded, survivor)

    return len(users)


# ============================================================================
# STEP 2: MESSAGES
# ============================================================================

def _reassign_messages(uow, superseded, survivor):
    thread_ids = list(Thread.objects.filter(users=superseded).values_list('pk', flat=True))
    event_ids = list(Event.objects.filter(users=superseded).values_list('pk', flat=True))

    ids = Message.objects.filter(
        Q(user=superseded) | Q(thread__in=thread_ids) | Q(event__in=event_ids)
    ).values_list('pk', flat=True)

    changed = []
    for message in uow.get_all(Message, pk__in=list(ids)):
        reads = swap_read_users(message.get_reads(), superseded.pk, survivor.pk)
        if message.user_id != superseded.pk and reads == message.get_reads():
            continue
        if message.user_id == superseded.pk:
            message.user = survivor
        message.set_reads(reads)
        changed.append(message)

    uow.put_multi(changed, ['user', 'reads'])
    return len(changed)


# ============================================================================
# STEP 3 & 4: THREADS AND EVENTS
# ============================================================================

def _reassign_container(uow, container, superseded, survivor):
    _swap_member(container.users, superseded, survivor)
    container.set_reads(swap_read_users(container.get_reads(), superseded.pk, survivor.pk))
    if container.owner_id == superseded.pk:
        container.owner = survivor
    uow.put(container, fields=['owner', 'reads'])


def _reassign_threads(uow, superseded, survivor):
    ids = Thread.objects.filter(
        Q(owner=superseded) | Q(users=superseded)
    ).values_list('pk', flat=True)

    threads = uow.get_all(Thread, pk__in=list(ids))
    for thread in threads:
        _reassign_container(uow, thread, superseded, survivor)

    return len(threads)


def _reassign_events(uow, superseded, survivor):
    ids = Event.objects.filter(
        Q(owner=superseded) | Q(users=superseded) | Q(rsvps=superseded)
    ).values_list('pk', flat=True)

    events = uow.get_all(Event, pk__in=list(ids))
    for event in events:
        _swap_member(event.rsvps, superseded, survivor)
        _reassign_container(uow, event, superseded, survivor)

    return len(events)


# ============================================================================
# STEP 5: PROFILE
# ============================================================================

def _merge_profile(superseded, survivor):
    """Fill the survivor's empty fields from the superseded user."""
    if superseded.avatar and not survivor.avatar:
        survivor.avatar = superseded.avatar
    if superseded.first_name and not survivor.first_name:
        survivor.first_name = superseded.first_name
    if superseded.last_name and not survivor.last_name:
        survivor.last_name = superseded.last_name

    for email in superseded.emails or []:
        survivor.add_email(email)

    inherited = superseded.contacts.exclude(pk__in=[survivor.pk, superseded.pk])
    survivor.contacts.add(*inherited)
    survivor.contacts.remove(superseded)


# ============================================================================
# MERGE
# ============================================================================

def merge_users(survivor, superseded, resources):
    """
    Fold ``superseded`` into ``survivor`` and delete ``superseded``.

    ``survivor`` is updated in place. On failure nothing is committed, the
    survivor is reloaded from the database and its search entry refreshed.

    Raises:
        InvalidState: either user is unsaved, or both are the same user
        TransactionFailure: a database error aborted the merge
    """
    if survivor.pk is None or superseded.pk is None:
        raise InvalidState("Cannot merge users that have not been saved")
    if survivor.pk == superseded.pk:
        raise InvalidState("Cannot merge a user into itself")

    superseded_id = superseded.pk
    logger.info(f"Merging user {superseded_id} into user {survivor.pk}")

    try:
        with UnitOfWork() as uow:
            uow.get_all(User, pk__in=[survivor.pk, superseded.pk])

            contacts = _reassign_contacts(uow, superseded, survivor)
            messages = _reassign_messages(uow, superseded, survivor)
            threads = _reassign_threads(uow, superseded, survivor)
            events = _reassign_events(uow, superseded, survivor)

            _merge_profile(superseded, survivor)
            uow.put(survivor)

            if superseded.is_registered:
                resources.search.delete(superseded_id)

            uow.delete(superseded)
    except DatabaseError as e:
        logger.error(f"Merging user {superseded_id} into user {survivor.pk} failed: {e}")
        _restore_survivor(survivor, resources)
        raise TransactionFailure(f"Could not merge user {superseded_id} into user {survivor.pk}") from e
    except Exception:
        logger.exception(f"Merging user {superseded_id} into user {survivor.pk} failed")
        _restore_survivor(survivor, resources)
        raise

    logger.info(
        f"Merged user {superseded_id} into user {survivor.pk}: {contacts} contact lists, "
        f"{messages} messages, {threads} threads, {events} events"
    )
    return survivor


def _restore_survivor(survivor, resources):
    survivor.refresh_from_db()
    resources.search.update(survivor)
