"""
Per-user read markers for threads, events and messages.

A marker is a small JSON object stored in the owning entity's ``reads``
list::

    {"user_id": 42, "timestamp": "2026-02-05T09:30:00+00:00"}

Everything here mutates the entity in memory only. Callers persist.
"""

from django.utils import timezone


def new_read(user_id):
    return {"user_id": user_id, "timestamp": timezone.now().isoformat()}


def is_read(readable, user_id):
    return any(r["user_id"] == user_id for r in readable.get_reads())


def mark_as_read(readable, user_id):
    if is_read(readable, user_id):
        return

    readable.set_reads(readable.get_reads() + [new_read(user_id)])


def clear_reads(readable):
    readable.set_reads([])


def swap_read_users(reads, old_id, new_id):
    """
    Return a copy of ``reads`` with ``old_id`` markers rewritten to ``new_id``.

    The result holds at most one marker per user; when both users had read
    the entity, the earliest marker wins.
    """
    clean = []
    seen = set()
    for r in reads:
        user_id = new_id if r["user_id"] == old_id else r["user_id"]
        if user_id in seen:
            continue
        seen.add(user_id)
        clean.append({**r, "user_id": user_id})

    return clean
