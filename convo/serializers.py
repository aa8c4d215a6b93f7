"""
Plain-dict renderings of models for JsonResponse.
"""


def user_partial(user):
    return {
        "id": user.pk,
        "full_name": user.full_name,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "avatar": user.avatar,
        "is_registered": user.is_registered,
    }


def user_full(user, notification_token=None):
    data = user_partial(user)
    data.update({
        "email": user.email,
        "emails": list(user.emails or []),
        "token": user.token,
        "verified": user.verified,
        "is_locked": user.is_locked,
        "is_password_set": user.is_password_set,
        "is_google_linked": user.is_google_linked,
        "is_facebook_linked": user.is_facebook_linked,
        "timezone": user.timezone,
        "created_at": user.created_at.isoformat(),
    })
    if notification_token is not None:
        data["realtime_token"] = notification_token
    return data


def _container(container):
    return {
        "id": container.pk,
        "owner": user_partial(container.owner),
        "users": [user_partial(u) for u in container.users.order_by('pk')],
        "reads": container.get_reads(),
        "created_at": container.created_at.isoformat(),
    }


def thread(t):
    data = _container(t)
    data.update({
        "subject": t.subject,
        "response_count": t.response_count,
    })
    return data


def event(e):
    data = _container(e)
    data.update({
        "name": e.name,
        "address": e.address,
        "description": e.description,
        "timestamp": e.timestamp.isoformat(),
        "rsvps": [user_partial(u) for u in e.rsvps.order_by('pk')],
        "is_upcoming": e.is_upcoming(),
    })
    return data


def message(m):
    return {
        "id": m.pk,
        "user": user_partial(m.user),
        "parent_id": m.parent_id,
        "body": m.body,
        "timestamp": m.timestamp.isoformat(),
        "photo_keys": list(m.photo_keys or []),
        "reads": m.get_reads(),
    }
