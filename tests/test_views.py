from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from django.utils import timezone

from convo.models import Event, Message, Thread, User
from convo.read import is_read


@pytest.fixture
def alice(make_user):
    return make_user(first_name="Alice", email="alice@example.com")


@pytest.fixture
def bob(make_user):
    return make_user(first_name="Bob", email="bob@example.com")


# ============================================================================
# AUTH
# ============================================================================

@pytest.mark.django_db
def test_requests_without_token_are_unauthorized(api):
    response = api.get("/threads")
    assert response.status_code == 401
    assert response.json() == {"message": "Unauthorized"}


@pytest.mark.django_db
def test_unknown_token_is_unauthorized(api):
    api.defaults["HTTP_AUTHORIZATION"] = "Bearer nope"
    assert api.get("/users").status_code == 401


def test_current_user(api, alice, view_resources):
    response = api.as_user(alice).get("/users")
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "alice@example.com"
    assert data["realtime_token"] == f"rt-{alice.pk}"
    assert data["is_registered"] is True


def test_update_current_user(api, alice, view_resources):
    response = api.as_user(alice).json("patch", "/users", {"last_name": "Smith", "timezone": "Europe/Paris"})
    assert response.status_code == 200
    alice.refresh_from_db()
    assert alice.last_name == "Smith"
    assert alice.timezone == "Europe/Paris"
    assert view_resources.search.updated == [alice.pk]

    response = api.json("patch", "/users", {"timezone": "Mars/Olympus"})
    assert response.status_code == 400


def test_method_not_allowed(api, alice):
    assert api.as_user(alice).put("/threads").status_code == 405


def test_invalid_json(api, alice):
    response = api.as_user(alice).post("/threads", data="{nope", content_type="application/json")
    assert response.status_code == 400


# ============================================================================
# THREADS
# ============================================================================

def test_create_thread_with_ids_and_emails(api, alice, bob):
    payload = {"users": [{"id": bob.pk}, {"id": bob.pk}, {"email": "Carol@Example.com"}]}
    response = api.as_user(alice).json("post", "/threads", payload)

    assert response.status_code == 201
    thread = Thread.objects.get(pk=response.json()["id"])
    carol = User.objects.get(email="carol@example.com")
    assert not carol.is_registered
    assert sorted(thread.users.values_list("pk", flat=True)) == sorted([alice.pk, bob.pk, carol.pk])
    assert thread.owner == alice
    assert thread.subject == "Bob, carol and Alice"


def test_create_thread_rejects_too_many_members(api, alice, settings):
    users = [{"email": f"guest{i}@example.com"} for i in range(settings.CONVO_MAX_THREAD_USERS)]
    response = api.as_user(alice).json("post", "/threads", {"subject": "Party", "users": users})
    assert response.status_code == 400
    assert not Thread.objects.exists()


def test_create_thread_rejects_unknown_ids(api, alice):
    response = api.as_user(alice).json("post", "/threads", {"users": [{"id": 999999}]})
    assert response.status_code == 400


def test_non_members_get_404(api, alice, bob, make_thread, make_user):
    thread = make_thread(alice, [bob])
    stranger = make_user()
    api.as_user(stranger)

    assert api.get(f"/threads/{thread.pk}").status_code == 404
    assert api.get(f"/threads/{thread.pk}/messages").status_code == 404
    assert api.json("post", f"/threads/{thread.pk}/messages", {"body": "hi"}).status_code == 404
    assert api.post(f"/threads/{thread.pk}/reads").status_code == 404
    assert api.get("/threads/424242").status_code == 404


def test_list_threads(api, alice, bob, make_thread):
    mine = make_thread(alice, [bob])
    make_thread(bob, [])

    response = api.as_user(alice).get("/threads")
    assert [t["id"] for t in response.json()["threads"]] == [mine.pk]


def test_post_message_to_thread(api, alice, bob, make_thread, post, view_resources):
    thread = make_thread(alice, [bob], subject="Plans")
    post(alice, thread, "first")

    response = api.as_user(bob).json("post", f"/threads/{thread.pk}/messages", {"body": "second"})

    assert response.status_code == 201
    assert response.json()["body"] == "second"
    thread.refresh_from_db()
    assert thread.response_count == 2
    assert is_read(thread, bob.pk)
    assert not is_read(thread, alice.pk)

    [notification] = view_resources.notifications.sent
    assert notification["user_ids"] == [alice.pk]
    assert notification["target_id"] == thread.pk
    assert notification["target_name"] == "Plans"


def test_post_empty_message(api, alice, make_thread):
    thread = make_thread(alice)
    response = api.as_user(alice).json("post", f"/threads/{thread.pk}/messages", {"body": "  "})
    assert response.status_code == 400


def test_head_message_cannot_be_deleted(api, alice, bob, make_thread, post):
    thread = make_thread(alice, [bob])
    head = post(alice, thread, "head")
    reply = post(alice, thread, "reply")
    other = post(bob, thread, "bob's")
    api.as_user(alice)

    assert api.delete(f"/threads/{thread.pk}/messages/{head.pk}").status_code == 400
    assert api.delete(f"/threads/{thread.pk}/messages/{other.pk}").status_code == 404

    response = api.delete(f"/threads/{thread.pk}/messages/{reply.pk}")
    assert response.status_code == 200
    assert not Message.objects.filter(pk=reply.pk).exists()
    thread.refresh_from_db()
    assert thread.response_count == 2


def test_mark_thread_read(api, alice, bob, make_thread, post):
    thread = make_thread(alice, [bob])
    messages = [post(alice, thread, str(i)) for i in range(2)]

    response = api.as_user(bob).post(f"/threads/{thread.pk}/reads")

    assert response.status_code == 200
    thread.refresh_from_db()
    assert is_read(thread, bob.pk)
    for m in Message.objects.filter(pk__in=[m.pk for m in messages]):
        assert is_read(m, bob.pk)


def test_only_owner_deletes_thread(api, alice, bob, make_thread):
    thread = make_thread(alice, [bob])
    assert api.as_user(bob).delete(f"/threads/{thread.pk}").status_code == 404
    assert api.as_user(alice).delete(f"/threads/{thread.pk}").status_code == 200
    assert not Thread.objects.filter(pk=thread.pk).exists()


# ============================================================================
# EVENTS
# ============================================================================

def test_create_event(api, alice, bob):
    starts = (timezone.now() + timedelta(days=2)).isoformat()
    payload = {"name": "Picnic", "address": "The park", "timestamp": starts, "users": [{"id": bob.pk}]}

    response = api.as_user(alice).json("post", "/events", payload)

    assert response.status_code == 201
    event = Event.objects.get(pk=response.json()["id"])
    assert event.is_upcoming()
    assert sorted(event.users.values_list("pk", flat=True)) == sorted([alice.pk, bob.pk])


def test_create_event_requires_timestamp(api, alice):
    response = api.as_user(alice).json("post", "/events", {"name": "Picnic", "timestamp": "tomorrow"})
    assert response.status_code == 400


@pytest.mark.parametrize("field, value", [
    ("timestamp", "2026-02-30T10:00:00"),
    ("timestamp", 12345),
    ("timestamp", None),
    ("address", 42),
    ("description", ["a", "b"]),
    ("name", 7),
    ("name", "   "),
    ("name", "x" * 256),
])
def test_create_event_rejects_malformed_fields(api, alice, field, value):
    starts = (timezone.now() + timedelta(days=2)).isoformat()
    payload = {"name": "Picnic", "timestamp": starts}
    payload[field] = value

    response = api.as_user(alice).json("post", "/events", payload)

    assert response.status_code == 400
    assert field in response.json()["message"]
    assert not Event.objects.exists()


def test_create_event_treats_null_text_as_empty(api, alice):
    starts = (timezone.now() + timedelta(days=2)).isoformat()
    payload = {"name": "Picnic", "timestamp": starts, "address": None, "description": None}

    response = api.as_user(alice).json("post", "/events", payload)

    assert response.status_code == 201
    event = Event.objects.get(pk=response.json()["id"])
    assert event.address == ""
    assert event.description == ""


def test_create_thread_rejects_non_string_subject(api, alice, bob):
    response = api.as_user(alice).json("post", "/threads", {"subject": 5, "users": [{"id": bob.pk}]})
    assert response.status_code == 400
    assert not Thread.objects.exists()


def test_create_thread_rejects_non_string_email(api, alice):
    response = api.as_user(alice).json("post", "/threads", {"users": [{"email": ["x@example.com"]}]})
    assert response.status_code == 400


def test_post_non_string_body(api, alice, bob, make_thread, make_event):
    thread = make_thread(alice, [bob])
    event = make_event(alice, [bob])
    client = api.as_user(alice)

    assert client.json("post", f"/threads/{thread.pk}/messages", {"body": 12}).status_code == 400
    assert client.json("post", f"/events/{event.pk}/messages", {"body": {"text": "hi"}}).status_code == 400
    assert not Message.objects.exists()


def test_patch_user_rejects_non_string_name(api, alice, view_resources):
    response = api.as_user(alice).json("patch", "/users", {"first_name": 3})
    assert response.status_code == 400
    alice.refresh_from_db()
    assert alice.first_name == "Alice"


def test_event_messages_and_rsvps(api, alice, bob, make_event, view_resources):
    event = make_event(alice, [bob])
    api.as_user(bob)

    response = api.json("post", f"/events/{event.pk}/messages", {"body": "Count me in"})
    assert response.status_code == 201
    event.refresh_from_db()
    assert is_read(event, bob.pk)

    assert api.post(f"/events/{event.pk}/rsvps").status_code == 200
    assert event.has_rsvp(bob)
    assert api.delete(f"/events/{event.pk}/rsvps").status_code == 200
    assert not event.has_rsvp(bob)


def test_cannot_rsvp_to_past_event(api, alice, make_event):
    event = make_event(alice, starts_in=-timedelta(days=1))
    assert api.as_user(alice).post(f"/events/{event.pk}/rsvps").status_code == 400


def test_mark_event_read(api, alice, bob, make_event, post):
    event = make_event(alice, [bob])
    message = post(alice, event)

    assert api.as_user(bob).post(f"/events/{event.pk}/reads").status_code == 200
    message.refresh_from_db()
    assert is_read(message, bob.pk)


# ============================================================================
# PHOTOS
# ============================================================================

def test_delete_photo(api, alice, make_thread, view_resources):
    thread = make_thread(alice)
    message = Message.objects.create_thread_message(alice, thread, "look", photo_key="convo/abc123")
    api.as_user(alice)

    response = api.json("delete", f"/messages/{message.pk}/photos", {"key": "convo/other"})
    assert response.status_code == 400

    response = api.json("delete", f"/messages/{message.pk}/photos", {"key": "convo/abc123"})
    assert response.status_code == 200
    message.refresh_from_db()
    assert message.photo_keys == []
    assert view_resources.storage.deleted == ["convo/abc123"]


# ============================================================================
# CONTACTS
# ============================================================================

def test_add_and_remove_contact(api, alice, bob):
    api.as_user(alice)

    assert api.post(f"/contacts/{bob.pk}").status_code == 201
    assert api.post(f"/contacts/{bob.pk}").status_code == 400
    assert api.post(f"/contacts/{alice.pk}").status_code == 400
    assert [c["id"] for c in api.get("/contacts").json()["contacts"]] == [bob.pk]

    assert api.delete(f"/contacts/{bob.pk}").status_code == 200
    assert api.get("/contacts").json()["contacts"] == []
    assert api.post("/contacts/999999").status_code == 404


def test_unregistered_users_cannot_add_contacts(api, bob, make_user):
    guest = make_user(registered=False)
    assert api.as_user(guest).post(f"/contacts/{bob.pk}").status_code == 400


# ============================================================================
# USERS
# ============================================================================

def test_user_detail_is_partial(api, alice, bob):
    data = api.as_user(alice).get(f"/users/{bob.pk}").json()
    assert data["first_name"] == "Bob"
    assert "email" not in data
    assert "token" not in data


def test_user_search(api, alice, bob, view_resources):
    view_resources.search.results = [bob.pk, alice.pk, 999999]
    data = api.as_user(alice).get("/users/search", {"query": "bo"}).json()
    assert [u["id"] for u in data["users"]] == [bob.pk]


def test_add_email_sends_verification(api, alice, view_resources):
    response = api.as_user(alice).json("post", "/users/emails", {"email": "alice2@example.com"})

    assert response.status_code == 200
    [(user, email, link)] = view_resources.mail.verifications
    assert user == alice
    assert email == "alice2@example.com"
    assert "/users/verify?" in link


def test_remove_and_promote_emails(api, alice):
    alice.add_email("alt@example.com")
    alice.save()
    api.as_user(alice)

    assert api.json("delete", "/users/emails", {"email": "alice@example.com"}).status_code == 400
    assert api.json("patch", "/users/emails", {"email": "nope@example.com"}).status_code == 400

    response = api.json("patch", "/users/emails", {"email": "alt@example.com"})
    assert response.json()["email"] == "alt@example.com"

    response = api.json("delete", "/users/emails", {"email": "alice@example.com"})
    assert response.json()["emails"] == ["alt@example.com"]


def test_verify_email_merges_the_other_account(api, alice, bob, make_thread, view_resources):
    thread = make_thread(bob, [])
    link = alice.get_verify_email_link("bob@example.com")
    token = parse_qs(urlparse(link).query)["token"][0]

    response = api.as_user(alice).json("post", "/users/verify", {"email": "bob@example.com", "token": token})

    assert response.status_code == 200
    assert "bob@example.com" in response.json()["emails"]
    assert not User.objects.filter(pk=bob.pk).exists()
    thread.refresh_from_db()
    assert thread.owner == alice

    again = api.json("post", "/users/verify", {"email": "bob@example.com", "token": token})
    assert again.status_code == 401


def test_verify_email_rejects_bad_token(api, alice):
    response = api.as_user(alice).json("post", "/users/verify", {"email": "x@example.com", "token": "forged"})
    assert response.status_code == 401


# ============================================================================
# TASKS
# ============================================================================

def test_digest_task_requires_task_token(api, alice, bob, make_thread, post, view_resources):
    thread = make_thread(alice, [bob])
    post(alice, thread)

    assert api.post("/tasks/digest").status_code == 401

    response = api.post("/tasks/digest", HTTP_X_CONVO_TASK_TOKEN="task-secret")
    assert response.status_code == 200
    assert response.json() == {"sent": 2, "failed": 0}
    assert len(view_resources.mail.digests) == 1
