"""
================================================================================
CONVO - URL CONFIGURATION
================================================================================

@file        urls.py
@description JSON API routes

URL STRUCTURE OVERVIEW
================================================================================
1. Threads (list, create, detail, messages, reads)
2. Events (list, create, detail, messages, reads, RSVPs)
3. Messages (photo removal)
4. Contacts (list, add, remove)
5. Users (current user, partial profile, search, emails, verification)
6. Tasks (digest trigger)

Every route is handled by a view wrapped in ``api_view``; non-members of a
thread or event get 404 from all container routes.

================================================================================
"""

from django.urls import path

from . import views


urlpatterns = [

    # ========================================================================
    # SECTION 1: THREADS
    # ========================================================================

    path("threads", views.threads, name="threads"),
    path("threads/<int:thread_id>", views.thread_detail, name="thread_detail"),
    path("threads/<int:thread_id>/messages", views.thread_messages, name="thread_messages"),
    path(
        "threads/<int:thread_id>/messages/<int:message_id>",
        views.thread_message_detail,
        name="thread_message_detail"
    ),
    path("threads/<int:thread_id>/reads", views.thread_reads, name="thread_reads"),

    # ========================================================================
    # SECTION 2: EVENTS
    # ========================================================================

    path("events", views.events, name="events"),
    path("events/<int:event_id>", views.event_detail, name="event_detail"),
    path("events/<int:event_id>/messages", views.event_messages, name="event_messages"),
    path(
        "events/<int:event_id>/messages/<int:message_id>",
        views.event_message_detail,
        name="event_message_detail"
    ),
    path("events/<int:event_id>/reads", views.event_reads, name="event_reads"),
    path("events/<int:event_id>/rsvps", views.event_rsvps, name="event_rsvps"),

    # ========================================================================
    # SECTION 3: MESSAGES
    # ========================================================================

    path("messages/<int:message_id>/photos", views.message_photos, name="message_photos"),

    # ========================================================================
    # SECTION 4: CONTACTS
    # ========================================================================

    path("contacts", views.contacts, name="contacts"),
    path("contacts/<int:user_id>", views.contact_detail, name="contact_detail"),

    # ========================================================================
    # SECTION 5: USERS
    # ========================================================================

    path("users", views.current_user, name="current_user"),
    path("users/search", views.user_search, name="user_search"),
    path("users/emails", views.user_emails, name="user_emails"),
    path("users/verify", views.verify_email, name="verify_email"),
    path("users/<int:user_id>", views.user_detail, name="user_detail"),

    # ========================================================================
    # SECTION 6: TASKS
    # ========================================================================

    path("tasks/digest", views.digest_task, name="digest_task"),
]
