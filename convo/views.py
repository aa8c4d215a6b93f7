import json
import logging
from functools import wraps

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.core.paginator import Paginator
from django.db import transaction
from django.http import JsonResponse
from django.utils import timezone
from django.utils.crypto import constant_time_compare
from django.utils.dateparse import parse_datetime
from django.views.decorators.csrf import csrf_exempt

from . import serializers
from .clients import Resources
from .digest import run_digests
from .errors import BadRequest, ConvoError, NotFound, Unauthorized
from .merge import merge_users
from .models import Event, Message, Thread, User, normalize_email
from .read import mark_as_read

# Logger
logger = logging.getLogger(__name__)

PAGE_SIZE = 20


# ============================================================================
# HELPERS
# ============================================================================

def api_view(methods, auth=True):
    """
    Turn a function into a JSON endpoint.

    Rejects other methods with 405, anonymous requests with 401 (when
    ``auth``), parses the JSON body into ``request.data`` and renders
    ConvoError as ``{"message": ...}`` with the error's status.
    """
    def decorator(view):
        @csrf_exempt
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            if request.method not in methods:
                return JsonResponse({"message": f"{request.method} not allowed"}, status=405)

            if auth and not request.user.is_authenticated:
                return JsonResponse({"message": Unauthorized.default_message}, status=401)

            request.data = {}
            if request.body and request.content_type == 'application/json':
                try:
                    request.data = json.loads(request.body)
                except ValueError:
                    return JsonResponse({"message": "Invalid JSON body"}, status=400)
                if not isinstance(request.data, dict):
                    return JsonResponse({"message": "Expected a JSON object"}, status=400)

            try:
                return view(request, *args, **kwargs)
            except ConvoError as e:
                if e.status >= 500:
                    logger.error(f"{view.__name__} failed: {e.message}")
                return JsonResponse({"message": e.message}, status=e.status)
            except ObjectDoesNotExist as e:
                return JsonResponse({"message": str(e) or NotFound.default_message}, status=404)
            except ValidationError as e:
                return JsonResponse({"message": "; ".join(e.messages)}, status=400)

        return wrapper
    return decorator


def get_resources():
    return Resources.from_settings()


def page_of(request, queryset):
    try:
        page = int(request.GET.get('page', 1))
    except ValueError:
        raise BadRequest("page must be a number")
    return Paginator(queryset, PAGE_SIZE).get_page(page)


def text_field(data, name, required=False, max_length=None):
    """A stripped string from the JSON body; null and missing become ''."""
    value = data.get(name)
    if value is None:
        value = ''
    if not isinstance(value, str):
        raise BadRequest(f"{name} must be a string")
    value = value.strip()
    if required and not value:
        raise BadRequest(f"{name} is required")
    if max_length is not None and len(value) > max_length:
        raise BadRequest(f"{name} must be at most {max_length} characters")
    return value


def datetime_field(data, name):
    value = data.get(name)
    if not isinstance(value, str):
        raise BadRequest(f"{name} must be an ISO 8601 datetime")
    try:
        parsed = parse_datetime(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise BadRequest(f"{name} must be an ISO 8601 datetime")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def get_container(model, pk, user):
    try:
        container = model.objects.get(pk=pk)
    except model.DoesNotExist:
        raise NotFound(f"{model.__name__} not found")
    if not container.can_view(user):
        raise NotFound(f"{model.__name__} not found")
    return container


def get_child_message(container, message_id):
    try:
        return container.messages.get(pk=message_id)
    except Message.DoesNotExist:
        raise NotFound("Message not found")


def resolve_users(entries):
    """Users for a list of {"id": ...} or {"email": ...} entries."""
    if not isinstance(entries, list):
        raise BadRequest("users must be a list")

    users = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise BadRequest("Each user must be an object with an id or an email")
        if entry.get('id'):
            try:
                users.append(User.objects.get(pk=entry['id']))
            except (User.DoesNotExist, TypeError, ValueError):
                raise BadRequest(f"User {entry['id']} does not exist")
        elif entry.get('email'):
            user, created = User.objects.get_or_create_by_email(text_field(entry, 'email'))
            if created:
                logger.info(f"Created incomplete user {user.pk} for {user.email}")
            users.append(user)
        else:
            raise BadRequest("Each user must have an id or an email")
    return users


def notify(resources, container, actor, verb):
    user_ids = [pk for pk in container.member_ids() if pk != actor.pk]
    resources.notifications.put({
        "type": verb,
        "user_ids": user_ids,
        "actor": actor.full_name,
        "target": type(container).__name__.lower(),
        "target_id": container.pk,
        "target_name": container.get_name(),
    })


def mark_container_read(container, user):
    messages = container.get_messages()
    for m in messages:
        mark_as_read(m, user.pk)
    Message.objects.bulk_update(messages, ['reads'])
    mark_as_read(container, user.pk)
    container.save(update_fields=['reads'])


# ============================================================================
# THREADS
# ============================================================================

@api_view(["GET", "POST"])
def threads(request):
    if request.method == "POST":
        subject = text_field(request.data, 'subject', max_length=255)
        users = resolve_users(request.data.get('users', []))
        with transaction.atomic():
            thread = Thread.objects.create_thread(subject, request.user, users)
        logger.info(f"User {request.user.pk} created thread {thread.pk}")
        return JsonResponse(serializers.thread(thread), status=201)

    page = page_of(request, Thread.objects.for_user(request.user))
    return JsonResponse({"threads": [serializers.thread(t) for t in page]})


@api_view(["GET", "DELETE"])
def thread_detail(request, thread_id):
    thread = get_container(Thread, thread_id, request.user)

    if request.method == "DELETE":
        if not thread.owner_is(request.user):
            raise NotFound("Thread not found")
        data = serializers.thread(thread)
        thread.delete()
        return JsonResponse(data)

    return JsonResponse(serializers.thread(thread))


@api_view(["GET", "POST"])
def thread_messages(request, thread_id):
    thread = get_container(Thread, thread_id, request.user)

    if request.method == "POST":
        body = text_field(request.data, 'body')
        photo_key = text_field(request.data, 'photo_key') or None
        if not body and not photo_key:
            raise BadRequest("Message body is required")

        with transaction.atomic():
            message = Message.objects.create_thread_message(request.user, thread, body, photo_key)
            thread.save(update_fields=['response_count', 'reads'])

        notify(get_resources(), thread, request.user, "new_message")
        return JsonResponse(serializers.message(message), status=201)

    return JsonResponse({"messages": [serializers.message(m) for m in thread.get_messages()]})


@api_view(["DELETE"])
def thread_message_detail(request, thread_id, message_id):
    thread = get_container(Thread, thread_id, request.user)
    message = get_child_message(thread, message_id)

    if not message.owner_is(request.user):
        raise NotFound("Message not found")

    head = thread.messages.order_by('timestamp', 'pk').first()
    if head.pk == message.pk:
        raise BadRequest("You cannot delete this message")

    data = serializers.message(message)
    with transaction.atomic():
        message.delete()
        thread.response_count -= 1
        thread.save(update_fields=['response_count'])
    return JsonResponse(data)


@api_view(["POST"])
def thread_reads(request, thread_id):
    thread = get_container(Thread, thread_id, request.user)
    with transaction.atomic():
        mark_container_read(thread, request.user)
    return JsonResponse(serializers.thread(thread))


# ============================================================================
# EVENTS
# ============================================================================

@api_view(["GET", "POST"])
def events(request):
    if request.method == "POST":
        name = text_field(request.data, 'name', required=True, max_length=255)
        address = text_field(request.data, 'address', max_length=500)
        description = text_field(request.data, 'description')
        timestamp = datetime_field(request.data, 'timestamp')

        users = resolve_users(request.data.get('users', []))
        with transaction.atomic():
            event = Event.objects.create(
                name=name,
                address=address,
                description=description,
                timestamp=timestamp,
                owner=request.user,
            )
            event.users.add(request.user, *users)

        logger.info(f"User {request.user.pk} created event {event.pk}")
        return JsonResponse(serializers.event(event), status=201)

    page = page_of(request, Event.objects.for_user(request.user))
    return JsonResponse({"events": [serializers.event(e) for e in page]})


@api_view(["GET", "DELETE"])
def event_detail(request, event_id):
    event = get_container(Event, event_id, request.user)

    if request.method == "DELETE":
        if not event.owner_is(request.user):
            raise NotFound("Event not found")
        data = serializers.event(event)
        event.delete()
        return JsonResponse(data)

    return JsonResponse(serializers.event(event))


@api_view(["GET", "POST"])
def event_messages(request, event_id):
    event = get_container(Event, event_id, request.user)

    if request.method == "POST":
        body = text_field(request.data, 'body')
        photo_key = text_field(request.data, 'photo_key') or None
        if not body and not photo_key:
            raise BadRequest("Message body is required")

        with transaction.atomic():
            message = Message.objects.create_event_message(request.user, event, body, photo_key)
            event.save(update_fields=['reads'])

        notify(get_resources(), event, request.user, "new_message")
        return JsonResponse(serializers.message(message), status=201)

    return JsonResponse({"messages": [serializers.message(m) for m in event.get_messages()]})


@api_view(["DELETE"])
def event_message_detail(request, event_id, message_id):
    event = get_container(Event, event_id, request.user)
    message = get_child_message(event, message_id)

    if not message.owner_is(request.user):
        raise NotFound("Message not found")

    data = serializers.message(message)
    message.delete()
    return JsonResponse(data)


@api_view(["POST"])
def event_reads(request, event_id):
    event = get_container(Event, event_id, request.user)
    with transaction.atomic():
        mark_container_read(event, request.user)
    return JsonResponse(serializers.event(event))


@api_view(["POST", "DELETE"])
def event_rsvps(request, event_id):
    event = get_container(Event, event_id, request.user)

    if request.method == "POST":
        if not event.is_upcoming():
            raise BadRequest("You cannot RSVP to a past event")
        event.rsvps.add(request.user)
        notify(get_resources(), event, request.user, "rsvp")
    else:
        event.rsvps.remove(request.user)

    return JsonResponse(serializers.event(event))


# ============================================================================
# MESSAGES
# ============================================================================

@api_view(["DELETE"])
def message_photos(request, message_id):
    message = Message.objects.get(pk=message_id)
    if not message.owner_is(request.user):
        raise NotFound("Message not found")

    key = text_field(request.data, 'key')
    if not message.has_photo_key(key):
        raise BadRequest("The message has no such photo")

    message.remove_photo_key(key)
    message.save(update_fields=['photo_keys'])

    get_resources().storage.delete_photo(key)
    return JsonResponse(serializers.message(message))


# ============================================================================
# CONTACTS
# ============================================================================

@api_view(["GET"])
def contacts(request):
    users = request.user.contacts.order_by('first_name', 'pk')
    return JsonResponse({"contacts": [serializers.user_partial(u) for u in users]})


@api_view(["POST", "DELETE"])
def contact_detail(request, user_id):
    other = User.objects.get(pk=user_id)

    if request.method == "POST":
        if not request.user.is_registered:
            raise BadRequest("You must register before you can add contacts")
        request.user.add_contact(other)
        return JsonResponse(serializers.user_partial(other), status=201)

    request.user.remove_contact(other)
    return JsonResponse(serializers.user_partial(other))


# ============================================================================
# USERS
# ============================================================================

@api_view(["GET", "PATCH"])
def current_user(request):
    user = request.user
    resources = get_resources()

    if request.method == "PATCH":
        for field in ('first_name', 'last_name', 'avatar', 'timezone'):
            if field in request.data:
                setattr(user, field, text_field(request.data, field))
        user.full_clean(exclude=['password', 'username', 'email', 'emails', 'token'])
        user.save()
        resources.search.update(user)

    token = resources.notifications.generate_token(user.pk)
    return JsonResponse(serializers.user_full(user, token))


@api_view(["GET"])
def user_detail(request, user_id):
    return JsonResponse(serializers.user_partial(User.objects.get(pk=user_id)))


@api_view(["GET"])
def user_search(request):
    query = request.GET.get('query', '').strip()
    if not query:
        return JsonResponse({"users": []})

    ids = get_resources().search.search(query)
    found = User.objects.in_bulk(ids)
    users = [found[pk] for pk in ids if pk in found and pk != request.user.pk]
    return JsonResponse({"users": [serializers.user_partial(u) for u in users]})


@api_view(["POST", "DELETE", "PATCH"])
def user_emails(request):
    user = request.user
    email = normalize_email(text_field(request.data, 'email'))
    if not email:
        raise BadRequest("email is required")

    if request.method == "POST":
        if user.has_email(email):
            raise BadRequest("This email is already verified")
        get_resources().mail.send_verify_email(user, email, user.get_verify_email_link(email))
        return JsonResponse(serializers.user_full(user))

    if request.method == "DELETE":
        if not user.has_email(email):
            raise BadRequest("You don't have this email")
        user.remove_email(email)
    else:
        user.make_email_primary(email)

    user.save()
    get_resources().search.update(user)
    return JsonResponse(serializers.user_full(user))


@api_view(["POST"])
def verify_email(request):
    user = request.user
    email = normalize_email(text_field(request.data, 'email'))
    token = text_field(request.data, 'token')

    if not user.check_verify_email_token(email, token):
        raise Unauthorized("This link is invalid or has expired")

    resources = get_resources()
    owner = User.objects.get_by_email(email)
    if owner is not None and owner.pk != user.pk:
        merge_users(user, owner, resources)

    user.add_email(email)
    user.is_locked = False
    user.save()
    resources.search.update(user)

    logger.info(f"User {user.pk} verified {email}")
    return JsonResponse(serializers.user_full(user))


# ============================================================================
# TASKS
# ============================================================================

@api_view(["POST"], auth=False)
def digest_task(request):
    task_token = settings.CONVO_TASK_TOKEN
    sent_token = request.META.get('HTTP_X_CONVO_TASK_TOKEN', '')
    if not (task_token and constant_time_compare(task_token, sent_token)) and not request.user.is_staff:
        raise Unauthorized()

    sent, failed = run_digests(get_resources())
    return JsonResponse({"sent": sent, "failed": failed})
