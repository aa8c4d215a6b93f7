"""
================================================================================
CONVO - CUSTOM MIDDLEWARE
================================================================================

@file        middleware.py
@description API token authentication and per-user timezone activation

MODULE PURPOSE
================================================================================
1. TokenAuthMiddleware
   - Reads "Authorization: Bearer <token>" and sets request.user
   - Leaves the session user in place when no token is sent

2. TimezoneMiddleware
   - Activates the user's preferred timezone for the request
   - Falls back to UTC for anonymous users or unknown timezones

ORDERING
================================================================================
Both must come after django.contrib.auth's AuthenticationMiddleware, and
TokenAuthMiddleware must come before TimezoneMiddleware.

================================================================================
"""

import logging

import pytz
from django.contrib.auth.models import AnonymousUser
from django.utils import timezone

from .models import User

logger = logging.getLogger(__name__)


# ============================================================================
# TOKEN AUTHENTICATION MIDDLEWARE
# ============================================================================

class TokenAuthMiddleware:
    """
    Authenticate API requests by bearer token.

    A malformed header or unknown token leaves the request anonymous; the
    view decides whether that is a 401.
    """

    keyword = 'Bearer'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        header = request.META.get('HTTP_AUTHORIZATION', '')
        if header:
            request.user = self.authenticate(header) or AnonymousUser()
        return self.get_response(request)

    def authenticate(self, header):
        parts = header.split()
        if len(parts) != 2 or parts[0] != self.keyword:
            logger.debug("Ignoring malformed Authorization header")
            return None

        user = User.objects.get_by_token(parts[1])
        if user is None or not user.is_active:
            return None
        return user


# ============================================================================
# TIMEZONE MIDDLEWARE
# ============================================================================

class TimezoneMiddleware:
    """Activate the authenticated user's timezone, UTC otherwise."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            try:
                timezone.activate(pytz.timezone(user.timezone))
            except (pytz.UnknownTimeZoneError, AttributeError):
                timezone.activate(pytz.UTC)
        else:
            timezone.activate(pytz.UTC)

        return self.get_response(request)
