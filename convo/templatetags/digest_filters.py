"""
================================================================================
CONVO - DIGEST EMAIL FILTERS
================================================================================

@file        digest_filters.py
@description Template filters used by the digest and verification emails

USAGE IN TEMPLATES
================================================================================
    {% load digest_filters %}

    {{ event.timestamp|local_time:user.timezone }}
    {{ message.body|excerpt:200 }}

EXAMPLE
================================================================================
Input:  2026-02-05 14:30 UTC, "America/New_York"
Output: "Thursday, February 5 at 9:30 AM EST"

================================================================================
"""

import pytz
from django import template

register = template.Library()


@register.filter
def local_time(value, tz_name):
    """
    Format an aware datetime in the given timezone.

    Unknown timezones fall back to UTC.
    """
    if not value:
        return ""
    try:
        tz = pytz.timezone(tz_name or 'UTC')
    except pytz.UnknownTimeZoneError:
        tz = pytz.UTC

    local = value.astimezone(tz)
    hour = local.strftime('%I').lstrip('0')
    return f"{local.strftime('%A, %B')} {local.day} at {hour}:{local.strftime('%M %p %Z')}"


@register.filter
def excerpt(value, length=200):
    """Shorten ``value`` to ``length`` characters on a word boundary."""
    value = (value or "").strip()
    length = int(length)
    if len(value) <= length:
        return value
    cut = value[:length].rsplit(' ', 1)[0]
    return f"{cut}..."
