"""
Outbound email: the daily digest and address verification.
"""

import logging
import smtplib

from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from .errors import DeliveryFailure

logger = logging.getLogger(__name__)


class MailClient:

    def __init__(self, from_email, from_name="Convo"):
        self.from_email = from_email
        self.from_name = from_name

    @property
    def sender(self):
        return f"{self.from_name} <{self.from_email}>"

    def send_digest(self, items, upcoming, user):
        """
        Email ``user`` the unread messages in ``items`` and the ``upcoming``
        events they are invited to.

        Raises:
            DeliveryFailure: the message could not be handed to the backend
        """
        context = {
            "user": user,
            "items": items,
            "events": upcoming,
        }
        self._send(
            "[convo] Digest",
            "convo/emails/digest",
            context,
            user.full_name,
            user.email,
        )

    def send_verify_email(self, user, email, link):
        context = {
            "user": user,
            "email": email,
            "magic_link": link,
        }
        self._send(
            "[convo] Verify Email",
            "convo/emails/verify_email",
            context,
            user.full_name,
            email,
        )

    def _send(self, subject, template, context, to_name, to_email):
        text = render_to_string(f"{template}.txt", context)
        html = render_to_string(f"{template}.html", context)

        to = f"{to_name} <{to_email}>" if to_name else to_email
        message = EmailMultiAlternatives(subject, text, self.sender, [to])
        message.attach_alternative(html, "text/html")

        try:
            message.send()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' to {to_email}: {e}")
            raise DeliveryFailure(f"Could not send email to {to_email}") from e

        logger.info(f"Sent '{subject}' to {to_email}")
