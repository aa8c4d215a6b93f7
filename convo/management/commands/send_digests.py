
from django.core.management.base import BaseCommand, CommandError

from convo.clients import Resources
from convo.digest import run_digest_for_user, run_digests
from convo.models import User


class Command(BaseCommand):
    help = "Email every registered user a digest of their unread messages"

    def add_arguments(self, parser):
        parser.add_argument(
            '--user',
            type=int,
            help="Only send the digest for the user with this id",
        )

    def handle(self, *args, **options):
        resources = Resources.from_settings()

        if options['user']:
            try:
                user = User.objects.get(pk=options['user'])
            except User.DoesNotExist:
                raise CommandError(f"User {options['user']} does not exist")
            items = run_digest_for_user(user, resources)
            self.stdout.write(self.style.SUCCESS(f"Digested {len(items)} items for user {user.pk}"))
            return

        sent, failed = run_digests(resources)
        if failed:
            self.stdout.write(self.style.WARNING(f"Sent {sent} digests, {failed} failed"))
        else:
            self.stdout.write(self.style.SUCCESS(f"Sent {sent} digests"))
