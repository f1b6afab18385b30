"""Management command to print the projected Linear timeline as JSON.

Useful for checking what the timeline view will show for a token without a
browser session:
    LINEAR_ACCESS_TOKEN=lin_oauth_... python manage.py dump_timeline --assignee <user id>
"""

import json
import logging
import os

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from integrations.linear import LinearAPIError, fetch_workspace
from timeline.serializers import timeline_payload

logger = logging.getLogger("timeline.management.dump_timeline")


class Command(BaseCommand):
    help = "Fetch issues and users from Linear and print the projected timeline."

    def add_arguments(self, parser):
        parser.add_argument("--assignee", default=None, help="Only show issues assigned to this user id.")
        parser.add_argument(
            "--token-env",
            default="LINEAR_ACCESS_TOKEN",
            help="Environment variable holding the Linear access token.",
        )

    def handle(self, *args, **options):
        token = os.environ.get(options["token_env"], "")
        if not token:
            raise CommandError(f"{options['token_env']} is not set.")

        try:
            issues, users = fetch_workspace(token)
        except LinearAPIError as e:
            logger.error("Failed to fetch timeline data: %s", e)
            raise CommandError(f"Could not fetch data from Linear: {e}") from e

        payload = timeline_payload(
            issues,
            users,
            options["assignee"] or None,
            now=timezone.now(),
            tz=timezone.get_current_timezone(),
        )
        self.stdout.write(json.dumps(payload, indent=2))
