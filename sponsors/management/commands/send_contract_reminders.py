"""
Email reminders for contracts still waiting for a signature.

Meant to run from cron, e.g. daily.
"""
from django.core.management.base import BaseCommand

from sponsors.contract_send import send_due_contract_reminders


class Command(BaseCommand):
    help = 'Send signing reminders for pending sponsor contracts'

    def add_arguments(self, parser):
        parser.add_argument('--max-reminders', type=int, default=2,
                            help='Skip records that already got this many reminders')
        parser.add_argument('--interval-days', type=int, default=3,
                            help='Only remind when the contract was sent at least this many days ago')

    def handle(self, *args, **options):
        result = send_due_contract_reminders(
            max_reminders=options['max_reminders'],
            interval_days=options['interval_days'],
        )
        self.stdout.write(
            self.style.SUCCESS(
                f"Contract reminders: {result['sent']} sent, {result['failed']} failed, {result['total']} due"
            )
        )
