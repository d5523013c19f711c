"""
Run the delivery sweeps in-process, without Celery beat.
"""
import json

from django.core.management.base import BaseCommand

from delivery.services.scheduler import DeliveryScheduler


class Command(BaseCommand):
    help = 'Run the auto-delivery sweeps periodically (or once with --once).'

    def add_arguments(self, parser):
        parser.add_argument('--interval', type=float, default=None,
                            help='Seconds between runs (default: AUTO_DELIVERY_CHECK_INTERVAL_MINUTES)')
        parser.add_argument('--once', action='store_true', help='Run every sweep once and exit')

    def handle(self, *args, **options):
        scheduler = DeliveryScheduler(interval_seconds=options['interval'])

        if options['once']:
            run = scheduler.run_once()
            self.stdout.write(json.dumps({
                'started_at': run.started_at.isoformat(),
                'finished_at': run.finished_at.isoformat(),
                'results': run.results,
                'errors': run.errors,
            }, indent=2, default=str))
            return

        scheduler.start()
        try:
            scheduler.wait()
        except KeyboardInterrupt:
            self.stdout.write('Stopping delivery scheduler...')
        finally:
            scheduler.stop()
