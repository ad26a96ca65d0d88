import signal
import threading
import time

from django.conf import settings
from django.core.management.base import BaseCommand, CommandParser

from transcoder.worker import Worker


class Command(BaseCommand):
    help = "Polls the posts table and transcodes pending videos to HLS."

    def add_arguments(self, parser: CommandParser):
        parser.add_argument("--once", action="store_true", help="Run a single polling cycle and exit")
        parser.add_argument("--idle-interval", type=float, default=None, help="Seconds to wait when no post is pending")
        parser.add_argument(
            "--startup-delay", type=float, default=None, help="Seconds to wait for the database before polling"
        )

    def handle(self, *args, **options):
        stop_event = threading.Event()
        worker = Worker(idle_interval=options["idle_interval"], stop_event=stop_event)

        if options["once"]:
            worker.pipeline.prepare()
            worked = worker.run_once()
            self.stdout.write("Processed one post." if worked else "No pending posts.")
            return

        delay = settings.WORKER_STARTUP_DELAY if options["startup_delay"] is None else options["startup_delay"]
        if delay > 0:
            self.stdout.write(f"Waiting {delay:g}s for the database...")
            time.sleep(delay)

        def _stop(signum, frame):
            self.stdout.write(self.style.WARNING("Stopping after the current post..."))
            stop_event.set()

        signal.signal(signal.SIGTERM, _stop)
        signal.signal(signal.SIGINT, _stop)

        self.stdout.write(self.style.SUCCESS("🚀 Worker service starting..."))
        worker.run()
        self.stdout.write(self.style.SUCCESS("✅ Worker stopped cleanly."))
