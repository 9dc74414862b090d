# background refresh of today's totals for the manager summary

import logging
import threading
from datetime import datetime

import reports
from errors import PosError

logger = logging.getLogger(__name__)


class SummaryPoller:
    # recomputes today's stats every interval seconds; a failed tick keeps
    # the previous numbers, and a checkout between ticks shows on the next one

    def __init__(self, app, interval=30):
        self.app = app
        self.interval = interval
        self.latest = None
        self.updated_at = None
        self._stop = threading.Event()
        self._thread = None
        self._lock = threading.Lock()

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self):
        with self.app.app_context():
            try:
                stats = reports.sales_stats(
                    'today', week_start=self.app.config['WEEK_START'])
            except PosError:
                logger.warning('summary refresh failed, keeping previous totals')
                return self.latest
        with self._lock:
            self.latest = stats
            self.updated_at = datetime.now()
        return stats

    def _run(self):
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self.interval)

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name='summary-poller', daemon=True)
        self._thread.start()
        logger.info('summary poller started, every %ss', self.interval)

    def stop(self, timeout=5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info('summary poller stopped')
