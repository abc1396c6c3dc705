"""Background scanner and processor loops for a PKB index."""

import logging
import threading
from typing import Optional

from pkb.errors import PKBError
from pkb.index import PKB, ProcessResult, ProcessStatus, ReindexResult, ScanResult

logger = logging.getLogger(__name__)


class PKBManager:
    """Keeps a PKB index in sync with its directory.

    Two daemon threads: the scanner queues changes every `scan_interval`
    seconds, the processor drains the queue one operation at a time and
    sleeps `process_interval` seconds when it is empty. Neither loop
    stops on a failure; it is logged and retried on the next pass.
    """

    def __init__(
        self,
        pkb: PKB,
        scan_interval: Optional[float] = None,
        process_interval: Optional[float] = None,
    ):
        self.pkb = pkb
        self.scan_interval = pkb.config.scan_interval if scan_interval is None else scan_interval
        self.process_interval = (
            pkb.config.process_interval if process_interval is None else process_interval
        )
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        """Run an initial scan and start both loops."""
        if self.running:
            return
        self._stop.clear()
        self.run_scan()
        self._threads = [
            threading.Thread(target=self._scan_loop, name="pkb-scanner", daemon=True),
            threading.Thread(target=self._process_loop, name="pkb-processor", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"Watching {self.pkb.root}")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def run_scan(self) -> Optional[ScanResult]:
        """One scan pass. Returns None if the directory could not be scanned."""
        try:
            return self.pkb.scan_for_changes()
        except PKBError as e:
            logger.error(f"Scan failed: {e}")
            return None

    def process_next(self) -> ProcessResult:
        return self.pkb.process_next_in_queue()

    def reindex(self) -> ReindexResult:
        """Scan once and process everything queued, in the calling thread."""
        result = self.pkb.reindex()
        failed = [r for r in result.processed if r.status is ProcessStatus.FAILED]
        logger.info(
            f"Reindex done: {len(result.processed) - len(failed)} processed, {len(failed)} failed"
        )
        return result

    def _scan_loop(self) -> None:
        while not self._stop.wait(self.scan_interval):
            try:
                self.run_scan()
            except Exception:
                logger.exception("Unexpected error in scanner")

    def _process_loop(self) -> None:
        while not self._stop.is_set():
            try:
                result = self.process_next()
            except Exception:
                logger.exception("Unexpected error in processor")
                result = ProcessResult(ProcessStatus.FAILED)
            if result.status in (ProcessStatus.IDLE, ProcessStatus.FAILED):
                self._stop.wait(self.process_interval)
