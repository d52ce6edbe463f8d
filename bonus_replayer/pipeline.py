"""
Redeem bonuses pipeline: fetch all -> replay all -> report.
"""

import time
from typing import Dict

from loguru import logger

from .replay.engine import ReplayEngine
from .replay.report import ReplayReport
from .storage.fetcher import ON_ERROR_ABORT, BlobFetcher


class RunStats:
    """Track run statistics."""

    def __init__(self):
        self.files_found = 0
        self.files_staged = 0
        self.files_skipped = 0
        self.requests_replayed = 0
        self.start_time = time.time()

    def duration(self) -> float:
        """Get duration in seconds."""
        return time.time() - self.start_time

    def rate(self) -> float:
        """Get replayed requests per second."""
        duration = self.duration()
        return self.requests_replayed / duration if duration > 0 else 0.0

    def to_dict(self) -> Dict:
        return {
            'files_found': self.files_found,
            'files_staged': self.files_staged,
            'files_skipped': self.files_skipped,
            'requests_replayed': self.requests_replayed,
            'duration_seconds': round(self.duration(), 2),
            'rate_requests_per_sec': round(self.rate(), 2)
        }


class RedeemBonusesPipeline:
    """
    Runs the phases strictly in sequence.

    Any ReplayerError raised by a phase propagates to the caller before
    later phases start; no partial report is returned in that case.
    """

    def __init__(
        self,
        fetcher: BlobFetcher,
        engine: ReplayEngine,
        container_folder: str,
        on_download_error: str = ON_ERROR_ABORT
    ):
        self.fetcher = fetcher
        self.engine = engine
        self.container_folder = container_folder
        self.on_download_error = on_download_error
        self.stats = RunStats()

    def run(self) -> ReplayReport:
        logger.info(
            f"Redeem bonuses replay started: folder={self.container_folder} "
            f"bucket={self.fetcher.bucket} api={self.engine.api_url}"
        )

        self.fetcher.ensure_staging_dir(self.container_folder)

        fetched = self.fetcher.fetch_all(self.container_folder, on_error=self.on_download_error)
        self.stats.files_staged = len(fetched.staged)
        self.stats.files_skipped = len(fetched.skipped)
        self.stats.files_found = self.stats.files_staged + self.stats.files_skipped

        if not fetched.staged:
            logger.warning(f"No redeemed requests found under '{self.container_folder}'")

        report = ReplayReport()
        for skipped in fetched.skipped:
            report.add_skipped(skipped)

        self.engine.replay_all(fetched.staged, report)
        self.stats.requests_replayed = len(report)

        logger.info(f"replay_completed {self.stats.to_dict()}")
        return report
