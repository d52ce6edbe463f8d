"""
Replay Engine
Posts staged redeemed-bonus requests to the redeem API, one at a time,
pausing between calls to stay under the API rate limit.
"""

import json
import time
from typing import Callable, Iterable, Optional

import requests
from loguru import logger
from prometheus_client import Counter, Histogram

from ..errors import StagedFileReadError, TransportError
from ..storage.fetcher import StagedFile
from .report import ReplayOutcome, ReplayReport


DEFAULT_API_URL = 'https://api-gad.io.italia.it/api/bonus-vacanze/v1/redeemed'
DEFAULT_DELAY_MS = 1000
DEFAULT_HTTP_TIMEOUT = 30.0

SUBSCRIPTION_KEY_HEADER = 'Ocp-Apim-Subscription-Key'

# The redeem API has always received the staged JSON wrapped once more as a
# JSON string; 'raw' forwards the staged text unchanged.
BODY_JSON_STRING = 'json-string'
BODY_RAW = 'raw'
BODY_ENCODINGS = (BODY_JSON_STRING, BODY_RAW)


# Prometheus metrics
REPLAY_REQUESTS = Counter(
    'bonus_replayer_requests_total',
    'Total number of replayed requests by response status code',
    ['status_code']
)

REPLAY_TRANSPORT_ERRORS = Counter(
    'bonus_replayer_transport_errors_total',
    'Replay requests that did not receive a response'
)

REPLAY_DURATION = Histogram(
    'bonus_replayer_request_duration_seconds',
    'Time spent on a single replay request'
)


class ReplayEngine:
    """
    Serial replayer for staged files.

    Non-2xx responses are recorded, not raised. Only failures to get a
    response at all abort the run.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        delay_ms: int = DEFAULT_DELAY_MS,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        body_encoding: str = BODY_JSON_STRING,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the engine.

        Args:
            api_url: Redeem endpoint receiving the POSTs
            api_key: Value of the subscription key header
            delay_ms: Pause between consecutive submissions
            timeout: Per-request timeout in seconds
            body_encoding: 'json-string' (wrap text as a JSON string) or 'raw'
            session: HTTP session to use; one is created when omitted
            sleep: Blocking sleep used for pacing
        """
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        if body_encoding not in BODY_ENCODINGS:
            raise ValueError(f"Unknown body encoding: {body_encoding}")

        self.api_url = api_url
        self.api_key = api_key
        self.delay_ms = delay_ms
        self.timeout = timeout
        self.body_encoding = body_encoding
        self.session = session or requests.Session()
        self._sleep = sleep

    @property
    def headers(self) -> dict:
        return {
            SUBSCRIPTION_KEY_HEADER: self.api_key,
            'Content-Type': 'application/json'
        }

    def encode_body(self, text: str) -> bytes:
        """Build the POST body for a staged file's text."""
        if self.body_encoding == BODY_JSON_STRING:
            text = json.dumps(text)
        return text.encode('utf-8')

    def _read(self, staged: StagedFile) -> str:
        try:
            # Decode bytes directly so CRLF line endings reach the body unchanged
            return staged.path.read_bytes().decode('utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise StagedFileReadError(staged.file, str(e)) from e

    def submit(self, staged: StagedFile) -> ReplayOutcome:
        """
        Replay one staged file.

        The response body is parsed as JSON only for debug logging; a body
        that is not JSON does not fail the replay, the status is still
        recorded.

        Returns:
            ReplayOutcome with the observed status code

        Raises:
            StagedFileReadError: If the staged file cannot be read
            TransportError: If no HTTP response was received
        """
        body = self.encode_body(self._read(staged))

        try:
            with REPLAY_DURATION.time():
                response = self.session.post(
                    self.api_url,
                    headers=self.headers,
                    data=body,
                    timeout=self.timeout
                )
        except requests.RequestException as e:
            REPLAY_TRANSPORT_ERRORS.inc()
            raise TransportError(staged.file, str(e), url=self.api_url) from e

        status_code = str(response.status_code)
        REPLAY_REQUESTS.labels(status_code=status_code).inc()

        try:
            content = response.json()
        except ValueError:
            content = response.text
        logger.debug(f"{staged.file} -> {status_code}: {content}")

        return ReplayOutcome(source_file=staged.file, status_code=status_code)

    def _pace(self):
        """Block for the pacing interval."""
        if self.delay_ms > 0:
            self._sleep(self.delay_ms / 1000.0)

    def replay_all(self, staged_files: Iterable[StagedFile], report: ReplayReport) -> ReplayReport:
        """
        Replay staged files in order, appending each outcome to the report.

        The pause between submissions is applied whatever the previous
        status code was.
        """
        logger.info("Sending redeemed requests started...")

        for index, staged in enumerate(staged_files):
            if index > 0:
                self._pace()

            logger.info(staged.file)
            outcome = self.submit(staged)
            report.add(outcome)

            if outcome.status_code == '429':
                logger.warning(f"{staged.file} was rate limited (429)")

        logger.info("Sending redeemed requests finished...")
        return report

    def close(self):
        self.session.close()
