"""
Speech-to-text client for the SpeechCore HTTP API.

Flow: upload the audio, poll the job status until it completes or fails
(fixed interval, hard timeout), then fetch the transcription. Upstream
failures become SttError carrying the HTTP status the proxy endpoint
should answer with. An in-flight poll cannot be cancelled.
"""
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from .config import SttSettings

logger = logging.getLogger(__name__)

ERROR_MESSAGE_CHARS = 200
DEFAULT_FILENAME = "recording.webm"
DEFAULT_CONTENT_TYPE = "audio/webm"
TERMINAL_STATUSES = ("completed", "failed")
TEXT_FIELDS = ("text", "transcript", "transcription", "result", "utterance")


class SttError(Exception):
    """Upstream speech-to-text failure, with the status code to answer with."""

    def __init__(
        self,
        status_code: int,
        message: str,
        task_id: Optional[str] = None,
        status: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.task_id = task_id
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message}
        if self.task_id:
            body["task_id"] = self.task_id
        if self.status:
            body["status"] = self.status
        return body


def parse_body(text: str) -> Dict[str, Any]:
    """Best-effort JSON; non-JSON bodies come back as {"message": text}."""
    if not text:
        return {}
    try:
        data = json.loads(text)
    except ValueError:
        return {"message": text}
    return data if isinstance(data, dict) else {}


def error_message(data: Dict[str, Any], text: str) -> str:
    if isinstance(data.get("error"), str):
        return data["error"]
    return str(data.get("message") or text or "")


def extract_text(data: Dict[str, Any]) -> str:
    """Join segment texts; fall back to the first non-empty flat text field."""
    segments = data.get("segments")
    if isinstance(segments, list):
        parts = [
            s["text"].strip()
            for s in segments
            if isinstance(s, dict) and isinstance(s.get("text"), str)
        ]
        text = "\n".join(p for p in parts if p)
        if text:
            return text
    for name in TEXT_FIELDS:
        value = data.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


class SpeechCoreClient:
    """Thin wrapper over the upload / status / transcription endpoints."""

    def __init__(
        self,
        settings: SttSettings,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.sleep = sleep
        self.clock = clock

    @property
    def headers(self) -> Dict[str, str]:
        return {self.settings.auth_header: self.settings.auth_value()}

    def _url(self, path: str) -> str:
        return f"{self.settings.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, stage: str, **kwargs) -> Tuple[Dict[str, Any], str]:
        try:
            response = self.session.request(
                method,
                self._url(path),
                headers=self.headers,
                timeout=self.settings.request_timeout_secs,
                **kwargs,
            )
        except requests.RequestException as e:
            raise SttError(502, f"SpeechCore {stage} request failed: {e}") from e

        text = response.text or ""
        data = parse_body(text)
        if not response.ok:
            message = error_message(data, text)[:ERROR_MESSAGE_CHARS]
            logger.warning("SpeechCore %s error %s: %s", stage, response.status_code, message)
            raise SttError(
                response.status_code,
                f"SpeechCore {stage} error {response.status_code}: {message}",
            )
        return data, text

    def upload(
        self,
        audio: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> str:
        """Upload audio; returns the upstream job id."""
        files = {
            "file": (
                filename or DEFAULT_FILENAME,
                audio,
                content_type or DEFAULT_CONTENT_TYPE,
            )
        }
        data, _ = self._request("POST", "upload", "upload", files=files)
        task_id = data.get("task_id") if isinstance(data.get("task_id"), str) else ""
        if not task_id:
            raise SttError(502, "SpeechCore did not return task_id")
        logger.info("SpeechCore job %s uploaded (%d bytes)", task_id, len(audio))
        return task_id

    def wait_for_completion(self, task_id: str) -> str:
        """Poll the job until it reaches a terminal status or the timeout passes."""
        started = self.clock()
        status = "pending"
        while self.clock() - started < self.settings.timeout_secs:
            data, _ = self._request("GET", f"transcriptions/{task_id}/status", "status")
            if isinstance(data.get("status"), str):
                status = data["status"]
            if status in TERMINAL_STATUSES:
                break
            self.sleep(self.settings.poll_interval_secs)

        if status == "failed":
            raise SttError(502, "SpeechCore: transcription failed", task_id=task_id, status="failed")
        if status != "completed":
            raise SttError(504, "SpeechCore: transcription timeout", task_id=task_id, status="timeout")
        return status

    def fetch_transcription(self, task_id: str) -> str:
        data, _ = self._request("GET", f"transcriptions/{task_id}", "transcription")
        return extract_text(data)

    def transcribe(
        self,
        audio: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Dict[str, str]:
        """Upload, wait, fetch. Returns {"text", "task_id"}."""
        task_id = self.upload(audio, filename, content_type)
        self.wait_for_completion(task_id)
        text = self.fetch_transcription(task_id)
        logger.info("SpeechCore job %s transcribed (%d chars)", task_id, len(text))
        return {"text": text, "task_id": task_id}
