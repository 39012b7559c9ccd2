"""
Tests for the SpeechCore client (taskboard.stt).

Covers:
    - transcribe()            — upload → poll → fetch happy path
    - upstream error mapping  — status passthrough, 200-char messages
    - terminal states         — failed (502), timeout (504)
    - extract_text()          — segments and flat-field fallbacks
"""
import json
from unittest.mock import MagicMock

import pytest
import requests

from taskboard.config import SttSettings
from taskboard.stt import SpeechCoreClient, SttError, extract_text, parse_body


def fake_response(status_code=200, body=None, text=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.text = text if text is not None else (json.dumps(body) if body is not None else "")
    return response


class FakeClock:
    def __init__(self, step=0.0):
        self.now = 0.0
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


def make_client(responses, settings=None, clock=None):
    session = MagicMock()
    session.request.side_effect = responses
    sleep = MagicMock()
    client = SpeechCoreClient(
        settings or SttSettings(token="tok", base_url="https://stt.test/api"),
        session=session,
        sleep=sleep,
        clock=clock or FakeClock(),
    )
    return client, session, sleep


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Happy path
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_transcribe_uploads_polls_and_fetches():
    client, session, sleep = make_client([
        fake_response(200, {"task_id": "job-1"}),
        fake_response(200, {"status": "processing"}),
        fake_response(200, {"status": "completed"}),
        fake_response(200, {"segments": [{"text": " one "}, {"text": ""}, {"text": "two"}]}),
    ])

    result = client.transcribe(b"audio-bytes", filename=None, content_type=None)

    assert result == {"text": "one\ntwo", "task_id": "job-1"}
    sleep.assert_called_once_with(1.5)

    calls = session.request.call_args_list
    assert [(c.args[0], c.args[1]) for c in calls] == [
        ("POST", "https://stt.test/api/upload"),
        ("GET", "https://stt.test/api/transcriptions/job-1/status"),
        ("GET", "https://stt.test/api/transcriptions/job-1/status"),
        ("GET", "https://stt.test/api/transcriptions/job-1"),
    ]
    assert calls[0].kwargs["headers"] == {"Authorization": "Bearer tok"}
    assert calls[0].kwargs["files"]["file"] == ("recording.webm", b"audio-bytes", "audio/webm")


def test_custom_auth_header_without_prefix():
    settings = SttSettings(token="tok", auth_header="X-API-Key", auth_prefix="")
    client, session, _ = make_client([fake_response(200, {"task_id": "job-1"})], settings=settings)

    client.upload(b"a", filename="memo.ogg", content_type="audio/ogg")

    kwargs = session.request.call_args.kwargs
    assert kwargs["headers"] == {"X-API-Key": "tok"}
    assert kwargs["files"]["file"] == ("memo.ogg", b"a", "audio/ogg")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Failures
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_upload_error_passes_status_through():
    client, _, _ = make_client([fake_response(401, {"error": "bad token"})])
    with pytest.raises(SttError) as exc:
        client.upload(b"a")
    assert exc.value.status_code == 401
    assert exc.value.message == "SpeechCore upload error 401: bad token"


def test_error_message_from_raw_text_is_truncated():
    client, _, _ = make_client([
        fake_response(200, {"task_id": "job-1"}),
        fake_response(503, text="x" * 500),
    ])
    with pytest.raises(SttError) as exc:
        client.transcribe(b"a")
    assert exc.value.status_code == 503
    assert exc.value.message == "SpeechCore status error 503: " + "x" * 200


def test_missing_task_id_is_bad_gateway():
    client, _, _ = make_client([fake_response(200, {"id": 5})])
    with pytest.raises(SttError) as exc:
        client.upload(b"a")
    assert exc.value.status_code == 502
    assert "task_id" in exc.value.message


def test_failed_transcription():
    client, _, _ = make_client([
        fake_response(200, {"task_id": "job-1"}),
        fake_response(200, {"status": "failed"}),
    ])
    with pytest.raises(SttError) as exc:
        client.transcribe(b"a")
    assert exc.value.status_code == 502
    assert exc.value.to_dict() == {
        "error": "SpeechCore: transcription failed",
        "task_id": "job-1",
        "status": "failed",
    }


def test_poll_timeout():
    # Each clock read advances 20s: two polls fit before the 60s timeout
    pending = [fake_response(200, {"status": "pending"}) for _ in range(10)]
    client, session, sleep = make_client(
        [fake_response(200, {"task_id": "job-1"})] + pending,
        clock=FakeClock(step=20.0),
    )
    with pytest.raises(SttError) as exc:
        client.transcribe(b"a")
    assert exc.value.status_code == 504
    assert exc.value.to_dict()["status"] == "timeout"
    assert session.request.call_count < 11
    assert sleep.call_count >= 1


def test_network_error_is_bad_gateway():
    client, _, _ = make_client([requests.ConnectionError("refused")])
    with pytest.raises(SttError) as exc:
        client.upload(b"a")
    assert exc.value.status_code == 502


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Parsing helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_parse_body():
    assert parse_body("") == {}
    assert parse_body('{"a": 1}') == {"a": 1}
    assert parse_body("oops") == {"message": "oops"}
    assert parse_body("[1, 2]") == {}


@pytest.mark.parametrize("data, expected", [
    ({"segments": [{"text": "a"}, {"text": " b "}]}, "a\nb"),
    ({"segments": [], "text": " flat "}, "flat"),
    ({"segments": [{"text": "  "}], "transcript": "t"}, "t"),
    ({"text": "", "result": "r"}, "r"),
    ({"utterance": "u"}, "u"),
    ({}, ""),
])
def test_extract_text(data, expected):
    assert extract_text(data) == expected
