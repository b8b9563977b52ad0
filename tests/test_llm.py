from types import SimpleNamespace
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from dailybrief.processing.llm import extract_json, generate_with_retry, grounding_urls, response_text
from helpers import grounded_response, text_response


def _status_error(status):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status, request=request)
    cls = anthropic.RateLimitError if status == 429 else anthropic.InternalServerError
    return cls("busy", response=response, body=None)


@pytest.mark.parametrize("status", [429, 503, 529])
def test_retries_busy_errors_with_doubling_delay(status):
    client = MagicMock()
    client.messages.create.side_effect = [_status_error(status), _status_error(status), text_response("ok")]
    sleeps = []
    result = generate_with_retry(client, sleep=sleeps.append, model="m", max_tokens=10, messages=[])
    assert response_text(result) == "ok"
    assert sleeps == [2.0, 4.0]
    assert client.messages.create.call_count == 3


def test_gives_up_after_retries():
    client = MagicMock()
    client.messages.create.side_effect = _status_error(529)
    with pytest.raises(anthropic.APIStatusError):
        generate_with_retry(client, retries=3, sleep=lambda s: None, model="m", max_tokens=1, messages=[])
    assert client.messages.create.call_count == 3


def test_other_errors_not_retried():
    client = MagicMock()
    client.messages.create.side_effect = _status_error(500)
    with pytest.raises(anthropic.InternalServerError):
        generate_with_retry(client, sleep=lambda s: None, model="m", max_tokens=1, messages=[])
    assert client.messages.create.call_count == 1


def test_response_text_joins_text_blocks_only():
    response = grounded_response("Report body", ["https://a.com"])
    assert response_text(response) == "Report body"


def test_grounding_urls_deduplicated():
    response = grounded_response("x", ["https://a.com", "https://b.com", "https://a.com"])
    assert grounding_urls(response) == ["https://a.com", "https://b.com"]
    assert grounding_urls(SimpleNamespace(content=[])) == []


def test_extract_json():
    assert extract_json('Sure! {"headline": "x"} hope that helps') == {"headline": "x"}
    assert extract_json("```json\n[1, 2]\n```", "array") == [1, 2]
    with pytest.raises(ValueError):
        extract_json("no json here")
    with pytest.raises(ValueError):
        extract_json('{"broken": }')
