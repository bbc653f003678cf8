"""
AIService fallbacks and response handling, with the HTTP layer mocked.
"""
import json
from unittest.mock import patch, MagicMock

import requests

from backend.coupleclarity.utils.ai_service import (AIService, TRANSFORM_FALLBACK, CONFLICT_ANALYSIS_FALLBACK,
                                                    JOURNAL_ANALYSIS_FALLBACK)

POST = "backend.coupleclarity.utils.ai_service.requests.post"


def json_response(body):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = body
    return response


def test_missing_keys_never_call_out():
    service = AIService()
    with patch(POST) as post:
        assert service.transform_emotional_message("sad", "hi") == TRANSFORM_FALLBACK
        assert service.summarize_response("a", "b") == "Your partner responded to your message."
        assert service.transform_with_anthropic("raw text", ["sad"])["transformedMessage"] == "raw text"
        assert "error" in service.generate_avatar("a friendly portrait")
        assert "error" in service.restyle_avatar("/tmp/none.png")
    post.assert_not_called()


def test_timeout_returns_fallback():
    service = AIService(openai_api_key="key")
    with patch(POST, side_effect=requests.exceptions.Timeout()):
        assert service.analyze_journal_entry("content", "title") == JOURNAL_ANALYSIS_FALLBACK
        assert service.transform_conflict_message("you never listen")["emotionalTone"] == "neutral"


def test_http_error_returns_fallback():
    service = AIService(openai_api_key="key")
    failing = MagicMock()
    failing.raise_for_status.side_effect = requests.exceptions.HTTPError("500", response=MagicMock(status_code=500))
    with patch(POST, return_value=failing):
        assert service.transform_emotional_message("sad", "hi") == TRANSFORM_FALLBACK


def test_malformed_completion_returns_fallback():
    service = AIService(openai_api_key="key")
    body = {"choices": [{"message": {"content": "not json"}}]}
    with patch(POST, return_value=json_response(body)):
        assert service.generate_journal_response("content", "gentle")["response"]


def test_journal_analysis_merges_partial_result():
    service = AIService(openai_api_key="key")
    body = {"choices": [{"message": {"content": json.dumps({"aiSummary": "Feeling unseen", "emotionalScore": 3})}}]}
    with patch(POST, return_value=json_response(body)):
        result = service.analyze_journal_entry("content", "title", [{"title": "t", "content": "c", "date": "d"}])
    assert result["aiSummary"] == "Feeling unseen"
    assert result["emotionalScore"] == 3
    assert result["patternCategory"] == JOURNAL_ANALYSIS_FALLBACK["patternCategory"]


def test_conflict_analysis_with_anthropic():
    service = AIService(anthropic_api_key="key")
    text = json.dumps({"insights": "Both want to feel heard.", "strategies": ["Pause", "Reflect", "Plan"]})
    with patch(POST, return_value=json_response({"content": [{"type": "text", "text": text}]})) as post:
        result = service.analyze_conflict([{"author": "A", "text": "You never listen"}])
    assert result == {"insights": "Both want to feel heard.", "strategies": ["Pause", "Reflect", "Plan"]}
    assert post.call_args.kwargs["headers"]["x-api-key"] == "key"


def test_conflict_analysis_bad_json_falls_back():
    service = AIService(anthropic_api_key="key")
    with patch(POST, return_value=json_response({"content": [{"type": "text", "text": "plain prose"}]})):
        result = service.analyze_conflict([])
    assert result["insights"] == CONFLICT_ANALYSIS_FALLBACK["insights"]


def test_generate_avatar_returns_url():
    service = AIService(openai_api_key="key")
    with patch(POST, return_value=json_response({"data": [{"url": "https://img.example/a.png"}]})):
        assert service.generate_avatar("a friendly portrait") == {"url": "https://img.example/a.png"}
