import pytest
import requests

from conftest import FakeHttp, FakeResponse, completion
from drawlab.core.exceptions import (
    ConfigurationError, ProviderError, ProviderQuotaError, ProviderRateLimitError
)
from drawlab.services.evaluation import (
    FALLBACK_RESULT, DrawingEvaluator, extract_json_object, parse_evaluation
)

BODY = {
    "userDrawing": "data:image/png;base64,USER",
    "referenceImage": "data:image/png;base64,REF",
    "drawingType": "orthographic",
}


def make_evaluator(http, api_key="key"):
    return DrawingEvaluator(api_key=api_key, gateway_url="https://gateway.test/v1/chat/completions",
                            model="test-model", timeout=5, http=http)


def test_embedded_json_round_trips():
    text = 'Here is my verdict:\n{"score":8,"accuracy":90,"errors":[],"feedback":"Good"}\nThanks!'
    assert parse_evaluation(text) == {"score": 8, "accuracy": 90, "errors": [], "feedback": "Good"}


def test_no_json_gives_fallback():
    result = parse_evaluation("I cannot evaluate this drawing.")
    assert result == FALLBACK_RESULT
    assert result["score"] == 7
    assert result["accuracy"] == 75


def test_wrong_shape_gives_fallback():
    assert parse_evaluation('{"verdict": "nice"}') == FALLBACK_RESULT


def test_values_are_clamped_and_errors_truncated():
    text = '{"score": 14, "accuracy": -3, "errors": ["a","b","c","d","e","f","g"], "feedback": "x"}'
    result = parse_evaluation(text)
    assert result["score"] == 10
    assert result["accuracy"] == 0
    assert result["errors"] == ["a", "b", "c", "d", "e"]


def test_extract_skips_unbalanced_braces():
    assert extract_json_object('{oops} then {"score": 1}') == {"score": 1}
    assert extract_json_object("") is None


def test_request_payload():
    http = FakeHttp(completion('{"score":5,"accuracy":50,"errors":["x"],"feedback":"ok"}'))
    result = make_evaluator(http).evaluate("USER", "REF", "isometric")

    assert result["score"] == 5
    url, kwargs = http.calls[0]
    assert url == "https://gateway.test/v1/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer key"
    assert kwargs["json"]["model"] == "test-model"
    content = kwargs["json"]["messages"][0]["content"]
    assert content[0]["type"] == "text"
    assert "isometric" in content[0]["text"]
    assert content[1]["image_url"]["url"] == "REF"
    assert content[2]["image_url"]["url"] == "USER"


def test_missing_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        make_evaluator(FakeHttp(), api_key=None).evaluate("U", "R", "orthographic")


@pytest.mark.parametrize("status, error", [
    (429, ProviderRateLimitError),
    (402, ProviderQuotaError),
    (503, ProviderError),
])
def test_provider_status_errors(status, error):
    http = FakeHttp(FakeResponse(status, text="upstream"))
    with pytest.raises(error):
        make_evaluator(http).evaluate("U", "R", "orthographic")
    assert len(http.calls) == 1  # no retry


def test_network_error_is_provider_error():
    http = FakeHttp(error=requests.ConnectionError("down"))
    with pytest.raises(ProviderError):
        make_evaluator(http).evaluate("U", "R", "orthographic")


def test_endpoint_returns_result(app, client):
    app.evaluator.http = FakeHttp(completion('Result: {"score":8,"accuracy":90,"errors":[],"feedback":"Good"}'))
    resp = client.post("/functions/evaluate-drawing", json=BODY)
    assert resp.status_code == 200
    assert resp.get_json() == {"score": 8, "accuracy": 90, "errors": [], "feedback": "Good"}


@pytest.mark.parametrize("status, message", [
    (429, "Rate limit exceeded. Please try again later."),
    (402, "AI credits exhausted. Please add credits."),
    (500, "AI gateway error: 500"),
])
def test_endpoint_passes_provider_status(app, client, status, message):
    app.evaluator.http = FakeHttp(FakeResponse(status, text="err"))
    resp = client.post("/functions/evaluate-drawing", json=BODY)
    assert resp.status_code == status
    assert resp.get_json() == {"error": message}


def test_endpoint_without_key(app, client):
    app.evaluator.api_key = None
    resp = client.post("/functions/evaluate-drawing", json=BODY)
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "AI_API_KEY is not configured"}


def test_endpoint_requires_images(client):
    resp = client.post("/functions/evaluate-drawing", json={"drawingType": "orthographic"})
    assert resp.status_code == 400
