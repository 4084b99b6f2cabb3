"""Tests for the Gemini extraction adapter (offline, with a fake infer call)."""

import json

import pytest

from pipeline.config import ConfigurationError
from pipeline.models import FailureKind, LineItem

from classifiers.gemini_extractor import (
    GeminiExtractor,
    RateLimiter,
    guess_mime_type,
    parse_extraction_response,
)


LEGIBLE_RESPONSE = json.dumps({
    "items": [{"descripcion": "Laptop", "cantidad": 1, "precio_unitario": 500000}],
    "total_orden": 500000,
    "legible": True,
})


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def document(tmp_path):
    path = tmp_path / "orden.pdf"
    path.write_bytes(b"%PDF-1.4 fake")
    return str(path)


def _extractor(infer, sleeps=None, **kwargs):
    return GeminiExtractor(
        infer=infer,
        rate_limiter=RateLimiter(0),
        sleep=(sleeps.append if sleeps is not None else lambda s: None),
        **kwargs,
    )


def test_parse_legible_response():
    result = parse_extraction_response(LEGIBLE_RESPONSE, "orden.pdf")

    assert result.success
    assert result.items == (LineItem("Laptop", 1, 500000),)
    assert result.total_amount == 500000


def test_parse_response_wrapped_in_markdown():
    text = f"```json\n{LEGIBLE_RESPONSE}\n```"

    result = parse_extraction_response(text, "orden.pdf")

    assert result.success
    assert len(result.items) == 1


def test_parse_illegible_response_keeps_reason():
    result = parse_extraction_response('{"legible": false, "error": "Imagen borrosa"}', "orden.pdf")

    assert not result.success
    assert result.failure_kind == FailureKind.ILLEGIBLE
    assert result.error == "Imagen borrosa"


@pytest.mark.parametrize("text", [
    "No puedo procesar este documento",
    '{"items": [], "legible": "yes"}',
    '{"legible": true}',
    '{"items": [{"descripcion": "Laptop", "cantidad": "1", "precio_unitario": 5}], "legible": true}',
    '{"items": [{"descripcion": "Laptop", "cantidad": true, "precio_unitario": 5}], "legible": true}',
    '{"items": [], "total_orden": "$5.000", "legible": true}',
    '{"items": [,], "legible": true}',
])
def test_parse_malformed_responses(text):
    result = parse_extraction_response(text, "orden.pdf")

    assert not result.success
    assert result.failure_kind == FailureKind.MALFORMED


def test_extract_sends_document_bytes_and_mime_type(document):
    calls = []

    def infer(document_bytes, mime_type, prompt):
        calls.append((document_bytes, mime_type))
        return LEGIBLE_RESPONSE

    result = _extractor(infer).extract(document)

    assert result.success
    assert result.document_id == "orden.pdf"
    assert calls == [(b"%PDF-1.4 fake", "application/pdf")]


def test_extract_retries_quota_errors(document):
    sleeps = []
    responses = [Exception("429 Quota exceeded"), Exception("429 Quota exceeded"), LEGIBLE_RESPONSE]

    def infer(document_bytes, mime_type, prompt):
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    result = _extractor(infer, sleeps, max_retries=3).extract(document)

    assert result.success
    assert sleeps == [1, 2]


def test_extract_service_error_is_typed_failure(document):
    calls = []

    def infer(document_bytes, mime_type, prompt):
        calls.append(1)
        raise RuntimeError("500 Internal error")

    result = _extractor(infer).extract(document)

    assert not result.success
    assert result.failure_kind == FailureKind.SERVICE_ERROR
    assert "500" in result.error
    assert len(calls) == 1


def test_extract_unreadable_file_is_illegible(tmp_path):
    result = _extractor(lambda *args: LEGIBLE_RESPONSE).extract(str(tmp_path / "missing.pdf"))

    assert not result.success
    assert result.failure_kind == FailureKind.ILLEGIBLE


def test_process_many_preserves_order(tmp_path):
    paths = []
    for name in ["c.pdf", "a.png", "b.jpg"]:
        path = tmp_path / name
        path.write_bytes(name.encode())
        paths.append(str(path))

    def infer(document_bytes, mime_type, prompt):
        description = document_bytes.decode()
        return json.dumps({
            "items": [{"descripcion": description, "cantidad": 1, "precio_unitario": 1}],
            "legible": True,
        })

    results = _extractor(infer).process_many(paths)

    assert [r.document_id for r in results] == ["c.pdf", "a.png", "b.jpg"]
    assert [r.items[0].description for r in results] == ["c.pdf", "a.png", "b.jpg"]


def test_rate_limiter_enforces_minimum_interval():
    clock = FakeClock()
    limiter = RateLimiter(4.0, clock=clock, sleep=clock.sleep)

    limiter.wait()
    limiter.wait()
    clock.now += 10
    limiter.wait()

    assert clock.sleeps == [4.0]


def test_rate_limiter_is_shared_between_extractors(document):
    clock = FakeClock()
    limiter = RateLimiter(4.0, clock=clock, sleep=clock.sleep)
    first = GeminiExtractor(infer=lambda *args: LEGIBLE_RESPONSE, rate_limiter=limiter)
    second = GeminiExtractor(infer=lambda *args: LEGIBLE_RESPONSE, rate_limiter=limiter)

    first.extract(document)
    second.extract(document)

    assert clock.sleeps == [4.0]


def test_missing_api_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        GeminiExtractor(api_key=None)


def test_guess_mime_type():
    assert guess_mime_type("scan.JPG") == "image/jpeg"
    assert guess_mime_type("orden.pdf") == "application/pdf"
    assert guess_mime_type("archivo") == "application/pdf"
