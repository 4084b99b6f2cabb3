"""Extract purchase order line items from documents using Google Gemini."""

import google.generativeai as genai
import json
import os
import re
import threading
import time
from typing import Callable, List, Optional, Sequence

from pipeline.config import ConfigurationError
from pipeline.models import ExtractionResult, FailureKind, LineItem


EXTRACTION_PROMPT = """Analiza este documento de una orden de compra chilena (Mercado Público).

Devuelve SOLO un objeto JSON con esta forma exacta:
{
  "items": [
    {
      "descripcion": "string",
      "cantidad": number,
      "precio_unitario": number
    }
  ],
  "total_orden": number,
  "legible": true
}

Reglas:
- Montos en pesos chilenos como números, sin símbolos ni separadores de miles (15042016, no "$15.042.016")
- Incluye todos los items del documento, en el orden en que aparecen
- Si el documento no se puede leer, responde {"legible": false, "error": "motivo concreto"}
- Sin markdown ni texto adicional
"""

MIME_TYPES = {
    '.pdf': 'application/pdf',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
}

JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')


def guess_mime_type(path: str) -> str:
    """MIME type from the file extension; PDF when unknown."""
    _, ext = os.path.splitext(path.lower())
    return MIME_TYPES.get(ext, 'application/pdf')


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_quota_error(error: Exception) -> bool:
    error_str = str(error).lower()
    return 'quota' in error_str or 'rate limit' in error_str or '429' in error_str


def parse_extraction_response(response_text: str, document_id: str) -> ExtractionResult:
    """
    Parse the model's reply into an ExtractionResult.

    Expected shape: {"items": [...], "total_orden"?: number, "legible": bool, "error"?: str}.
    ``legible: false`` gives an ILLEGIBLE failure; anything that does not
    match the shape gives a MALFORMED failure.
    """
    match = JSON_OBJECT_PATTERN.search(response_text or '')
    if not match:
        snippet = (response_text or '')[:100]
        return ExtractionResult.failed(
            document_id, FailureKind.MALFORMED, f"No JSON found in response. Got: {snippet}"
        )

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        return ExtractionResult.failed(document_id, FailureKind.MALFORMED, f"Invalid JSON in response: {e}")

    if not isinstance(data, dict):
        return ExtractionResult.failed(document_id, FailureKind.MALFORMED, "Response is not a JSON object")

    legible = data.get('legible')
    if not isinstance(legible, bool):
        return ExtractionResult.failed(document_id, FailureKind.MALFORMED, "Missing boolean 'legible' field")

    if not legible:
        return ExtractionResult.failed(
            document_id, FailureKind.ILLEGIBLE, data.get('error') or 'Document not readable'
        )

    raw_items = data.get('items')
    if not isinstance(raw_items, list):
        return ExtractionResult.failed(document_id, FailureKind.MALFORMED, "Missing 'items' list")

    items = []
    for index, raw in enumerate(raw_items):
        if (
            not isinstance(raw, dict)
            or not isinstance(raw.get('descripcion'), str)
            or not _is_number(raw.get('cantidad'))
            or not _is_number(raw.get('precio_unitario'))
        ):
            return ExtractionResult.failed(
                document_id, FailureKind.MALFORMED, f"Item {index} does not match the expected fields"
            )
        items.append(LineItem.from_dict(raw))

    total = data.get('total_orden')
    if total is not None and not _is_number(total):
        return ExtractionResult.failed(document_id, FailureKind.MALFORMED, "'total_orden' is not a number")

    return ExtractionResult.ok(document_id, items, total_amount=total)


class RateLimiter:
    """Enforce a minimum interval between calls across all threads."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = min_interval
        self.clock = clock
        self.sleep = sleep
        self._lock = threading.Lock()
        self._last_call: Optional[float] = None

    def wait(self):
        """Block until the next call is allowed, then claim the slot."""
        with self._lock:
            if self._last_call is not None:
                remaining = self._last_call + self.min_interval - self.clock()
                if remaining > 0:
                    self.sleep(remaining)
            self._last_call = self.clock()


class GeminiExtractor:
    """Send documents to Gemini and normalize the replies."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = 'gemini-2.5-flash',
        rate_limiter: Optional[RateLimiter] = None,
        infer: Optional[Callable[[bytes, str, str], str]] = None,
        max_retries: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the extractor.

        Args:
            api_key: Gemini API key (required unless infer is given)
            model_name: Gemini model to use
            rate_limiter: Shared pacing limiter (4s interval if None)
            infer: Replacement for the Gemini call, infer(bytes, mime_type, prompt) -> text
            max_retries: Attempts per document on quota/rate-limit errors
            sleep: Sleep function for quota backoff

        Raises:
            ConfigurationError: If no API key is available for the Gemini call
        """
        self.rate_limiter = rate_limiter or RateLimiter(4.0)
        self.max_retries = max_retries
        self.sleep = sleep

        if infer is not None:
            self.infer = infer
            return

        if not api_key:
            raise ConfigurationError("Missing GOOGLE_API_KEY in environment")

        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name)
        self.infer = self._infer_with_gemini
        print(f"Using Gemini model: {model_name}")

    def _infer_with_gemini(self, document_bytes: bytes, mime_type: str, prompt: str) -> str:
        response = self.model.generate_content([
            {'mime_type': mime_type, 'data': document_bytes},
            prompt,
        ])
        return response.text

    def extract(self, document_path: str) -> ExtractionResult:
        """
        Extract line items from one document. Never raises.

        Args:
            document_path: Path to a PDF or image

        Returns:
            ExtractionResult (success, or a typed failure)
        """
        document_id = os.path.basename(document_path)

        try:
            with open(document_path, 'rb') as f:
                document_bytes = f.read()
        except OSError as e:
            return ExtractionResult.failed(document_id, FailureKind.ILLEGIBLE, f"Cannot read document: {e}")

        mime_type = guess_mime_type(document_path)
        print(f"  Processing file: {document_id} ({len(document_bytes) / 1024:.2f} KB, {mime_type})")

        for attempt in range(self.max_retries):
            self.rate_limiter.wait()
            try:
                response_text = self.infer(document_bytes, mime_type, EXTRACTION_PROMPT)
            except Exception as e:
                if _is_quota_error(e) and attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt
                    print(f"  ⚠ Rate limit/quota error (attempt {attempt + 1}/{self.max_retries}), waiting {wait_time}s...")
                    self.sleep(wait_time)
                    continue
                return ExtractionResult.failed(document_id, FailureKind.SERVICE_ERROR, str(e) or type(e).__name__)

            result = parse_extraction_response(response_text, document_id)
            if result.success:
                print(f"  ✓ Extracted {len(result.items)} items from {document_id}")
            else:
                print(f"  ✗ {document_id}: {result.failure_kind.value}: {result.error}")
            return result

        return ExtractionResult.failed(document_id, FailureKind.SERVICE_ERROR, "Quota retries exhausted")

    def process_many(self, document_paths: Sequence[str]) -> List[ExtractionResult]:
        """Extract documents one after another, in input order."""
        return [self.extract(path) for path in document_paths]
