"""
Invoice Extraction Agent

Turns an unstructured receipt (free text, a speech transcript or a photo)
into the raw JSON text of an invoice, using Gemini.

BOUNDARIES:
- CAN: Read text and images, propose summary/date/total/items
- CANNOT: Persist anything
- CANNOT: Vouch for the numbers - the answer is best-effort and is
  validated downstream (see pocketbook.validation)

The agent makes exactly one call per request. There is no retry; a
re-submission by the user is the retry.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from pocketbook.config import GeminiSettings, get_settings
from pocketbook.errors import (
    EmptyResponseError,
    ExtractionServiceError,
    ExtractionTimeoutError,
    InvalidInputError,
)
from pocketbook.models.invoice import ImageInput, ItemCategory


IMAGE_PROMPT = "Parse this invoice."


def build_system_instruction(now: Optional[datetime] = None) -> str:
    """
    Build the fixed instruction that pins down the JSON shape.

    The current date is included so that relative dates
    ("yesterday", "last Friday") resolve to a calendar date.
    """
    now = now or datetime.utcnow()
    categories = ", ".join(category.value for category in ItemCategory)

    return f"""Current date is {now.isoformat()}. You are an intelligent invoice parser.
Extract a comprehensive summary, date, total amount, and line items from the invoice.
Instead of just a merchant name, create a "summary" that describes the transaction in Indonesian, e.g., "Makan Siang di McDonald's" or "Belanja Bulanan di Indomaret".

The output must be a single valid JSON object with exactly this structure:
{{
  "summary": "string",
  "date": "YYYY-MM-DD",
  "totalAmount": number,
  "items": [
    {{
      "name": "string",
      "quantity": number,
      "unitPrice": number,
      "totalPrice": number,
      "category": "string"
    }}
  ]
}}

Rules:
- "category" must be one of: {categories}
- Auto-categorize each item into one of the categories.
- All amounts are plain JSON numbers without currency symbols.
- If the source uses "." as a thousands separator and "," as the decimal separator (e.g. "Rp15.000" or "1.250,50"), normalize to a plain integer or float (15000, 1250.5).
- If the quantity is implicit (e.g., "Nasi Goreng"), assume 1.
- If the date is not given, use the current date.
- Respond with ONLY the JSON object, no explanation."""


class InvoiceExtractionAgent:
    """
    Structured-extraction client for receipts.

    RESPONSIBILITIES:
    - Build the instruction and the user content (text or image)
    - Make one bounded call to the model
    - Hand back the raw answer text

    The caller may cancel the surrounding task at any time; the pending
    model call is cancelled with it.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model_factory: Optional[Callable[[str], Any]] = None,
    ):
        """
        Args:
            settings: Gemini settings. Loaded from the environment if None.
            model_factory: Builds a model object exposing
                generate_content_async() from a system instruction.
                Defaults to a configured genai.GenerativeModel.
        """
        self._settings = settings or get_settings().gemini
        self._model_factory = model_factory or self._default_model_factory
        if model_factory is None:
            genai.configure(api_key=self._settings.api_key)

    def _default_model_factory(self, system_instruction: str):
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=system_instruction,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            },
        )

    @staticmethod
    def build_contents(
        raw_text: Optional[str],
        image: Optional[ImageInput],
    ) -> list:
        """
        Build the user content for the request.

        Text takes precedence over the image when both are present.
        """
        if raw_text and raw_text.strip():
            return [raw_text]
        if image is not None:
            return [
                IMAGE_PROMPT,
                {"mime_type": image.mime_type, "data": image.data},
            ]
        raise InvalidInputError("Please provide either text or an image.")

    async def extract(
        self,
        raw_text: Optional[str] = None,
        image: Optional[ImageInput] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Ask the model for the invoice JSON.

        Args:
            raw_text: Receipt text or voice transcript
            image: Receipt photo
            timeout: Seconds to wait for the model; defaults to
                the configured request_timeout_seconds

        Returns:
            The raw answer text (expected to be a JSON object)

        Raises:
            InvalidInputError: Neither text nor image was given
            ExtractionTimeoutError: No answer within the timeout
            ExtractionServiceError: Transport or API failure
            EmptyResponseError: The answer had no text
        """
        contents = self.build_contents(raw_text, image)
        model = self._model_factory(build_system_instruction())
        limit = timeout if timeout is not None else self._settings.request_timeout_seconds

        try:
            response = await asyncio.wait_for(
                model.generate_content_async(contents),
                timeout=limit,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionTimeoutError(
                f"Extraction did not finish within {limit:g} seconds"
            ) from e
        except google_exceptions.GoogleAPIError as e:
            raise ExtractionServiceError(f"Extraction service failed: {e}") from e

        return self._response_text(response)

    @staticmethod
    def _response_text(response) -> str:
        """Pull the answer text out of a model response."""
        try:
            text = response.text
        except ValueError as e:
            # Raised by genai when the candidate has no text part
            # (e.g. blocked by safety filters)
            raise EmptyResponseError(f"Model returned no content: {e}") from e

        if not text or not text.strip():
            raise EmptyResponseError("Model returned an empty response")
        return text.strip()
