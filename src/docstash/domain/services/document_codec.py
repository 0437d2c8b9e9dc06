"""Encoding of documents to and from their stored JSON text."""

import json
import uuid
from typing import Any

from docstash.core.exceptions import ValidationError


class DocumentCodec:
    """Stateless JSON codec for stored documents."""

    @staticmethod
    def encode(data: dict[str, Any]) -> str:
        """Encode a document as compact JSON.

        Raises:
            ValidationError: If the document holds values JSON cannot represent.
        """
        try:
            return json.dumps(data, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Document is not JSON serializable: {e}") from e

    @staticmethod
    def decode(text: str | bytes) -> dict[str, Any]:
        """Decode stored JSON text into a document dict.

        Raises:
            ValidationError: If the text is not a JSON object.
        """
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ValidationError(f"Stored document is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError("Stored document is not a JSON object")
        return data

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())
