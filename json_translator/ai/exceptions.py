"""
Translator Exceptions

Kept apart from service.py so providers.py can raise them without a
circular import.
"""


class TranslationError(Exception):
    """Translator failure (provider, quota or response parsing) with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": str(self), "code": self.code or "translation_error"}
        if self.details:
            payload["details"] = self.details
        return payload
