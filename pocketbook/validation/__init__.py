"""Validation package."""

from pocketbook.validation.validator import ExtractionValidator

__all__ = ["ExtractionValidator"]
