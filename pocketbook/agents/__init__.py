"""AI Agents package."""

from pocketbook.agents.extraction_agent import (
    InvoiceExtractionAgent,
    build_system_instruction,
)

__all__ = [
    "InvoiceExtractionAgent",
    "build_system_instruction",
]
