"""
Pocketbook - Source Package

Back end for a shared expense tracker. Receipts arrive as text,
voice transcripts or photos, an LLM turns them into structured
invoices, and the invoices are filed into shared "pockets".

DESIGN PRINCIPLES:
1. The LLM extracts, the validator decides
2. Fail early, fail visibly
3. One invoice, one transaction
4. Every step is auditable
5. Identity is passed in, never looked up from ambient state
"""

__version__ = "1.0.0"
__author__ = "Pocketbook Team"
