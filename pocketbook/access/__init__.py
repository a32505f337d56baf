"""Access control package."""

from pocketbook.access.gate import AccessGate, require_identity

__all__ = ["AccessGate", "require_identity"]
