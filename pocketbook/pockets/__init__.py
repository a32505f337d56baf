"""Pocket resolution package."""

from pocketbook.pockets.resolver import PocketResolver

__all__ = ["PocketResolver"]
