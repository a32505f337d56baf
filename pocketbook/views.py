"""
View Cache

Read views (dashboard, invoice list, analysis, pockets) are computed
from the full tables and cached per view. Writes drop whole views
rather than patching entries, since every aggregate on a view may
change when one invoice is added or removed.
"""

from copy import deepcopy
from typing import Any, Hashable, Optional

import structlog

from pocketbook.models.invoice import View


class ViewCache:
    """
    In-process cache of computed read views.

    Values are copied in and out, so callers may modify what they get.
    """

    def __init__(self):
        self._entries: dict[View, dict[Hashable, Any]] = {view: {} for view in View}
        self._logger = structlog.get_logger(__name__)

    def get(self, view: View, key: Hashable) -> Optional[Any]:
        value = self._entries[view].get(key)
        return deepcopy(value) if value is not None else None

    def set(self, view: View, key: Hashable, value: Any) -> None:
        self._entries[view][key] = deepcopy(value)

    def size(self, view: View) -> int:
        return len(self._entries[view])

    def invalidate(self, *views: View) -> None:
        """Drop every cached entry of the given views."""
        for view in views:
            self._entries[view].clear()
        self._logger.debug("views_invalidated", views=[view.value for view in views])

    def clear(self) -> None:
        self.invalidate(*View)


# Views touched by any invoice write
INVOICE_VIEWS = (View.HOME, View.INVOICES, View.ANALYSIS)

# Views touched by pocket changes (names and pocket lists show up everywhere)
POCKET_VIEWS = (View.HOME, View.INVOICES, View.ANALYSIS, View.POCKETS)
