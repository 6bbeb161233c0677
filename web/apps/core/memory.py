"""Shared state for the in-process adapters.

The in-memory adapters of each app keep their records in one
``InMemoryDatabase`` so a single ``atomic()`` block can roll back
products, orders, coupons and replacements together, mirroring what
``django.db.transaction.atomic`` does for the ORM-backed repositories.
"""

import copy
from contextlib import contextmanager


class InMemoryDatabase:
    """Dictionary-of-tables store with snapshot/rollback transactions."""

    def __init__(self):
        self.tables: dict[str, dict] = {}

    def table(self, name: str) -> dict:
        return self.tables.setdefault(name, {})

    @contextmanager
    def atomic(self):
        """Restore every table to its prior state if the block raises."""
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self
        except BaseException:
            self.tables.clear()
            self.tables.update(snapshot)
            raise
