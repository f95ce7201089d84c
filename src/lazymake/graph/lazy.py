from __future__ import annotations

import logging
from typing import List, Optional

from lazymake.deps.store import DependencyStore
from lazymake.errors import DependencyDataError, DependencyRecordNotFound

log = logging.getLogger("lazymake.graph")


class LazyPrerequisites:
    """
    Deferred prerequisite expansion for one target.

    The dependency record is read the first time `resolve()` is called;
    later calls return the memoized list. A new instance is created for
    every build run, so records are always re-read from disk.
    """

    def __init__(self, owner: str, record_name: str, store: DependencyStore) -> None:
        self.owner = owner
        self.record_name = record_name
        self.store = store
        self.calls = 0
        # the record existed but could not be used
        self.degraded = False
        self._resolved: Optional[List[str]] = None

    @property
    def resolved(self) -> bool:
        return self._resolved is not None

    def resolve(self) -> List[str]:
        if self._resolved is not None:
            return self._resolved

        self.calls += 1
        try:
            prereqs = self.store.read_record(self.record_name)
        except DependencyRecordNotFound:
            log.debug("No dependency record '%s' for '%s' yet", self.record_name, self.owner)
            prereqs = []
        except DependencyDataError as e:
            self.degraded = True
            log.warning(
                "Ignoring dependency record '%s' for '%s': %s",
                self.record_name, self.owner, e.reason,
            )
            prereqs = []

        self._resolved = [p for p in dict.fromkeys(prereqs) if p != self.owner]
        return self._resolved

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "unresolved"
        return f"LazyPrerequisites({self.owner!r} <- {self.record_name!r}, {state})"
