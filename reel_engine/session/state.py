"""Session-scoped state shared by handle between pipeline components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Set


@dataclass
class SessionState:
    """Liveness and artifact bookkeeping for one automated session.

    ``is_running`` is the cooperative cancellation flag every wait loop checks.
    It starts armed so a fresh orchestrator can cold-start. ``stop`` and
    ``cancel`` disarm it for good; starting a session never re-arms it.
    """

    is_active: bool = False
    is_running: bool = True
    exclusion_set: Set[str] = field(default_factory=set)

    def replace_exclusions(self, references: Iterable[str]) -> Set[str]:
        """Install a fresh exclusion set and return it."""

        self.exclusion_set = {ref for ref in references if ref}
        return self.exclusion_set

    def cancel(self) -> None:
        self.is_running = False


__all__ = ["SessionState"]
