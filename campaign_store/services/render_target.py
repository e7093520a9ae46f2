from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence


class RenderTarget(ABC):
    """
    Abstract interface for anything that displays the filtered view (grid, chart, report).

    The controller only ever pushes whole sets through replace_data(); it never patches rows.
    """

    @abstractmethod
    def replace_data(self, records: Sequence[Dict[str, Any]]) -> None:
        pass

    @abstractmethod
    def get_data(self) -> List[Dict[str, Any]]:
        pass


class InMemoryRenderTarget(RenderTarget):
    """
    Headless render target: keeps the last pushed set and counts replacements.
    """

    def __init__(self) -> None:
        self._rows: List[Dict[str, Any]] = []
        self.replace_count = 0

    def replace_data(self, records: Sequence[Dict[str, Any]]) -> None:
        self._rows = list(records)
        self.replace_count += 1

    def get_data(self) -> List[Dict[str, Any]]:
        return list(self._rows)
