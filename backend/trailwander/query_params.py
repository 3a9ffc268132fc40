# backend/trailwander/query_params.py
from __future__ import annotations

from typing import Any, Dict, List


class ParamBinder:
    """
    Accumulates bind parameters for one dynamically built statement.

    Every call to :meth:`add` stores the value and hands back the placeholder
    that refers to it. Placeholders are 1-based and follow push order
    (``:p1``, ``:p2``, ...), so the Nth placeholder written into the SQL always
    names the Nth value pushed. One binder is used for one search call only.

        binder = ParamBinder()
        sql = f"t.city = {binder.add('Huntsville')}"   # -> "t.city = :p1"
        session.execute(text(sql), binder.params)
    """

    def __init__(self, prefix: str = "p"):
        self.prefix = prefix
        self._values: List[Any] = []

    def add(self, value: Any) -> str:
        self._values.append(value)
        return f":{self._name(len(self._values))}"

    def _name(self, index: int) -> str:
        return f"{self.prefix}{index}"

    @property
    def count(self) -> int:
        return len(self._values)

    @property
    def values(self) -> List[Any]:
        """Positional view of the bound values."""
        return list(self._values)

    @property
    def params(self) -> Dict[str, Any]:
        """Mapping for ``session.execute``; keys are ordered like the placeholders."""
        return {self._name(idx): value for idx, value in enumerate(self._values, start=1)}

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParamBinder(count={len(self._values)})"
