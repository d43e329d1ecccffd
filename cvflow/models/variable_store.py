"""
Per-session variable bindings.

A VariableStore maps variable names to the last value written for one
conversation session. Values are kept as strings; numeric and boolean
comparisons coerce inside the condition evaluator.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Iterator, Mapping


@dataclass(frozen=True)
class VariableWrite:
    """One write into the store, kept for debugging"""
    name: str
    value: str
    node_id: Optional[str]
    step: int
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def to_text(value: Any) -> str:
    """Render a value the way the authoring tool stringifies it"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class VariableStore(Mapping[str, str]):
    """
    Mapping from variable name to last-written value.

    Only the interpreter writes to it, and only when a question's answer is
    committed. Variables are never deleted mid-session; ``clear`` is reserved
    for session reset.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None, keep_history: bool = True):
        self._values: Dict[str, str] = {}
        self._history: List[VariableWrite] = []
        self._keep_history = keep_history
        for name, value in (initial or {}).items():
            self.set(name, value)

    def set(self, name: str, value: Any, node_id: Optional[str] = None, step: int = 0) -> None:
        text = to_text(value)
        self._values[name] = text
        if self._keep_history:
            self._history.append(VariableWrite(
                name=name,
                value=text,
                node_id=node_id,
                step=step,
                timestamp=datetime.now(timezone.utc).isoformat()
            ))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(name, default)

    def snapshot(self) -> Dict[str, str]:
        """Detached copy of the current bindings"""
        return dict(self._values)

    @property
    def history(self) -> List[VariableWrite]:
        return list(self._history)

    def clear(self) -> None:
        self._values.clear()
        self._history.clear()

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VariableStore({self._values!r})"
