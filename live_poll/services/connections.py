import threading
from dataclasses import dataclass
from typing import Dict, Optional

from live_poll.schemas.session import Role


@dataclass(frozen=True)
class Binding:
    connection_id: str
    role: Role
    session_code: str
    display_name: str


class ConnectionRegistry:
    """Back-references from a live connection to its role and session.

    Holds no session data, only what is needed to route an inbound action.
    """

    def __init__(self):
        self._bindings: Dict[str, Binding] = {}
        self._lock = threading.Lock()

    def bind(self, connection_id: str, role: Role, session_code: str, display_name: str) -> Binding:
        binding = Binding(connection_id, role, session_code, display_name)
        with self._lock:
            self._bindings[connection_id] = binding
        return binding

    def lookup(self, connection_id: str) -> Optional[Binding]:
        with self._lock:
            return self._bindings.get(connection_id)

    def unbind(self, connection_id: str) -> Optional[Binding]:
        with self._lock:
            return self._bindings.pop(connection_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
