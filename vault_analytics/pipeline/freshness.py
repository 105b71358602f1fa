import threading
from typing import Any, Callable, NamedTuple

import structlog

from ..utils import sha256_json

log = structlog.get_logger()


class Ticket(NamedTuple):
    seq: int
    params_hash: str


class RequestGate:
    """Latest-wins gate between concurrent fetches and the engine.

    Each fetch takes a ticket for its parameters; only a result carrying the
    most recently issued ticket is handed on. Results from superseded
    parameters are dropped so the engine never sees stale input.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._lock = threading.Lock()
        self._seq = 0

    def issue(self, params: dict | None = None) -> Ticket:
        with self._lock:
            self._seq += 1
            return Ticket(self._seq, sha256_json(params or {}))

    def is_current(self, ticket: Ticket) -> bool:
        with self._lock:
            return ticket.seq == self._seq

    def deliver(self, ticket: Ticket, result: Any, consume: Callable[[Any], Any]) -> bool:
        # consume runs under the lock so no newer ticket can be issued mid-delivery
        with self._lock:
            current = ticket.seq == self._seq
            if current:
                consume(result)
        if not current:
            log.info("stale_result_dropped", gate=self.name, ticket=ticket.seq, params_hash=ticket.params_hash[:12])
        return current
