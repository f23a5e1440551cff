from __future__ import annotations

import logging
import random
import socket
import threading
from typing import Callable

from spinup.services.errors import NoFreePortsException

logger = logging.getLogger(__name__)

PortProbe = Callable[[str, int], bool]


def probe_port(address: str, port: int) -> bool:
    """Return True when a TCP listener can be bound to ``address:port`` right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((address, port))
        except OSError:
            return False
    return True


class PortAllocator:
    """Hands out host ports from an inclusive range.

    Each candidate is probed with a transient bind and, when free, recorded in
    a reservation table, so concurrent callers in this process never receive
    the same port. Reservations are only dropped through ``release``.
    """

    def __init__(
        self,
        *,
        start: int = 30000,
        end: int = 40000,
        attempts: int = 100,
        bind_address: str = "0.0.0.0",
        probe: PortProbe | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if not 0 < start <= end <= 65535:
            raise ValueError(f"invalid port range {start}-{end}")
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.start = start
        self.end = end
        self.attempts = attempts
        self.bind_address = bind_address
        self._probe = probe or probe_port
        self._rng = rng or random.Random()
        self._reserved: set[int] = set()
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            for attempt in range(1, self.attempts + 1):
                candidate = self._rng.randint(self.start, self.end)
                if candidate in self._reserved:
                    continue
                if not self._probe(self.bind_address, candidate):
                    logger.debug("Port %s busy (attempt %s/%s)", candidate, attempt, self.attempts)
                    continue
                self._reserved.add(candidate)
                logger.info("Allocated host port %s after %s attempt(s)", candidate, attempt)
                return candidate
        logger.warning(
            "No free port in range %s-%s after %s attempts", self.start, self.end, self.attempts
        )
        raise NoFreePortsException(
            f"No free port in range {self.start}-{self.end} after {self.attempts} attempts"
        )

    def release(self, port: int) -> None:
        with self._lock:
            self._reserved.discard(port)
        logger.info("Released host port %s", port)

    @property
    def reserved(self) -> frozenset[int]:
        with self._lock:
            return frozenset(self._reserved)
