"""
Dartminator Test Configuration
==============================

[QA] Central pytest configuration with fixtures for all test types:
- Unit tests: Isolated, no sockets, fast
- Integration tests: Real UDP / gRPC on localhost
- E2E tests: Full node stack with discovery and heartbeats

[FIXTURES]
- settings: Config with short timeouts and thread workers
- fake_prober / fake_invoker: Scripted discovery and peer calls
- free_udp_port / free_tcp_port: Ports for localhost sockets

Usage:
    pytest tests/unit/          # Fast unit tests
    pytest tests/integration/   # Integration tests
    pytest tests/e2e/           # End-to-end tests
"""

import asyncio
import logging
import socket
import sys
from collections import deque
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Config, ComputeConfig, NetworkConfig
from computations.base import Computation


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (localhost sockets)")
    config.addinivalue_line("markers", "e2e: End-to-end tests (full stack)")
    config.addinivalue_line("markers", "slow: Slow tests (skip with -m 'not slow')")


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their path."""
    for item in items:
        path = str(item.fspath)
        if "/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in path:
            item.add_marker(pytest.mark.e2e)

        # Mark async tests
        if asyncio.iscoroutinefunction(getattr(item, "obj", None)):
            item.add_marker(pytest.mark.asyncio)


# ============================================================================
# Logging Configuration
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("grpc").setLevel(logging.ERROR)


# ============================================================================
# Config Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def settings() -> Config:
    """Config with short timeouts and in-process workers."""
    return Config(
        network=NetworkConfig(
            discovery_port=0,
            rpc_port=0,
            bind_host="127.0.0.1",
            broadcast_address="127.0.0.1",
            max_peers=4,
            discovery_timeout=0.2,
            rpc_connect_timeout=1.0,
            rpc_call_timeout=10.0,
            heartbeat_interval=0.05,
            heartbeat_stale_after=2.0,
        ),
        compute=ComputeConfig(
            worker_mode="thread",
            retry_backoff=0.0,
            max_cycles=None,
        ),
    )


def _free_port(kind: int) -> int:
    with socket.socket(socket.AF_INET, kind) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(scope="function")
def free_udp_port() -> int:
    try:
        return _free_port(socket.SOCK_DGRAM)
    except OSError:
        pytest.skip("UDP sockets unavailable in sandbox")


@pytest.fixture(scope="function")
def free_tcp_port() -> int:
    try:
        return _free_port(socket.SOCK_STREAM)
    except OSError:
        pytest.skip("TCP sockets unavailable in sandbox")


# ============================================================================
# Test Computations
# ============================================================================

class LetterComputation(Computation):
    """Items are the characters of the seed; results are "res(<item>)"."""

    calls: List[str] = []

    @property
    def name(self) -> str:
        return "Letters"

    def derive_items(self, seed: str) -> List[str]:
        return list(seed)

    def compute_item(self, item: str) -> str:
        LetterComputation.calls.append(item)
        return f"res({item})"

    def compose_results(self, results: List[str]) -> str:
        return ",".join(results)


class FlakyComputation(LetterComputation):
    """Fails the first `failures` attempts of every item."""

    attempts: Dict[str, int] = {}

    def __init__(self, failures: int = 1):
        super().__init__(failures=failures)
        self.failures = failures

    def compute_item(self, item: str) -> str:
        seen = FlakyComputation.attempts.get(item, 0)
        FlakyComputation.attempts[item] = seen + 1
        if seen < self.failures:
            raise RuntimeError(f"flaky failure #{seen + 1} on {item}")
        return super().compute_item(item)


class BrokenComputation(LetterComputation):
    """Never succeeds."""

    def compute_item(self, item: str) -> str:
        raise ValueError(f"cannot compute {item}")


class SlowComputation(LetterComputation):
    """Sleeps before answering (thread workers only)."""

    def __init__(self, delay: float = 0.2):
        super().__init__(delay=delay)
        self.delay = delay

    def compute_item(self, item: str) -> str:
        import time

        time.sleep(self.delay)
        return super().compute_item(item)


@pytest.fixture(autouse=True)
def reset_test_computations():
    LetterComputation.calls.clear()
    FlakyComputation.attempts.clear()
    yield
    LetterComputation.calls.clear()
    FlakyComputation.attempts.clear()


# ============================================================================
# Fakes for the dispatch engine
# ============================================================================

class FakeProber:
    """Returns scripted discovery rounds: one list of hosts per probe() call."""

    def __init__(self, rounds: Optional[Sequence[Sequence[str]]] = None, max_peers: int = 4):
        self.rounds = deque(list(r) for r in (rounds or []))
        self.max_peers = max_peers
        self.calls: List[Tuple[List[str], int]] = []

    async def probe(self, known: Sequence[str], limit: int) -> List[str]:
        self.calls.append((list(known), limit))
        found = self.rounds.popleft() if self.rounds else []
        room = max(0, min(limit, self.max_peers) - len(known))
        return [host for host in found if host not in known][:room]


class FakeInvoker:
    """
    Answers peer calls from a per-host behaviour table.

    A behaviour receives the item and returns the result or None.
    Unknown hosts behave as unreachable.
    """

    def __init__(self, behaviour: Optional[Dict[str, Callable[[str], Optional[str]]]] = None):
        self.behaviour = behaviour or {}
        self.calls: List[Tuple[str, str]] = []

    async def invoke(self, host: str, item: str) -> Optional[str]:
        self.calls.append((host, item))
        await asyncio.sleep(0)
        handler = self.behaviour.get(host)
        return handler(item) if handler else None


@pytest.fixture(scope="function")
def fake_prober() -> FakeProber:
    return FakeProber()


@pytest.fixture(scope="function")
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()
