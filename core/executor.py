"""
Local Executor - isolated execution of a single work item.

Every item runs in a freshly spawned process. Only the ComputationSpec
and the item cross the boundary on the way in, and only a result dict
comes back through a one-way pipe. A crash in the worker costs one
item, never dispatcher state.

Thread mode keeps the same contract (spec in, dict out) without the
process boundary. It is meant for tests and computations that cannot be
imported in a fresh interpreter.
"""

import asyncio
import logging
import multiprocessing
from typing import Any, Dict, Optional

from computations.base import Computation, ComputationSpec, load_computation

logger = logging.getLogger(__name__)

WORKER_MODES = ("process", "thread")


def _compute(spec_data: Dict[str, Any], item: str) -> Dict[str, Any]:
    try:
        computation = load_computation(ComputationSpec.from_dict(spec_data))
        result = computation.compute_item(item)
    except Exception as e:
        return {"ok": False, "error": f"{type(e).__name__}: {e}"}
    if not isinstance(result, str):
        return {"ok": False, "error": f"compute_item returned {type(result).__name__}, expected str"}
    return {"ok": True, "result": result}


def _run_item(spec_data: Dict[str, Any], item: str, result_conn: Any) -> None:
    """Worker process entry point."""
    try:
        result_conn.send(_compute(spec_data, item))
    finally:
        result_conn.close()


def _compute_in_process(spec_data: Dict[str, Any], item: str) -> Dict[str, Any]:
    ctx = multiprocessing.get_context("spawn")
    parent_conn, child_conn = ctx.Pipe(duplex=False)
    proc = ctx.Process(target=_run_item, args=(spec_data, item, child_conn), daemon=True)
    proc.start()
    child_conn.close()
    try:
        return parent_conn.recv()
    except EOFError:
        proc.join()
        return {"ok": False, "error": f"worker exited with code {proc.exitcode}"}
    finally:
        parent_conn.close()
        proc.join()


class LocalExecutor:
    """
    Runs work items of one computation off the event loop.

    run() never raises: any failure is logged and reported as None,
    which leaves the slot empty for the next cycle.
    """

    def __init__(self, computation: Computation, mode: str = "process"):
        if mode not in WORKER_MODES:
            raise ValueError(f"Unknown worker mode {mode!r}, expected one of {WORKER_MODES}")
        self.mode = mode
        self._spec_data = computation.spec().to_dict()

    async def run(self, item: str) -> Optional[str]:
        logger.debug(f"[WORKER] Starting {self.mode} computation of {item!r}")
        target = _compute_in_process if self.mode == "process" else _compute
        loop = asyncio.get_running_loop()
        try:
            outcome = await loop.run_in_executor(None, target, self._spec_data, item)
        except Exception as e:
            logger.error(f"[WORKER] Could not run {item!r}: {e}", exc_info=True)
            return None

        if not outcome.get("ok"):
            logger.error(f"[WORKER] Computation of {item!r} failed: {outcome.get('error')}")
            return None

        logger.debug(f"[WORKER] Computation of {item!r} completed")
        return outcome["result"]
