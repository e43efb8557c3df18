"""Concurrent, deadline-bounded disk health collection."""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Sequence

from diskmon.models import DeviceRecord, HealthVerdict
from diskmon.probes import HealthProbe, ProbeError, ProbeTimeout, probe_chain

logger = logging.getLogger(__name__)

DEFAULT_PER_PROBE_TIMEOUT = 30.0
DEFAULT_OVERALL_TIMEOUT = 90.0


@dataclass
class ProbeTask:
    """One probe run against one device. Consumed once, never retried."""

    device: DeviceRecord
    probe: HealthProbe
    per_probe_timeout: float
    overall_deadline: float
    started_at: float | None = None
    deadline: float | None = None

    def run(self) -> HealthVerdict:
        """Executed on a worker thread."""
        self.started_at = time.monotonic()
        self.deadline = min(self.started_at + self.per_probe_timeout, self.overall_deadline)
        verdict = self.probe.probe(self.device, self.deadline)
        if time.monotonic() > self.deadline:
            raise ProbeTimeout(f"answered after its {self.per_probe_timeout:g}s deadline")
        return verdict

    def expired(self, now: float) -> bool:
        return self.deadline is not None and now >= self.deadline


@dataclass
class _DeviceState:
    chain: list[HealthProbe]
    position: int = 0
    diagnostics: list[str] = field(default_factory=list)
    last_unknown: HealthVerdict | None = None

    def next_probe(self) -> HealthProbe | None:
        if self.position >= len(self.chain):
            return None
        probe = self.chain[self.position]
        self.position += 1
        return probe


class ProbeOrchestrator:
    """Run each device's fallback chain on a bounded worker pool.

    Devices are probed in parallel; within a device, backends are tried in
    order until one answers Passing or Failing. The calling thread does all
    scheduling and is the only writer of the verdict map.
    """

    def __init__(
        self,
        chain_factory: Callable[[DeviceRecord], Sequence[HealthProbe]] = probe_chain,
        max_workers: int = 8,
        poll_interval: float = 0.1,
    ) -> None:
        self.chain_factory = chain_factory
        self.max_workers = max(1, max_workers)
        self.poll_interval = poll_interval

    def collect(
        self,
        devices: Sequence[DeviceRecord],
        per_probe_timeout: float = DEFAULT_PER_PROBE_TIMEOUT,
        overall_timeout: float | None = None,
    ) -> dict[DeviceRecord, HealthVerdict]:
        """Resolve exactly one verdict per device within ``overall_timeout`` seconds.

        Args:
            devices: Devices to probe.
            per_probe_timeout: Budget for a single backend run.
            overall_timeout: Budget for the whole collection.

        Returns:
            Mapping with an entry for every device, Unknown where nothing answered.
        """
        if overall_timeout is None:
            overall_timeout = DEFAULT_OVERALL_TIMEOUT
        started = time.monotonic()
        overall_deadline = started + overall_timeout

        verdicts: dict[DeviceRecord, HealthVerdict] = {}
        if not devices:
            return verdicts

        states = {device: _DeviceState(list(self.chain_factory(device))) for device in devices}
        pending: dict[Future, ProbeTask] = {}
        # One task per device in flight and threads start lazily, so at most
        # min(devices, max_workers) run at once plus any abandoned stragglers.
        executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="diskmon-probe",
        )

        def advance(device: DeviceRecord) -> None:
            """Submit the next backend for ``device``, or settle it as Unknown."""
            state = states[device]
            if time.monotonic() >= overall_deadline:
                return
            probe = state.next_probe()
            if probe is None:
                last = state.last_unknown
                detail = "; ".join(state.diagnostics) or "no health backend available"
                self._record(verdicts, device, HealthVerdict.unknown(
                    source=last.source if last else "none",
                    detail=detail,
                    model=last.model if last else None,
                    serial=last.serial if last else None,
                    vendor=last.vendor if last else None,
                ))
                logger.info(f"No health verdict for {device.identifier}: {detail}")
                return
            task = ProbeTask(device, probe, per_probe_timeout, overall_deadline)
            pending[executor.submit(task.run)] = task

        try:
            for device in states:
                advance(device)

            while pending:
                now = time.monotonic()
                if now >= overall_deadline:
                    break

                done, _ = wait(
                    pending,
                    timeout=self._wait_timeout(pending.values(), now, overall_deadline),
                    return_when=FIRST_COMPLETED,
                )

                for future in done:
                    task = pending.pop(future)
                    self._settle(task, future, states[task.device], verdicts, advance)

                now = time.monotonic()
                for future, task in list(pending.items()):
                    if task.expired(now):
                        # Abandon: the probe's own deadline terminates its subprocess.
                        del pending[future]
                        future.cancel()
                        states[task.device].diagnostics.append(
                            f"{task.probe.name}: timed out after {task.per_probe_timeout:g}s"
                        )
                        logger.debug(f"{task.probe.name} abandoned for {task.device.identifier}")
                        advance(task.device)
        finally:
            for future in pending:
                future.cancel()
            executor.shutdown(wait=False, cancel_futures=True)

        for device, state in states.items():
            if device not in verdicts:
                detail = f"health probing timed out after {overall_timeout:g}s"
                if state.diagnostics:
                    detail += f" ({'; '.join(state.diagnostics)})"
                logger.warning(f"Health check timed out for disk: {device.identifier} ({overall_timeout:g}s)")
                self._record(verdicts, device, HealthVerdict.unknown(source="timeout", detail=detail))

        elapsed = time.monotonic() - started
        logger.info(f"Collected health for {len(verdicts)} device(s) in {elapsed:.2f}s")
        return verdicts

    def _settle(
        self,
        task: ProbeTask,
        future: Future,
        state: _DeviceState,
        verdicts: dict[DeviceRecord, HealthVerdict],
        advance: Callable[[DeviceRecord], None],
    ) -> None:
        name = task.probe.name
        try:
            verdict = future.result()
        except ProbeError as e:
            state.diagnostics.append(f"{name}: {e}")
            logger.debug(f"{name} gave no verdict for {task.device.identifier}: {e.kind}: {e}")
        except Exception as e:
            state.diagnostics.append(f"{name}: unexpected error: {e}")
            logger.debug(f"{name} crashed for {task.device.identifier}", exc_info=True)
        else:
            if verdict.is_decisive:
                self._record(verdicts, task.device, verdict)
                logger.debug(f"{task.device.identifier}: {verdict.status.value} via {name}")
                return
            state.diagnostics.append(f"{name}: {verdict.detail or 'status unknown'}")
            state.last_unknown = verdict
        advance(task.device)

    def _wait_timeout(self, tasks, now: float, overall_deadline: float) -> float:
        """Sleep until the nearest deadline; poll while tasks are still queued."""
        nearest = overall_deadline
        queued = False
        for task in tasks:
            if task.deadline is None:
                queued = True
            else:
                nearest = min(nearest, task.deadline)
        timeout = max(0.0, nearest - now)
        if queued:
            timeout = min(timeout, self.poll_interval)
        return timeout

    @staticmethod
    def _record(
        verdicts: dict[DeviceRecord, HealthVerdict],
        device: DeviceRecord,
        verdict: HealthVerdict,
    ) -> None:
        if device in verdicts:
            raise RuntimeError(f"Verdict for {device.identifier} already resolved")
        verdicts[device] = verdict
