"""User-level operations composed from the driver components.

Every operation is a list of named steps executed in order; the first failing
step halts the operation and is reported through :class:`StepFailed`.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from fdoctl.ports.launcher import LaunchError
from fdoctl.services import fixture
from fdoctl.services.context import DriverContext
from fdoctl.services.device_client import DeviceClient
from fdoctl.services.errors import FdoError, ProcessError, StepFailed
from fdoctl.services.fetcher import PinnedRepo
from fdoctl.services.http.probe import RetryPolicy
from fdoctl.services.http.sequencer import render
from fdoctl.services.orchestrator import ManagedProcess
from fdoctl.services.settings import ServiceSettings

_log = logging.getLogger("fdoctl.pipeline")

Step = tuple[str, Callable[[], Any]]


def run_steps(steps: Sequence[Step]) -> dict[str, Any]:
    results: dict[str, Any] = {}
    for name, action in steps:
        _log.info("==> %s", name)
        try:
            results[name] = action()
        except FdoError as exc:
            _log.error("step '%s' failed: %s", name, exc)
            raise StepFailed(name, exc) from exc
    return results


class Driver:
    def __init__(self, ctx: DriverContext) -> None:
        self.ctx = ctx
        self.settings = ctx.settings

    # ------------------------------------------------------------------ provisioning
    def _provision(self) -> dict[str, Any]:
        fx = fixture.ensure_fixture(self.settings.fixture_path())
        material = self.ctx.provisioner.provision_all()
        return {
            "fixture": str(fx.root),
            "created": [str(item.path) for pair in material for item in pair if item.created],
        }

    def setup(self) -> dict[str, Any]:
        return run_steps([("setup", self._provision)])["setup"]

    def fetch_repos(self) -> list[PinnedRepo]:
        return run_steps([("fetch-repos", lambda: self.ctx.fetcher.ensure_all(self.settings.repos))])["fetch-repos"]

    # ------------------------------------------------------------------ services
    def _command_for(self, svc: ServiceSettings) -> list[str]:
        values = self.settings.template_vars(port=svc.port, name=svc.name)
        try:
            argv = [render(a, values) for a in svc.command]
        except KeyError as exc:
            raise ProcessError(f"service '{svc.name}': {exc.args[0]}", name=svc.name) from exc
        if self.ctx.orchestrator.launcher.kind == "container":
            if not svc.image:
                raise ProcessError(f"service '{svc.name}' has no image configured", name=svc.name)
            # the image entrypoint replaces the local executable
            return [svc.image, *argv[1:]]
        return argv

    def _start_all(self, wait: bool) -> list[ManagedProcess]:
        procs = [self.ctx.orchestrator.start(svc.name, self._command_for(svc), [svc.port]) for svc in self.settings.services]
        if wait:
            policy = RetryPolicy.from_settings(self.settings.http.retry)
            for svc in self.settings.services:
                url = self.settings.http.base_url(svc.port) + svc.health_path
                self.ctx.orchestrator.wait_ready(svc.name, url, policy, timeout=self.settings.http.timeout)
        return procs

    def start_services(self, *, wait: bool = True) -> list[ManagedProcess]:
        results = run_steps([("setup", self._provision), ("start-services", lambda: self._start_all(wait))])
        return results["start-services"]

    def _stop_all(self) -> list[str]:
        orchestrator = self.ctx.orchestrator
        failed = orchestrator.stop_all()
        if orchestrator.launcher.kind == "container":
            # containers started outside this state file are still stopped by name
            for svc in self.settings.services:
                try:
                    orchestrator.launcher.terminate(svc.name, None)
                except LaunchError:
                    _log.warning("failed to stop container %s", svc.name, exc_info=True)
                    failed.append(svc.name)
        return failed

    def stop_services(self) -> list[str]:
        return run_steps([("stop-services", self._stop_all)])["stop-services"]

    def clean(self) -> dict[str, Any]:
        """Best-effort teardown: stop services, then remove the fixture."""
        failed = self._stop_all()
        removed = fixture.clean(self.settings.fixture_path())
        return {"stop_failed": failed, "fixture_removed": removed}

    # ------------------------------------------------------------------ http
    def health_check(self, policy: Optional[RetryPolicy] = None) -> list[str]:
        result = run_steps([("health-check", lambda: self.ctx.api.health_check(policy))])["health-check"]
        return [str(r.url) for r in result.responses]

    def publish_rendezvous_config(self) -> None:
        run_steps([("publish-rendezvous-config", self.ctx.api.publish_rendezvous_config)])

    def get_rendezvous_config(self) -> dict[str, Any]:
        return run_steps([("get-rendezvous-config", self.ctx.api.get_rendezvous_config)])["get-rendezvous-config"]

    def send_ownership_voucher(self, guid: str) -> None:
        run_steps([("send-ownership-voucher", lambda: self.ctx.api.send_ownership_voucher(guid))])

    # ------------------------------------------------------------------ end to end
    def run_onboarding(self, guid: Optional[str] = None) -> dict[str, Any]:
        client = DeviceClient(self.settings.client, self.settings.template_vars())
        state: dict[str, Any] = {"guid": guid}

        def _device_init() -> None:
            state["di_output"] = client.device_init()

        def _resolve_guid() -> str:
            if not state["guid"]:
                try:
                    state["guid"] = client.guid(state.get("di_output") or "")
                except ProcessError:
                    state["guid"] = client.guid()
            return state["guid"]

        steps: list[Step] = [
            ("setup", self._provision),
            ("start-services", lambda: self._start_all(True)),
            ("publish-rendezvous-config", self.ctx.api.publish_rendezvous_config),
        ]
        # a caller-supplied GUID refers to an already initialized device
        if not guid:
            steps += [("device-init", _device_init), ("device-guid", _resolve_guid)]
        steps += [
            ("send-ownership-voucher", lambda: self.ctx.api.send_ownership_voucher(state["guid"])),
            ("transfer-ownership", client.transfer_ownership),
        ]
        run_steps(steps)
        return {"guid": state["guid"]}
