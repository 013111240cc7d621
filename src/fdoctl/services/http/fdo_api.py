"""Request sequences for the FDO manufacturer, rendezvous and owner services."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

from fdoctl.services.errors import SequenceError
from fdoctl.services.http.probe import RetryPolicy
from fdoctl.services.http.sequencer import ProbeStep, Sequencer, SequenceResult
from fdoctl.services.settings import Settings

TEXT_PLAIN = {"Content-Type": "text/plain"}


@dataclass(frozen=True, slots=True)
class RendezvousInfo:
    dns: str
    device_port: str
    owner_port: str
    protocol: str
    ip: str


@dataclass(frozen=True, slots=True)
class OwnerRedirect:
    dns: str
    port: str
    protocol: str
    ip: str


class FdoApi:
    def __init__(self, settings: Settings, sequencer: Sequencer) -> None:
        self._settings = settings
        self._sequencer = sequencer

    # ------------------------------------------------------------------ payloads
    def rendezvous_info(self) -> list[RendezvousInfo]:
        http = self._settings.http
        rv_port = str(self._settings.service("rendezvous").port)
        return [RendezvousInfo(dns=http.host, device_port=rv_port, owner_port=rv_port, protocol=http.protocol, ip=http.ip)]

    def owner_redirect(self) -> list[OwnerRedirect]:
        http = self._settings.http
        owner_port = str(self._settings.service("owner").port)
        return [OwnerRedirect(dns=http.host, port=owner_port, protocol=http.protocol, ip=http.ip)]

    # ------------------------------------------------------------------ steps
    def _policy(self) -> RetryPolicy:
        return RetryPolicy.from_settings(self._settings.http.retry)

    def health_steps(self, policy: RetryPolicy | None = None) -> list[ProbeStep]:
        policy = policy or self._policy()
        return [
            ProbeStep(
                url=self._settings.http.base_url(svc.port) + svc.health_path,
                name=f"health {svc.role}",
                retry=policy,
                timeout=self._settings.http.timeout,
            )
            for svc in self._settings.services
        ]

    def publish_rendezvous_steps(self) -> list[ProbeStep]:
        timeout = self._settings.http.timeout
        return [
            ProbeStep(
                url=self._settings.service_url("manufacturer") + "/api/v1/rvinfo",
                method="POST",
                payload=[asdict(x) for x in self.rendezvous_info()],
                headers=TEXT_PLAIN,
                name="post rvinfo",
                timeout=timeout,
            ),
            ProbeStep(
                url=self._settings.service_url("owner") + "/api/v1/owner/redirect",
                method="POST",
                payload=[asdict(x) for x in self.owner_redirect()],
                headers=TEXT_PLAIN,
                name="post owner redirect",
                timeout=timeout,
            ),
        ]

    def get_rendezvous_steps(self) -> list[ProbeStep]:
        timeout = self._settings.http.timeout
        return [
            ProbeStep(url=self._settings.service_url("manufacturer") + "/api/v1/rvinfo", name="get rvinfo", timeout=timeout, save_as="rvinfo"),
            ProbeStep(url=self._settings.service_url("owner") + "/api/v1/owner/redirect", name="get owner redirect", timeout=timeout, save_as="redirect"),
        ]

    def send_voucher_steps(self) -> list[ProbeStep]:
        """Steps parameterized by ``{guid}``: fetch voucher, hand it to the owner, trigger TO0."""
        voucher = self._settings.voucher
        timeout = self._settings.http.timeout
        return [
            ProbeStep(
                url=self._settings.service_url("manufacturer") + voucher.fetch_path,
                name="fetch voucher",
                timeout=timeout,
                save_as="voucher",
            ),
            ProbeStep(
                url=self._settings.service_url("owner") + voucher.upload_path,
                method="POST",
                payload="{voucher}",
                headers=TEXT_PLAIN,
                name="upload voucher",
                timeout=timeout,
            ),
            ProbeStep(
                url=self._settings.service_url("owner") + voucher.to0_path,
                name="trigger to0",
                timeout=timeout,
            ),
        ]

    # ------------------------------------------------------------------ operations
    def health_check(self, policy: RetryPolicy | None = None) -> SequenceResult:
        return self._sequencer.run_sequence(self.health_steps(policy))

    def publish_rendezvous_config(self) -> SequenceResult:
        return self._sequencer.run_sequence(self.publish_rendezvous_steps())

    def get_rendezvous_config(self) -> dict[str, Any]:
        result = self._sequencer.run_sequence(self.get_rendezvous_steps())
        return {
            "rvinfo": _parse_json(result.context["rvinfo"]),
            "owner_redirect": _parse_json(result.context["redirect"]),
        }

    def send_ownership_voucher(self, guid: str) -> SequenceResult:
        guid = guid.strip()
        if not guid:
            raise SequenceError(0, ValueError("device GUID must not be empty"), step_name="fetch voucher")
        return self._sequencer.run_sequence(self.send_voucher_steps(), {"guid": guid})


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return text
