"""Explicit wiring of settings into components; no module-level singletons."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from fdoctl.adapters.crypto.cryptography_engine import CryptographyEngine
from fdoctl.adapters.crypto.openssl_engine import OpenSSLEngine
from fdoctl.adapters.fs.path_provider import PathProvider
from fdoctl.adapters.git.cli_git import CliGitClient
from fdoctl.adapters.runtime.container import ContainerLauncher
from fdoctl.adapters.runtime.local import LocalLauncher
from fdoctl.ports.crypto import CryptoEngine
from fdoctl.ports.git import GitClient
from fdoctl.ports.launcher import ProcessLauncher
from fdoctl.services.crypto.provisioner import CertificateProvisioner
from fdoctl.services.fetcher import RepoFetcher
from fdoctl.services.http.client import HttpClient
from fdoctl.services.http.fdo_api import FdoApi
from fdoctl.services.http.probe import HttpProber
from fdoctl.services.http.sequencer import Sequencer
from fdoctl.services.orchestrator import ProcessOrchestrator
from fdoctl.services.settings import Settings


@dataclass(slots=True)
class DriverContext:
    settings: Settings
    paths: PathProvider
    provisioner: CertificateProvisioner
    fetcher: RepoFetcher
    orchestrator: ProcessOrchestrator
    http: HttpClient
    prober: HttpProber
    sequencer: Sequencer
    api: FdoApi

    def close(self) -> None:
        self.http.close()


def make_engine(settings: Settings) -> CryptoEngine:
    if settings.crypto_engine == "openssl":
        return OpenSSLEngine(settings.openssl_bin)
    return CryptographyEngine()


def make_launcher(settings: Settings) -> ProcessLauncher:
    if settings.launcher == "container":
        return ContainerLauncher(settings.container_runtime, volumes=[settings.fixture_path()])
    return LocalLauncher()


def build_context(
    settings: Settings,
    *,
    engine: Optional[CryptoEngine] = None,
    git: Optional[GitClient] = None,
    launcher: Optional[ProcessLauncher] = None,
    transport: Optional[httpx.BaseTransport] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> DriverContext:
    paths = PathProvider(settings.fixture_path())
    http = HttpClient(timeout=settings.http.timeout, transport=transport)
    prober = HttpProber(http, sleep=sleep)
    sequencer = Sequencer(prober)
    launcher = launcher or make_launcher(settings)
    return DriverContext(
        settings=settings,
        paths=paths,
        provisioner=CertificateProvisioner(paths, engine or make_engine(settings)),
        fetcher=RepoFetcher(git or CliGitClient(), settings.repos_path()),
        orchestrator=ProcessOrchestrator(
            launcher,
            log_dir=paths.files_dir(),
            prober=prober,
            state_file=settings.state_path() / f"processes.{launcher.kind}.json",
        ),
        http=http,
        prober=prober,
        sequencer=sequencer,
        api=FdoApi(settings, sequencer),
    )
