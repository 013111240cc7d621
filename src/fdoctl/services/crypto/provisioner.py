"""Create-if-absent key pairs and self-signed certificates for the FDO roles."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from fdoctl.adapters.crypto.openssl_engine import OpenSSLCommandError
from fdoctl.adapters.fs.path_provider import PathProvider
from fdoctl.config import const
from fdoctl.ports.crypto import CryptoEngine, Subject
from fdoctl.services.crypto import pki
from fdoctl.services.errors import ProvisioningError
from fdoctl.services.fixture import make_user_rwx

_log = logging.getLogger("fdoctl.provisioner")


class Role(str, Enum):
    MANUFACTURER = "manufacturer"
    DEVICE_CA = "device_ca"
    OWNER = "owner"

    @property
    def common_name(self) -> str:
        return const.ROLE_COMMON_NAMES[self.value]


@dataclass(frozen=True, slots=True)
class KeyMaterial:
    role: Role
    path: Path
    data: bytes
    encoding: str = "DER"
    created: bool = False


@dataclass(frozen=True, slots=True)
class Certificate:
    role: Role
    path: Path
    data: bytes
    subject: str
    not_valid_before: str
    not_valid_after: str
    encoding: str = "PEM"
    created: bool = False


def _coerce_role(role: Role | str) -> Role:
    try:
        return Role(role)
    except ValueError:
        allowed = ", ".join(r.value for r in Role)
        raise ProvisioningError(f"unknown role '{role}' (expected one of: {allowed})", role=str(role)) from None


class CertificateProvisioner:
    def __init__(self, paths: PathProvider, engine: CryptoEngine, *, validity_days: int = const.CERT_VALIDITY_DAYS) -> None:
        self._paths = paths
        self._engine = engine
        self._validity_days = validity_days

    # ------------------------------------------------------------------ public
    def ensure_key_pair(self, role: Role | str) -> KeyMaterial:
        r = _coerce_role(role)
        path = self._paths.key_path(r.value)
        created = False
        if not path.is_file():
            _log.info("generating %s key with %s engine", r.value, self._engine.name)
            self._produce(r, path, self._engine.generate_key)
            created = True
        return KeyMaterial(role=r, path=path, data=path.read_bytes(), created=created)

    def ensure_certificate(
        self,
        role: Role | str,
        subject_cn: str | None = None,
        validity_days: int | None = None,
    ) -> Certificate:
        r = _coerce_role(role)
        days = self._validity_days if validity_days is None else validity_days
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ProvisioningError(f"validity must be a positive number of days, got {days!r}", role=r.value)
        path = self._paths.cert_path(r.value)
        created = False
        if not path.is_file():
            key = self.ensure_key_pair(r)
            subject = Subject(const.CERT_COUNTRY, const.CERT_ORGANIZATION, subject_cn or r.common_name)
            _log.info("self-signing %s certificate CN=%s for %d days", r.value, subject.common_name, days)
            self._produce(r, path, lambda out: self._engine.self_sign(key.path, out, subject, days))
            created = True
        data = path.read_bytes()
        try:
            cert = pki.load_certificate(path)
        except ValueError as exc:
            raise ProvisioningError(f"{path} is not a PEM certificate: {exc}", role=r.value) from exc
        return Certificate(
            role=r,
            path=path,
            data=data,
            subject=cert.subject.rfc4514_string(),
            not_valid_before=cert.not_valid_before_utc.isoformat(),
            not_valid_after=cert.not_valid_after_utc.isoformat(),
            created=created,
        )

    def provision_all(self) -> list[tuple[KeyMaterial, Certificate]]:
        result = []
        for role in Role:
            key = self.ensure_key_pair(role)
            cert = self.ensure_certificate(role)
            result.append((key, cert))
        make_user_rwx(self._paths.root)
        return result

    # ------------------------------------------------------------------ internals
    def _produce(self, role: Role, target: Path, write: Callable[[Path], None]) -> None:
        # The engine writes to a temporary name so an interrupted run never leaves a
        # partial file that would later be mistaken for existing material.
        tmp = target.with_name(f".{target.name}.tmp")
        tmp.unlink(missing_ok=True)
        try:
            write(tmp)
            if not tmp.is_file() or tmp.stat().st_size == 0:
                raise ProvisioningError(f"{self._engine.name} engine produced no output for {target.name}", role=role.value)
            os.replace(tmp, target)
        except ProvisioningError:
            raise
        except OpenSSLCommandError as exc:
            raise ProvisioningError(str(exc), role=role.value, returncode=exc.returncode) from exc
        except (OSError, ValueError) as exc:
            raise ProvisioningError(f"{self._engine.name} engine failed for {target.name}: {exc}", role=role.value) from exc
        finally:
            tmp.unlink(missing_ok=True)
