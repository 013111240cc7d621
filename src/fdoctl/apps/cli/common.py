from __future__ import annotations

import json
import os
import traceback
from dataclasses import asdict, is_dataclass
from enum import Enum
from functools import wraps
from pathlib import Path
from typing import Any

import typer

from fdoctl.services.context import build_context
from fdoctl.services.errors import FdoError, StepFailed
from fdoctl.services.pipeline import Driver
from fdoctl.services.settings import Settings


def settings_of(ctx: typer.Context) -> Settings:
    obj = ctx.ensure_object(dict)
    settings = obj.get("settings")
    if settings is None:
        raise typer.BadParameter("settings were not loaded")
    return settings


def make_driver(ctx: typer.Context) -> Driver:
    obj = ctx.ensure_object(dict)
    factory = obj.get("context_factory") or build_context
    driver_ctx = factory(settings_of(ctx))
    ctx.call_on_close(driver_ctx.close)
    return Driver(driver_ctx)


def _default(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Path, bytes)):
        return str(value) if isinstance(value, Path) else value.hex()
    return str(value)


def echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=_default))


def run_safe(func):
    """Turn driver errors into a red message naming the failed step and exit code 1."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except FdoError as exc:
            if os.getenv("FDOCTL_CLI_DEBUG") == "1":
                traceback.print_exc()
            if isinstance(exc, StepFailed):
                typer.secho(f"step '{exc.step}' failed: {exc.cause}", fg=typer.colors.RED, err=True)
            else:
                typer.secho(f"error: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)

    return wrapper
