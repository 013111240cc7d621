from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Union

StrOrPath = Union[str, Path]


class GitClient(Protocol):
    def clone(self, url: str, dir: StrOrPath) -> None: ...

    def fetch(self, dir: StrOrPath) -> None: ...

    def checkout_detached(self, dir: StrOrPath, commit: str) -> None: ...

    def head(self, dir: StrOrPath) -> Optional[str]: ...

    def remote_url(self, dir: StrOrPath) -> Optional[str]: ...

    def set_remote_url(self, dir: StrOrPath, url: str) -> None: ...
