from __future__ import annotations

import logging
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .firmware import FirmwareDescriptor

log = logging.getLogger("fwagent.installer")

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

Spawn = Callable[..., subprocess.Popen]


@dataclass
class UpdateInstaller:
    """Persists a completed firmware image and starts it on handoff."""

    install_dir: Path
    spawn: Spawn = subprocess.Popen

    def target_path(self, descriptor: FirmwareDescriptor) -> Path:
        return self.install_dir / descriptor.target_identity

    def install(self, descriptor: FirmwareDescriptor, image: bytes | bytearray) -> Path:
        """Write ``image`` as ``{title}-{version}`` and mark it executable.

        The checksum carried by the descriptor is not verified.
        """

        path = self.target_path(descriptor)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        try:
            tmp.write_bytes(bytes(image))
            tmp.chmod(tmp.stat().st_mode | _EXEC_BITS)
            tmp.replace(path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        log.info("installed firmware %s (%d bytes)", path, len(image))
        return path

    def launch(self, path: Path) -> subprocess.Popen:
        """Start the installed image as a detached process."""

        resolved = path.resolve()
        log.info("starting %s", resolved)
        return self.spawn(
            [str(resolved)],
            cwd=str(resolved.parent),
            start_new_session=True,
        )
