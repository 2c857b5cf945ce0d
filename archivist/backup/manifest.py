"""Manifest assembly and persistence."""

import platform
import socket
import time
from pathlib import Path
from typing import Optional

from .._utils import logger
from ..exceptions import FilesystemFailure
from .models import BackupManifest, BackupRun, DatabaseArtifact, FileArtifact, ManifestMetadata, ServerInfo
from .utils import load_manifest, save_manifest

MANIFEST_FILE = "manifest.json"


def server_info() -> ServerInfo:
    return ServerInfo(
        hostname=socket.gethostname(),
        python_version=platform.python_version(),
        os=f"{platform.system()} {platform.release()}",
    )


class ManifestBuilder:
    """Assemble the per-run manifest and persist it next to the artifacts."""

    def build(
        self,
        run: BackupRun,
        database: Optional[DatabaseArtifact] = None,
        files: Optional[FileArtifact] = None,
    ) -> BackupManifest:
        metadata = ManifestMetadata(
            date=run.run_id,
            timestamp=int(time.time()),
            type=run.run_type,
            duration=run.duration,
            total_size=run.total_size,
            server=server_info(),
            errors=list(run.errors),
            warnings=list(run.warnings),
        )
        return BackupManifest(metadata=metadata, database=database, files=files)

    async def write(self, manifest: BackupManifest, run_dir: Path) -> Path:
        """Write ``manifest.json`` atomically into the run directory.

        Sections that were not produced are omitted from the document.
        """
        manifest_path = run_dir / MANIFEST_FILE
        try:
            await save_manifest(manifest.model_dump(mode="json", exclude_none=True), manifest_path)
        except OSError as e:
            raise FilesystemFailure(f"Cannot write manifest {manifest_path}: {e}") from e

        logger.info(f"Manifest written: {manifest_path}")
        return manifest_path

    async def load(self, run_dir: Path) -> BackupManifest:
        """Read and validate the manifest of a run directory.

        Raises:
            FilesystemFailure: the manifest does not exist
        """
        manifest_path = run_dir / MANIFEST_FILE
        if not manifest_path.exists():
            raise FilesystemFailure(f"Manifest not found: {manifest_path}")

        data = await load_manifest(manifest_path)
        return BackupManifest.model_validate(data)
