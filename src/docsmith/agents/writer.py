import asyncio
import logging
from pathlib import Path

from docsmith.cancellation import CancellationToken
from docsmith.services.filesystem import PathLocks, WorkspaceFileSystem

logger = logging.getLogger(__name__)


async def write_artifact(
    fs: WorkspaceFileSystem,
    path: Path,
    content: str,
    locks: PathLocks,
    cancel: CancellationToken | None = None,
    overwrite: bool = True,
) -> str:
    """Write the final document. The only side effect of a pipeline run.

    Writers to the same destination are serialized; the cancellation token is
    checked once the lock is held so a cancelled run never writes. With
    `overwrite` off an existing destination fails the write, also under the lock.
    """
    path = path.resolve()
    async with locks.for_path(str(path)):
        if cancel is not None:
            cancel.raise_if_cancelled("write_artifact")
        if not overwrite and await asyncio.to_thread(fs.exists, str(path)):
            raise FileExistsError(f"Refusing to overwrite existing file {path}")

        await asyncio.to_thread(fs.mkdir_recursive, str(path.parent))
        if not content.endswith("\n"):
            content += "\n"
        await asyncio.to_thread(fs.write_file, str(path), content)

    logger.info("Wrote %d chars to %s", len(content), path)
    return str(path)
