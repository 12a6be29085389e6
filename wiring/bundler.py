"""Build deployment artifacts for Lambda functions.

Each function gets a :class:`BundleJob`. Without a command the job stages its
sources into a fresh directory; with a command it runs that external build
step (in the source directory, ``BUNDLE_OUTPUT_DIR`` pointing at the fresh
directory) and uses whatever it writes there. Jobs are independent and run
concurrently; all of them must finish before the resource graph is wired.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from common.errors import BundleError
from common.naming import param_case

logger = logging.getLogger(__name__)

BUNDLE_OUTPUT_ENV_VAR = "BUNDLE_OUTPUT_DIR"


@dataclass(frozen=True)
class BundleJob:
    """One artifact to build.

    Attributes:
        name: Name used in logs and errors.
        sources: ``(source, destination)`` pairs copied into the artifact when no
            command is given; a destination of ``"."`` copies a directory's contents.
        command: Optional external build command.
        cwd: Working directory of the command (defaults to the first source).
    """

    name: str
    sources: tuple[tuple[Path, str], ...] = field(default_factory=tuple)
    command: tuple[str, ...] | None = None
    cwd: Path | None = None


@dataclass(frozen=True)
class BundleResult:
    name: str
    artifact_dir: Path


def _copy_sources(sources: tuple[tuple[Path, str], ...], artifact_dir: Path) -> None:
    for source, destination in sources:
        target = artifact_dir / destination
        if source.is_dir():
            shutil.copytree(source, target, dirs_exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)


async def _run_command(job: BundleJob, artifact_dir: Path) -> None:
    cwd = job.cwd or (job.sources[0][0] if job.sources else None)
    env = {**os.environ, BUNDLE_OUTPUT_ENV_VAR: str(artifact_dir)}

    try:
        process = await asyncio.create_subprocess_exec(
            *job.command,
            cwd=cwd,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        raise BundleError(job.name, list(job.command), None, str(e)) from e

    stdout, _ = await process.communicate()
    output = stdout.decode("utf-8", errors="replace") if stdout else ""

    if process.returncode != 0:
        raise BundleError(job.name, list(job.command), process.returncode, output)

    if output:
        logger.debug(f"Bundle output for {job.name}:\n{output}")

    if not any(artifact_dir.iterdir()):
        raise BundleError(
            job.name,
            list(job.command),
            process.returncode,
            f"nothing was written to ${BUNDLE_OUTPUT_ENV_VAR}",
        )


def reset_work_dir(work_dir: Path) -> Path:
    """Empty ``work_dir``, creating it if needed."""
    if work_dir.exists():
        shutil.rmtree(work_dir)
    work_dir.mkdir(parents=True)
    return work_dir


async def bundle(job: BundleJob, work_dir: Path | None = None) -> BundleResult:
    """Build one artifact.

    Raises:
        BundleError: If the command cannot be started, fails or produces nothing.
    """
    artifact_dir = Path(tempfile.mkdtemp(prefix=f"{param_case(job.name)}-", dir=work_dir))

    if job.command:
        logger.info(f"Bundling {job.name}: {' '.join(job.command)}")
        await _run_command(job, artifact_dir)
    else:
        logger.info(f"Staging {job.name}")
        await asyncio.to_thread(_copy_sources, job.sources, artifact_dir)

    return BundleResult(name=job.name, artifact_dir=artifact_dir)


async def bundle_all(jobs: list[BundleJob], work_dir: Path | None = None) -> dict[str, BundleResult]:
    """Build all artifacts concurrently; the first failure aborts the run."""
    results = await asyncio.gather(*(bundle(job, work_dir) for job in jobs))
    return {result.name: result for result in results}


def run_bundles(jobs: list[BundleJob], work_dir: Path | None = None) -> dict[str, BundleResult]:
    """Run :func:`bundle_all` to completion from synchronous code.

    The coroutine gets its own event loop on a worker thread, so this is safe
    to call while the Pulumi engine's loop is running.
    """
    if not jobs:
        return {}
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, bundle_all(jobs, work_dir)).result()
