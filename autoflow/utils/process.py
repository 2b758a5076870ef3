"""Invocation of external command-line collaborators.

Node executors never spawn processes directly; they go through a ToolRunner
so tests (and hosts with different process policies) can substitute their own.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Protocol, Union, runtime_checkable

from autoflow.utils.errors import ToolInvocationError

logger = logging.getLogger(__name__)

# Upper bound on captured output, matching the 1 MiB buffer tools were built for
MAX_OUTPUT_BYTES = 1024 * 1024


@runtime_checkable
class ToolRunner(Protocol):
    """Protocol for running an external command and capturing its stdout."""

    async def run(
        self,
        command: str,
        args: List[str],
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run ``command`` with ``args`` and return stripped stdout.

        Raises:
            ToolInvocationError: On non-zero exit, timeout, or launch failure
        """
        ...


class SubprocessToolRunner:
    """Run tools as child processes with asyncio.

    Arguments are passed as an argv list, never through a shell, so
    interpolated values cannot inject extra commands (the run-command node
    opts into a shell explicitly with ``bash -c``).
    """

    def __init__(self, max_output_bytes: int = MAX_OUTPUT_BYTES):
        self.max_output_bytes = max_output_bytes

    async def run(
        self,
        command: str,
        args: List[str],
        cwd: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        logger.debug("Running %s %s (cwd=%s, timeout=%s)", command, args, cwd, timeout)
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd) if cwd is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolInvocationError(command, f"could not start: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ToolInvocationError(command, f"timed out after {timeout}s")
        finally:
            # Also reached when the calling task is cancelled
            if process.returncode is None:
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        if len(stdout) > self.max_output_bytes:
            raise ToolInvocationError(
                command, f"output exceeded {self.max_output_bytes} bytes"
            )

        stderr_text = stderr.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            detail = stderr_text or f"exit code {process.returncode}"
            raise ToolInvocationError(
                command,
                detail,
                exit_code=process.returncode,
                stderr=stderr_text,
            )

        return stdout.decode("utf-8", errors="replace").strip()

    def __repr__(self) -> str:
        return f"SubprocessToolRunner(max_output_bytes={self.max_output_bytes})"
