"""Subprocess execution with output streamed into task logs."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import shlex
from collections.abc import Mapping, Sequence
from pathlib import Path

from native_build.tasks.errors import ProcessError
from native_build.tasks.log_sink import LogSink
from native_build.tasks.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

_READ_CHUNK_BYTES = 65_536


class ProcessExecutor:
    """Spawns external commands, at most ``rate_limiter.max_running`` at a time."""

    def __init__(self, rate_limiter: RateLimiter) -> None:
        self.rate_limiter = rate_limiter
        self.invocations = 0

    async def exec(  # noqa: PLR0913
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Path,
        env: Mapping[str, str],
        log_sink: LogSink,
        capture: bool = False,
    ) -> str:
        """Run ``command`` and return its stdout when ``capture`` is set, else ``""``.

        The command line goes to the log before a slot is acquired; the child
        process itself is only created once the rate limiter lets us through.
        """

        argv = [command, *args]
        log_sink.write(f"$ {shlex.join(argv)}\n")
        return await self.rate_limiter.run(
            lambda: self._spawn(argv, cwd=cwd, env=env, log_sink=log_sink, capture=capture),
        )

    async def _spawn(
        self,
        argv: list[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        log_sink: LogSink,
        capture: bool,
    ) -> str:
        command, args = argv[0], argv[1:]
        self.invocations += 1
        logger.debug("Spawning %s in %s", shlex.join(argv), cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=dict(env),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as error:
            log_sink.write(f"{command}: {error}\n")
            raise ProcessError(command, args, spawn_error=error) from error

        captured: list[str] | None = [] if capture else None
        try:
            await asyncio.gather(
                _pump(process.stdout, log_sink, captured),
                _pump(process.stderr, log_sink, None),
            )
            exit_code = await process.wait()
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            if not log_sink.closed:
                log_sink.write(f"{command}: killed\n")
            raise
        if exit_code != 0:
            raise ProcessError(command, args, exit_code=exit_code)
        return "".join(captured) if captured is not None else ""


async def _pump(
    stream: asyncio.StreamReader | None,
    log_sink: LogSink,
    captured: list[str] | None,
) -> None:
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        text = decoder.decode(chunk, final=not chunk)
        if text:
            log_sink.write(text)
            if captured is not None:
                captured.append(text)
        if not chunk:
            return
