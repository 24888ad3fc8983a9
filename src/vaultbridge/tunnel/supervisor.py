"""Supervises a cloudflared quick tunnel pointed at the local dispatcher.

``start()`` resolves a binary through the provisioner, spawns
``cloudflared tunnel --url http://localhost:<port>`` without a shell and
scans its stdout/stderr for the ``https://<name>.trycloudflare.com``
hostname. The first hostname wins the race against the acquisition
timer; a timeout kills the process.

State machine::

    IDLE --start()--> STARTING --hostname--> ACTIVE --stop()/exit--> IDLE
                          |
                          +--timeout/exit/error/stop()--> IDLE
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

from vaultbridge.domain.models import TunnelSession, TunnelState
from vaultbridge.errors import (
    AcquisitionCancelledError,
    AlreadyRunningError,
    BinaryNotExecutableError,
    ProcessExitedPrematurelyError,
    ProcessSpawnError,
    TunnelError,
)
from vaultbridge.tunnel.acquisition import (
    DEFAULT_HOSTNAME_SUFFIX,
    AcquisitionContext,
    compile_hostname_pattern,
    make_decoder,
)
from vaultbridge.tunnel.provisioner import BinaryProvisioner

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class TunnelSupervisor:
    """Owns at most one cloudflared quick tunnel.

    Usage::

        supervisor = TunnelSupervisor(port=3000, provisioner=provisioner)
        url = await supervisor.start()
        ...
        await supervisor.stop()
    """

    def __init__(
        self,
        port: int,
        provisioner: BinaryProvisioner,
        acquisition_timeout: float = 30.0,
        diagnostic_buffer_size: int = 500,
        hostname_suffix: str = DEFAULT_HOSTNAME_SUFFIX,
        kill_timeout: float = 5.0,
    ) -> None:
        self._port = port
        self._provisioner = provisioner
        self._acquisition_timeout = acquisition_timeout
        self._diagnostic_buffer_size = diagnostic_buffer_size
        self._hostname_pattern = compile_hostname_pattern(hostname_suffix)
        self._kill_timeout = kill_timeout
        self._state = TunnelState.IDLE
        self._session: TunnelSession | None = None
        self._pending: AcquisitionContext | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> TunnelState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is TunnelState.ACTIVE

    @property
    def public_url(self) -> str | None:
        """Public URL while active, otherwise None."""
        if self._session is None:
            return None
        return self._session.public_url

    @property
    def session(self) -> TunnelSession | None:
        return self._session

    @property
    def port(self) -> int:
        """Local dispatcher port the tunnel forwards to."""
        return self._port

    @port.setter
    def port(self, value: int) -> None:
        if self._state is not TunnelState.IDLE:
            raise AlreadyRunningError("Tunnel")
        self._port = value

    @property
    def local_url(self) -> str:
        return f"http://localhost:{self._port}"

    def get_public_url(self) -> str | None:
        return self.public_url

    async def start(self, prefer_managed_only: bool = False) -> str:
        """Open a quick tunnel and return its public URL.

        Raises:
            AlreadyRunningError: A tunnel is starting or active.
            TunnelError: Any provisioning, spawn or acquisition failure.
        """
        if self._state is not TunnelState.IDLE:
            raise AlreadyRunningError("Tunnel")

        self._state = TunnelState.STARTING
        context = AcquisitionContext(self._hostname_pattern, self._diagnostic_buffer_size)
        self._pending = context
        try:
            session = await self._acquire(context, prefer_managed_only)
        except BaseException:
            self._state = TunnelState.IDLE
            raise
        finally:
            self._pending = None

        self._session = session
        self._state = TunnelState.ACTIVE
        logger.info("Tunnel active: %s -> %s", session.public_url, session.local_url)
        return session.public_url

    async def stop(self) -> None:
        """Terminate the tunnel without waiting for the process to exit.

        During an in-flight start() the acquisition is cancelled and any
        spawned process is killed; the pending start() raises
        AcquisitionCancelledError.
        """
        context = self._pending
        if self._state is TunnelState.STARTING and context is not None:
            context.cancelled = True
            if context.process is not None:
                context.reject(
                    AcquisitionCancelledError(
                        "Tunnel stopped before a hostname was assigned",
                        context.diagnostics.text,
                    )
                )
                _send_signal(context.process, kill=True)
            logger.info("Tunnel start cancelled")
            return

        session = self._session
        if self._state is not TunnelState.ACTIVE or session is None:
            return

        self._session = None
        self._state = TunnelState.IDLE
        _send_signal(session.process, kill=False)
        logger.info("Tunnel %s stopped", session.public_url)

    async def _acquire(self, context: AcquisitionContext, prefer_managed_only: bool) -> TunnelSession:
        location = await self._provisioner.resolve(prefer_managed_only)
        if context.cancelled:
            raise AcquisitionCancelledError("Tunnel start was cancelled during provisioning")

        process = await self._spawn(location.path)
        context.process = process
        if context.cancelled:
            # stop() ran while the spawn was in flight
            await self._kill(process)
            raise AcquisitionCancelledError("Tunnel start was cancelled while spawning cloudflared")
        logger.info("Started cloudflared (pid=%s) for %s", process.pid, self.local_url)

        readers = [
            self._track(self._pump(process.stdout, context, "stdout")),
            self._track(self._pump(process.stderr, context, "stderr")),
        ]
        self._track(self._watch_exit(process, readers, context))
        context.arm_timer(self._acquisition_timeout)

        try:
            public_url = await context.outcome
            if context.cancelled:
                raise AcquisitionCancelledError(
                    "Tunnel stopped before start() completed", context.diagnostics.text
                )
        except BaseException as e:
            if isinstance(e, TunnelError):
                logger.warning("Tunnel acquisition failed: %s", e)
            await self._kill(process)
            raise
        finally:
            context.close()

        return TunnelSession(
            process=process,
            public_url=public_url,
            binary=location,
            local_url=self.local_url,
        )

    async def _spawn(self, path: Path) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                str(path),
                "tunnel",
                "--url",
                self.local_url,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise BinaryNotExecutableError(f"Cannot execute cloudflared at {path}: {e}") from e
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start cloudflared at {path}: {e}") from e

    async def _pump(self, stream: asyncio.StreamReader, context: AcquisitionContext, source: str) -> None:
        """Feed one output stream into the acquisition context until EOF."""
        decoder = make_decoder()
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            logger.debug("cloudflared: %s", text.rstrip())
            # Keeps draining after the race is decided so the pipe never fills
            context.feed(text, source)

    async def _watch_exit(
        self,
        process: asyncio.subprocess.Process,
        readers: list[asyncio.Task[None]],
        context: AcquisitionContext,
    ) -> None:
        # Drain the pipes first so a hostname printed right before exit still wins
        await asyncio.wait(readers)
        returncode = await process.wait()

        if context.reject(ProcessExitedPrematurelyError(returncode, context.diagnostics.text)):
            return

        session = self._session
        if session is not None and session.process is process:
            logger.warning(
                "cloudflared exited unexpectedly (code %s); tunnel %s is gone",
                returncode,
                session.public_url,
            )
            self._session = None
            self._state = TunnelState.IDLE

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        _send_signal(process, kill=True)
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_timeout)
        except asyncio.TimeoutError:
            logger.warning("cloudflared (pid=%s) did not exit after kill", process.pid)

    def _track(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


def _send_signal(process: asyncio.subprocess.Process, kill: bool) -> None:
    if process.returncode is not None:
        return
    try:
        if kill:
            process.kill()
        else:
            process.terminate()
    except ProcessLookupError:
        pass
