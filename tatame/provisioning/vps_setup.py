"""
TATAME Provisioning - VPS setup

Installs the WordOps stack plus fail2ban and ufw on a fresh VPS with one
long remote command. The command prints little while it runs, so a ticker
emits canned progress steps at a fixed interval until it returns.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from tatame.events import Emit, EventType
from tatame.provisioning.ssh import SSHSession, VPSCredentials, shell_quote
from tatame.shared.errors import ProvisioningBusyError, RemoteCommandError
from tatame.shared.settings import GIT_USER_EMAIL, GIT_USER_NAME, VPS_SETUP_TICK_SECONDS
from tatame.shared.utils import truncate

logger = logging.getLogger("tatame.provisioning.vps")

SessionFactory = Callable[[], SSHSession]

TICKER_STEPS: tuple[tuple[int, str], ...] = (
    (15, "Configurando Git..."),
    (25, "Baixando WordOps..."),
    (45, "Instalando WordOps..."),
    (70, "Instalando stack (Nginx, PHP, MySQL)..."),
    (80, "Instalando fail2ban e ufw..."),
    (85, "Configurando fail2ban..."),
    (95, "Configurando firewall..."),
)

INSTALLED_FEATURES: dict[str, bool] = {
    "has_wordops": True,
    "has_nginx": True,
    "has_mysql": True,
    "has_php": True,
    "has_redis": True,
    "has_firewall": True,
}


def build_setup_command(git_name: str = GIT_USER_NAME, git_email: str = GIT_USER_EMAIL) -> str:
    """The whole installation as a single ``&&`` chain."""
    steps = [
        f"git config --global user.name {shell_quote(git_name)}",
        f"git config --global user.email {shell_quote(git_email)}",
        "wget -qO wo wops.cc",
        "bash wo",
        "wo stack install --all",
        "apt-get install -y fail2ban ufw",
        "systemctl enable fail2ban",
        "systemctl start fail2ban",
        "ufw --force enable",
        "ufw allow 22",
        "ufw allow 80",
        "ufw allow 443",
        'echo "WordOps installed with firewall configured!"',
    ]
    return " && ".join(steps)


def _noop_emit(event_type: EventType, payload: dict[str, Any]) -> None:
    return None


@dataclass
class VpsSetupOptions:
    user_id: str
    credentials: VPSCredentials


class VpsSetup:
    """
    Runs the WordOps installation over SSH.

    When a VpsConfigStore is given, the (user, host) record is created up
    front, setup log lines are appended as the run progresses and the record
    is marked configured on success.
    """

    def __init__(
        self,
        vps_store: Any | None = None,
        emit: Emit | None = None,
        session_factory: SessionFactory = SSHSession,
        tick_seconds: float = VPS_SETUP_TICK_SECONDS,
    ) -> None:
        self.vps_store = vps_store
        self.emit = emit or _noop_emit
        self.session_factory = session_factory
        self.tick_seconds = tick_seconds
        self._setting_up = False

    @property
    def is_running(self) -> bool:
        return self._setting_up

    async def setup_vps(self, options: VpsSetupOptions, emit: Emit | None = None) -> dict[str, Any]:
        if self._setting_up:
            raise ProvisioningBusyError("VPS setup is already running")

        self._setting_up = True
        emit = emit or self.emit
        creds = options.credentials
        session = self.session_factory()
        vps_id: str | None = None

        try:
            vps_id = await self._open_record(options)
            logger.info(f"Starting VPS setup on {creds.describe()}")
            emit(EventType.PROGRESS, {"step": "connecting", "progress": 5, "message": "Conectando ao servidor..."})

            await session.connect(creds)
            emit(EventType.VPS_CONNECTED, {"host": creds.host})
            await self._log(vps_id, "info", f"Connected to {creds.host}")

            def on_stdout(chunk: str) -> None:
                logger.info(f"Setup output: {truncate(chunk, 200)}")
                emit(EventType.OUTPUT, {"stream": "stdout", "text": chunk})

            def on_stderr(chunk: str) -> None:
                logger.warning(f"Setup stderr: {truncate(chunk, 200)}")
                emit(EventType.OUTPUT, {"stream": "stderr", "text": f"[ERROR] {chunk}"})

            ticker = asyncio.create_task(self._tick(emit))
            try:
                result = await session.exec_command(
                    build_setup_command(),
                    on_stdout=on_stdout,
                    on_stderr=on_stderr,
                )
            finally:
                ticker.cancel()

            if not result.ok:
                raise RemoteCommandError(
                    f"VPS setup failed with exit code {result.code}: {result.stderr}",
                    exit_code=result.code,
                    stderr=result.stderr,
                )

            emit(EventType.PROGRESS, {"step": "completed", "progress": 100, "message": "VPS configurada com sucesso!"})
            await self._mark_configured(vps_id)
            emit(
                EventType.VPS_SETUP_COMPLETE,
                {"host": creds.host, "message": "VPS setup completed successfully"},
            )
            logger.info(f"VPS setup completed on {creds.host}")
            return {
                "success": True,
                "host": creds.host,
                "vps_id": vps_id,
                "message": "VPS setup completed successfully",
            }

        except Exception as exc:
            logger.error(f"VPS setup failed on {creds.host}: {exc}")
            await self._log(vps_id, "error", str(exc))
            emit(EventType.VPS_SETUP_ERROR, {"error": str(exc), "host": creds.host})
            raise
        finally:
            self._setting_up = False
            await session.dispose()

    async def _tick(self, emit: Emit) -> None:
        for i, (progress, message) in enumerate(TICKER_STEPS):
            await asyncio.sleep(self.tick_seconds)
            emit(EventType.PROGRESS, {"step": f"step_{i}", "progress": progress, "message": message})

    # =========================================================================
    # VPS record
    # =========================================================================

    async def _open_record(self, options: VpsSetupOptions) -> str | None:
        if self.vps_store is None:
            return None
        creds = options.credentials
        config = await self.vps_store.upsert_config(
            options.user_id, creds.host, creds.username, creds.port
        )
        await self.vps_store.add_log(config["id"], "info", "VPS setup started")
        return config["id"]

    async def _mark_configured(self, vps_id: str | None) -> None:
        if vps_id is None:
            return
        await self.vps_store.mark_configured(vps_id, features=INSTALLED_FEATURES)
        await self._log(vps_id, "info", "WordOps installed with firewall configured")

    async def _log(self, vps_id: str | None, level: str, message: str) -> None:
        if vps_id is None:
            return
        try:
            await self.vps_store.add_log(vps_id, level, truncate(message, 1000))
        except Exception as exc:
            # a broken log write must not replace the setup outcome
            logger.warning(f"Could not record setup log for {vps_id}: {exc}")
