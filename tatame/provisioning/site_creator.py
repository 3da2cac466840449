"""
TATAME Provisioning - WordPress site creation

Creates a WordPress site on a customer VPS that already runs WordOps:

    connect -> download add-site.sh -> run it -> parse credentials -> save

The script prints ``PHASE n:`` markers while it works and a JSON
credentials block when it is done (see tatame.provisioning.output).
One creation runs at a time per service instance; there is no retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from tatame.events import Emit, EventType
from tatame.provisioning.output import SiteCredentials, detect_phase, parse_credentials
from tatame.provisioning.ssh import SSHSession, VPSCredentials, shell_quote
from tatame.shared.errors import ProvisioningBusyError, ProvisioningError, RemoteCommandError
from tatame.shared.settings import ADD_SITE_REMOTE_PATH, ADD_SITE_SCRIPT_URL
from tatame.shared.utils import truncate

logger = logging.getLogger("tatame.provisioning.site")

SessionFactory = Callable[[], SSHSession]


def _noop_emit(event_type: EventType, payload: dict[str, Any]) -> None:
    return None


@dataclass
class SiteCreationOptions:
    user_id: str
    credentials: VPSCredentials
    domain: str
    admin_email: str
    admin_user: str = "admin"
    template_url: str = ""
    php_version: str = "8.1"
    enable_cache: bool = True
    enable_ssl: bool = True
    enable_redis: bool = True

    def script_args(self) -> list[str]:
        """Positional arguments of add-site.sh, in order."""
        return [
            self.domain,
            self.admin_email,
            self.admin_user or "admin",
            self.template_url or "",
            self.php_version or "8.1",
            "true" if self.enable_cache else "false",
            "true" if self.enable_ssl else "false",
            "true" if self.enable_redis else "false",
        ]


@dataclass
class VPSReadiness:
    is_ready: bool
    has_wordops: bool
    wordops_version: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_ready": self.is_ready,
            "has_wordops": self.has_wordops,
            "wordops_version": self.wordops_version,
            "error": self.error,
        }


class SiteCreationService:
    """
    Runs add-site.sh over SSH and records the resulting site.

    Args:
        site_store: WordPressSiteStore the new site is saved to
        vps_store: optional VpsConfigStore that tracks sites per VPS
        emit: default event sink; create_site() may pass its own
        session_factory: builds the SSH session (swapped out in tests)
    """

    def __init__(
        self,
        site_store: Any,
        vps_store: Any | None = None,
        emit: Emit | None = None,
        session_factory: SessionFactory = SSHSession,
        script_url: str = ADD_SITE_SCRIPT_URL,
        remote_path: str = ADD_SITE_REMOTE_PATH,
    ) -> None:
        self.site_store = site_store
        self.vps_store = vps_store
        self.emit = emit or _noop_emit
        self.session_factory = session_factory
        self.script_url = script_url
        self.remote_path = remote_path
        self._creating = False

    @property
    def is_running(self) -> bool:
        return self._creating

    async def create_site(self, options: SiteCreationOptions, emit: Emit | None = None) -> SiteCredentials:
        if self._creating:
            raise ProvisioningBusyError("Site creation is already running")

        self._creating = True
        emit = emit or self.emit
        session = self.session_factory()
        host = options.credentials.host

        try:
            logger.info(f"Starting site creation: {options.domain} on {host} for {options.user_id}")

            await session.connect(options.credentials)
            emit(EventType.VPS_CONNECTED, {"host": host})

            credentials = await self._execute_creation_script(session, options, emit)
            await self._save_site(options, credentials)

            emit(
                EventType.SITE_CREATED,
                {
                    "user_id": options.user_id,
                    "domain": options.domain,
                    "url": credentials.url,
                    "message": "Site created successfully",
                },
            )
            logger.info(f"Site creation completed: {options.domain} on {host}")
            return credentials

        except Exception as exc:
            logger.error(f"Site creation failed for {options.domain} on {host}: {exc}")
            emit(EventType.SITE_ERROR, {"error": str(exc), "host": host, "domain": options.domain})
            raise
        finally:
            self._creating = False
            await session.dispose()

    async def check_vps_readiness(self, credentials: VPSCredentials) -> VPSReadiness:
        """Report whether WordOps is installed. Never raises."""
        session = self.session_factory()
        try:
            await session.connect(credentials)
            which = await session.exec_command('which wo 2>/dev/null || echo "not_found"')
            version = await session.exec_command('wo --version 2>/dev/null || echo "not_found"')

            has_wordops = "not_found" not in which.stdout
            wordops_version = None if "not_found" in version.stdout else version.stdout.strip() or None
            return VPSReadiness(
                is_ready=has_wordops,
                has_wordops=has_wordops,
                wordops_version=wordops_version,
            )
        except Exception as exc:
            logger.warning(f"VPS readiness check failed for {credentials.host}: {exc}")
            return VPSReadiness(is_ready=False, has_wordops=False, error=str(exc))
        finally:
            await session.dispose()

    # =========================================================================
    # Script execution
    # =========================================================================

    async def _execute_creation_script(
        self,
        session: SSHSession,
        options: SiteCreationOptions,
        emit: Emit,
    ) -> SiteCredentials:
        emit(EventType.STEP_START, {"step": "download", "name": "Downloading site creation script", "progress": 10})
        await self._download_script(session)
        emit(EventType.STEP_COMPLETE, {"step": "download", "name": "Script downloaded successfully", "progress": 20})

        chmod = await session.exec_command(f"chmod +x {shell_quote(self.remote_path)}")
        if not chmod.ok:
            raise RemoteCommandError(
                f"Failed to make script executable: {chmod.stderr}",
                exit_code=chmod.code,
                stderr=chmod.stderr,
            )

        emit(EventType.STEP_START, {"step": "execute", "name": "Creating WordPress site", "progress": 30})

        def on_stdout(chunk: str) -> None:
            logger.info(f"Script output: {truncate(chunk, 200)}")
            emit(EventType.OUTPUT, {"stream": "stdout", "text": chunk})
            phase = detect_phase(chunk)
            if phase is not None:
                emit(EventType.STEP_START, phase.as_payload())

        def on_stderr(chunk: str) -> None:
            logger.warning(f"Script stderr: {truncate(chunk, 200)}")
            emit(EventType.OUTPUT, {"stream": "stderr", "text": f"[ERROR] {chunk}"})

        logger.info(
            f"Executing site creation script: domain={options.domain} "
            f"php={options.php_version} cache={options.enable_cache} "
            f"ssl={options.enable_ssl} redis={options.enable_redis}"
        )
        args = " ".join(shell_quote(a) for a in options.script_args())
        result = await session.exec_command(
            f"{shell_quote(self.remote_path)} {args}",
            on_stdout=on_stdout,
            on_stderr=on_stderr,
        )
        logger.info(f"Script exited with code {result.code}")

        if not result.ok:
            raise RemoteCommandError(
                f"Site creation script failed with exit code {result.code}: {result.stderr}",
                exit_code=result.code,
                stderr=result.stderr,
            )

        credentials = parse_credentials(result.stdout)
        emit(EventType.STEP_COMPLETE, {"step": "execute", "name": "WordPress site created successfully", "progress": 100})

        logger.info("Cleaning up script from VPS")
        await session.exec_command(f"rm -f {shell_quote(self.remote_path)}")
        return credentials

    async def _download_script(self, session: SSHSession) -> None:
        """wget first, curl as fallback; both failing is fatal."""
        url = shell_quote(self.script_url)
        path = shell_quote(self.remote_path)

        logger.info(f"Downloading add-site script from {self.script_url}")
        wget = await session.exec_command(f"wget {url} -O {path}")
        if wget.ok:
            return

        logger.info("wget failed, trying curl as fallback")
        curl = await session.exec_command(f"curl -fsSL {url} -o {path}")
        if not curl.ok:
            raise RemoteCommandError(
                f"Failed to download script: wget: {wget.stderr}, curl: {curl.stderr}",
                exit_code=curl.code,
                stderr=curl.stderr,
            )

    # =========================================================================
    # Persistence
    # =========================================================================

    async def _save_site(self, options: SiteCreationOptions, credentials: SiteCredentials) -> None:
        """Insert the site, or refresh credentials when the user already has it."""
        vps = options.credentials
        try:
            existing = await self.site_store.find_site(
                options.user_id, url=credentials.url, domain=credentials.domain
            )
            if existing:
                logger.warning(f"Site {credentials.domain} already registered, updating instead")
                await self.site_store.update_site(
                    existing["id"],
                    options.user_id,
                    username=credentials.username,
                    application_password=credentials.application_password,
                    connection_status="connected",
                    connection_error=None,
                )
            else:
                await self.site_store.create_site(
                    options.user_id,
                    name=f"WordPress Site - {credentials.domain}",
                    url=credentials.url,
                    username=credentials.username,
                    application_password=credentials.application_password,
                    domain=credentials.domain,
                    site_type="managed",
                    ip_address=vps.host,
                    vps_config={
                        "host": vps.host,
                        "port": vps.port,
                        "username": vps.username,
                        "has_access": True,
                    },
                    wordpress_version="latest",
                    php_version=credentials.php_version or options.php_version,
                    ssl_enabled=bool(credentials.ssl_enabled),
                    cache_enabled=bool(credentials.cache_enabled),
                    redis_enabled=bool(credentials.redis_enabled),
                    connection_status="connected",
                )

            if self.vps_store is not None:
                config = await self.vps_store.upsert_config(
                    options.user_id, vps.host, vps.username, vps.port
                )
                await self.vps_store.add_site(config["id"], credentials.domain)
        except Exception as exc:
            logger.error(f"Failed to save site {credentials.domain}: {exc}")
            raise ProvisioningError("Failed to save site to database") from exc
