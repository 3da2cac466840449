"""
TATAME Provisioning - Blog creation

Creates a plain WordPress blog with ``wo site create`` on a VPS that
already runs WordOps, then reads the admin credentials back with
``wo site info --admin``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable

from tatame.events import Emit, EventType
from tatame.provisioning.output import detect_blog_progress, parse_wordops_admin
from tatame.provisioning.ssh import SSHSession, VPSCredentials, shell_quote
from tatame.shared.errors import ProvisioningBusyError, RemoteCommandError
from tatame.shared.settings import BLOG_ADMIN_USER, BLOG_DEFAULT_PASSWORD
from tatame.shared.utils import truncate

logger = logging.getLogger("tatame.provisioning.blog")

SessionFactory = Callable[[], SSHSession]


def _noop_emit(event_type: EventType, payload: dict[str, Any]) -> None:
    return None


@dataclass
class BlogOptions:
    user_id: str
    credentials: VPSCredentials
    domain: str


@dataclass
class BlogCreationResult:
    success: bool
    domain: str
    url: str
    admin_url: str
    admin_username: str
    admin_password: str
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def public_dict(self) -> dict[str, Any]:
        data = self.to_dict()
        data.pop("admin_password", None)
        return data


class BlogCreator:
    """Runs ``wo site create --wp`` and registers the new blog."""

    def __init__(
        self,
        site_store: Any | None = None,
        emit: Emit | None = None,
        session_factory: SessionFactory = SSHSession,
        admin_user: str = BLOG_ADMIN_USER,
        default_password: str = BLOG_DEFAULT_PASSWORD,
    ) -> None:
        self.site_store = site_store
        self.emit = emit or _noop_emit
        self.session_factory = session_factory
        self.admin_user = admin_user
        self.default_password = default_password
        self._creating = False

    @property
    def is_running(self) -> bool:
        return self._creating

    async def create_blog(self, options: BlogOptions, emit: Emit | None = None) -> BlogCreationResult:
        if self._creating:
            raise ProvisioningBusyError("Blog creation is already running")

        self._creating = True
        emit = emit or self.emit
        domain = options.domain.strip().lower()
        host = options.credentials.host
        session = self.session_factory()

        try:
            logger.info(f"Starting blog creation: {domain} on {host}")
            emit(EventType.PROGRESS, {"step": "connecting", "progress": 10, "message": "Conectando ao servidor..."})
            await session.connect(options.credentials)
            emit(EventType.VPS_CONNECTED, {"host": host})

            emit(EventType.PROGRESS, {"step": "creating", "progress": 30, "message": "Criando blog WordPress..."})

            def on_stdout(chunk: str) -> None:
                logger.info(f"WordOps output: {truncate(chunk, 200)}")
                emit(EventType.OUTPUT, {"stream": "stdout", "text": chunk})
                progress = detect_blog_progress(chunk)
                if progress is not None:
                    emit(EventType.PROGRESS, progress)

            def on_stderr(chunk: str) -> None:
                emit(EventType.OUTPUT, {"stream": "stderr", "text": f"[ERROR] {chunk}"})

            result = await session.exec_command(
                f"wo site create {shell_quote(domain)} --wp "
                f"--user {shell_quote(self.admin_user)} --pass {shell_quote(self.default_password)}",
                on_stdout=on_stdout,
                on_stderr=on_stderr,
            )
            if not result.ok:
                raise RemoteCommandError(
                    f"Blog creation failed: {result.stderr or 'Unknown error'}",
                    exit_code=result.code,
                    stderr=result.stderr,
                )

            emit(EventType.PROGRESS, {"step": "info", "progress": 90, "message": "Obtendo informações do site..."})
            info = await session.exec_command(f"wo site info {shell_quote(domain)} --admin")
            username, password = parse_wordops_admin(info.stdout, self.admin_user, self.default_password)

            blog = BlogCreationResult(
                success=True,
                domain=domain,
                url=f"https://{domain}",
                admin_url=f"https://{domain}/wp-admin",
                admin_username=username,
                admin_password=password,
                message="Blog created successfully",
            )
            await self._save_blog(options, blog)

            emit(EventType.PROGRESS, {"step": "completed", "progress": 100, "message": "Blog criado com sucesso!"})
            emit(
                EventType.BLOG_CREATED,
                {"user_id": options.user_id, "domain": domain, "url": blog.url, "message": blog.message},
            )
            logger.info(f"Blog created: {domain} on {host}")
            return blog

        except Exception as exc:
            logger.error(f"Blog creation failed for {domain} on {host}: {exc}")
            emit(EventType.BLOG_ERROR, {"error": str(exc), "host": host, "domain": domain})
            raise
        finally:
            self._creating = False
            await session.dispose()

    async def _save_blog(self, options: BlogOptions, blog: BlogCreationResult) -> None:
        """Register the blog as a managed site. Failures are logged only."""
        if self.site_store is None:
            return
        creds = options.credentials
        try:
            await self.site_store.create_site(
                options.user_id,
                name=blog.domain,
                url=blog.url,
                username=blog.admin_username,
                application_password=blog.admin_password,
                domain=blog.domain,
                site_type="managed",
                ip_address=creds.host,
                vps_config={"host": creds.host, "port": creds.port, "username": creds.username, "has_access": True},
                wordpress_version="latest",
                connection_status="connected",
            )
        except Exception as exc:
            logger.error(f"Blog {blog.domain} created but could not be saved: {exc}")
