"""Import the IDE's locally cached sign-in as a stored credential."""

import time
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import Field, SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession
from structlog import get_logger

from quota_cockpit.auth.credential_store import CredentialStore
from quota_cockpit.auth.models import Credential, LocalTokenInfo
from quota_cockpit.auth.state_decoder import decode_state_blob
from quota_cockpit.auth.token_service import OAuthTokenService
from quota_cockpit.core.system import get_antigravity_global_storage_dir
from quota_cockpit.exceptions import (
    AccountExistsError,
    CockpitError,
    EmailResolutionError,
    LocalStateError,
)


logger = get_logger(__name__)

STATE_KEY = "jetskiStateSync.agentManagerInitState"

PENDING_CREDENTIAL_TTL_SECONDS = 120


class ItemTable(SQLModel, table=True):
    """Key-value table of the IDE's `state.vscdb`."""

    __tablename__ = "ItemTable"

    key: str = Field(primary_key=True)
    value: str | None = None


def default_state_db_path() -> Path:
    return get_antigravity_global_storage_dir() / "state.vscdb"


async def read_state_value(db_path: Path) -> str:
    """Read the agent-manager state value from the IDE database (read-only).

    Raises:
        LocalStateError: If the database is missing, unreadable or has no value
    """
    if not db_path.exists():
        raise LocalStateError(f"IDE state database not found: {db_path}")

    engine = create_async_engine(
        f"sqlite+aiosqlite:///file:{db_path}?mode=ro&uri=true", echo=False
    )
    try:
        async with AsyncSession(engine) as session:
            result = await session.exec(
                select(ItemTable.value).where(ItemTable.key == STATE_KEY)
            )
            value = result.first()
    except SQLAlchemyError as e:
        raise LocalStateError(f"Cannot read IDE state database: {e}") from e
    finally:
        await engine.dispose()

    if not value or not value.strip():
        raise LocalStateError("No state value found")
    return value.strip()


@dataclass
class PendingCredential:
    credential: Credential
    created_at: float


@dataclass(frozen=True)
class ImportPreview:
    email: str
    exists: bool


@dataclass(frozen=True)
class ImportResult:
    email: str
    existed: bool


class LocalCredentialImporter:
    """Previews and commits the IDE's cached sign-in.

    A preview builds the credential once and keeps it for two minutes so the
    following commit does not need a second token exchange.
    """

    def __init__(
        self,
        token_service: OAuthTokenService,
        store: CredentialStore,
        db_path: Path | None = None,
    ) -> None:
        self.token_service = token_service
        self.store = store
        self.db_path = db_path or default_state_db_path()
        self._pending: PendingCredential | None = None

    async def read_local_token_info(self) -> LocalTokenInfo:
        value = await read_state_value(self.db_path)
        return decode_state_blob(value)

    async def _build_credential(self, fallback_email: str | None) -> Credential:
        token_info = await self.read_local_token_info()
        if not token_info.refresh_token:
            raise LocalStateError("refresh_token not found")

        logger.info(
            "local_refresh_token_found", token_length=len(token_info.refresh_token)
        )
        return await self.token_service.build_credential_from_refresh_token(
            token_info.refresh_token, fallback_email
        )

    async def preview(self, fallback_email: str | None = None) -> ImportPreview:
        credential = await self._build_credential(fallback_email)
        self._pending = PendingCredential(credential, time.monotonic())
        return ImportPreview(
            email=credential.email, exists=self.store.has_account(credential.email)
        )

    def _take_pending(self) -> Credential | None:
        pending, self._pending = self._pending, None
        if pending is None:
            return None
        if time.monotonic() - pending.created_at > PENDING_CREDENTIAL_TTL_SECONDS:
            logger.debug("pending_credential_expired", email=pending.credential.email)
            return None
        return pending.credential

    async def commit(
        self, overwrite: bool = False, fallback_email: str | None = None
    ) -> ImportResult:
        """Store the local credential and make it active.

        Raises:
            AccountExistsError: If the account exists and `overwrite` is False
        """
        credential = self._take_pending()
        if credential is None:
            credential = await self._build_credential(fallback_email)

        if not credential.email:
            raise EmailResolutionError()

        existed = self.store.has_account(credential.email)
        if existed and not overwrite:
            raise AccountExistsError(credential.email)

        self.store.save_credential(credential)
        self.store.clear_account_invalid(credential.email)
        self.store.set_active_account(credential.email)
        logger.info("local_credential_imported", email=credential.email, existed=existed)
        return ImportResult(email=credential.email, existed=existed)

    async def import_local(self, fallback_email: str | None = None) -> str:
        result = await self.commit(overwrite=True, fallback_email=fallback_email)
        return result.email

    async def ensure_imported(self) -> str | None:
        """Return the active account, auto-importing the local sign-in if needed.

        Never raises; failures are logged at debug level and yield None.
        """
        if self.store.has_valid_credential():
            active = self.store.get_active_account()
            if active:
                logger.debug("local_import_existing_credential", email=active)
                return active

        try:
            credential = await self._build_credential(None)
        except CockpitError as e:
            logger.debug("local_import_failed", error=e.message)
            return None

        if not credential.access_token:
            logger.debug("local_import_failed", error="missing access token")
            return None

        self.store.save_credential(credential)
        logger.info("local_credential_auto_imported", email=credential.email)
        return credential.email
