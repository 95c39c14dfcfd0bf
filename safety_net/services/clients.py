from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy.orm import sessionmaker

from safety_net.core.config import Settings
from safety_net.db.session import make_engine, make_session_factory
from safety_net.services.mail_service import ResendMailClient
from safety_net.services.rest_storage import RestStorage
from safety_net.services.sql_storage import SqlStorage
from safety_net.services.storage import StorageClient


@lru_cache(maxsize=4)
def _session_factory(database_url: str) -> sessionmaker:
    return make_session_factory(make_engine(database_url))


def build_storage(cfg: Settings) -> StorageClient:
    """Construct the storage collaborator; call only after validate_settings(cfg)."""
    if cfg.STORAGE_BACKEND.lower() == "sql":
        return SqlStorage(_session_factory(str(cfg.DATABASE_URL)))
    return RestStorage(str(cfg.STORAGE_URL), str(cfg.STORAGE_SERVICE_KEY), timeout=cfg.REQUEST_TIMEOUT_SECONDS)


def build_mailer(cfg: Settings) -> ResendMailClient:
    return ResendMailClient(str(cfg.RESEND_API_KEY), api_url=cfg.RESEND_API_URL, timeout=cfg.REQUEST_TIMEOUT_SECONDS)


@dataclass
class Collaborators:
    storage: StorageClient
    mailer: ResendMailClient

    def close(self) -> None:
        self.storage.close()
        self.mailer.close()
