from dataclasses import dataclass
from typing import Optional

from .bootstrap import ConnectionManager
from .config import RESULT_PAGE_SIZE, AppConfig
from .es_client import SearchClient
from .records import RecordStore
from .search import QueryEngine
from .storage import SandboxedStorage

SYSTEM_VERSION = "1.0.0"


@dataclass
class AppContext:
    config: AppConfig
    manager: ConnectionManager
    storage: SandboxedStorage
    records: Optional[RecordStore] = None
    engine: Optional[QueryEngine] = None

    @classmethod
    def create(cls, config: AppConfig, **manager_kwargs) -> "AppContext":
        return cls(
            config=config,
            manager=ConnectionManager.from_config(config, **manager_kwargs),
            storage=SandboxedStorage(config.store_dir),
        )

    @property
    def ready(self) -> bool:
        return self.manager.ready and self.records is not None and self.engine is not None

    def bootstrap(self) -> SearchClient:
        # 接続完了後のクライアントから各コンポーネントを組み立てる
        client = self.manager.bootstrap()
        self.records = RecordStore(client)
        self.engine = QueryEngine(client, page_size=RESULT_PAGE_SIZE)
        return client

    def close(self) -> None:
        self.records = None
        self.engine = None
        self.manager.close()
