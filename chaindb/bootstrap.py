"""Startup gate: connect to the search service, then make sure the index exists."""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from .config import DEFAULT_RETRY_DELAY_SEC, AppConfig
from .errors import ServiceConnectionError
from .es_client import SearchClient
from .models import InfoResponse
from .schema import SchemaManager
from .utils import log_info, log_success

SYSTEM_VERSION = "1.0.0"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    READY = "ready"


@dataclass(frozen=True)
class RetryPolicy:
    """How long to wait between connection attempts.

    ``max_attempts=None`` keeps retrying until the service answers.
    """

    delay: float = DEFAULT_RETRY_DELAY_SEC
    max_attempts: Optional[int] = None

    def allows(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt < self.max_attempts


class ConnectionManager:
    """Drives DISCONNECTED -> CONNECTING -> CONNECTED -> READY exactly once.

    The client built here is the only one in the process; components receive
    it through their constructors once the manager is READY.
    """

    def __init__(
        self,
        es_url: str,
        *,
        index: str,
        timeout: float,
        retry: RetryPolicy | None = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.es_url = es_url
        self.index = index
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self.transport = transport
        self.sleep = sleep
        self.state = ConnectionState.DISCONNECTED
        self.client: SearchClient | None = None
        self.info: InfoResponse | None = None
        self.attempts = 0
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: AppConfig, **kwargs) -> "ConnectionManager":
        kwargs.setdefault("retry", RetryPolicy(delay=config.retry_delay_sec))
        return cls(config.es_url, index=config.index_name, timeout=config.timeout_sec, **kwargs)

    @property
    def ready(self) -> bool:
        return self.state is ConnectionState.READY

    def _connect_once(self) -> SearchClient:
        self.state = ConnectionState.CONNECTING
        client = None
        try:
            client = SearchClient(self.es_url, index=self.index, timeout=self.timeout, transport=self.transport)
            res = client.info()
            if res.is_error:
                raise ServiceConnectionError(f"Info request failed: [{res.status}] {res.text[:200]}")
            try:
                self.info = InfoResponse.model_validate(res.body if isinstance(res.body, dict) else {})
            except ValidationError:
                self.info = InfoResponse()
        except Exception:
            if client is not None:
                client.close()
            self.state = ConnectionState.DISCONNECTED
            raise
        self.state = ConnectionState.CONNECTED
        return client

    def connect(self) -> SearchClient:
        """Block until the info request succeeds or the retry policy gives up."""
        while True:
            self.attempts += 1
            try:
                client = self._connect_once()
            except ServiceConnectionError as exc:
                log_info("Failed to connect to ElasticSearch.", esURL=self.es_url, Error=exc)
                if not self.retry.allows(self.attempts):
                    raise ServiceConnectionError(
                        f"Gave up connecting to {self.es_url} after {self.attempts} attempts"
                    ) from exc
                self.sleep(self.retry.delay)
                continue
            info = self.info or InfoResponse()
            log_info(
                "Connected to ElasticSearch Database.",
                cluster=info.cluster_name or "-",
                version=info.version.number or "-",
            )
            return client

    def bootstrap(self) -> SearchClient:
        """Connect, then create the index. ``SchemaError`` here is fatal to startup.

        Losing the connection while the index is being created sends the
        manager back to ``connect()`` under the same retry policy.
        """
        with self._lock:
            if self.state is ConnectionState.READY and self.client is not None:
                return self.client
            while True:
                client = self.connect()
                try:
                    SchemaManager(client).ensure_index()
                except ServiceConnectionError as exc:
                    client.close()
                    self.state = ConnectionState.DISCONNECTED
                    log_info("Lost ElasticSearch connection while creating index.", esURL=self.es_url, Error=exc)
                    if not self.retry.allows(self.attempts):
                        raise ServiceConnectionError(
                            f"Gave up connecting to {self.es_url} after {self.attempts} attempts"
                        ) from exc
                    self.sleep(self.retry.delay)
                    continue
                except Exception:
                    client.close()
                    self.state = ConnectionState.DISCONNECTED
                    raise
                break
            self.client = client
            self.state = ConnectionState.READY
            log_success("Search index ready.", index=self.index)
            return client

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
        self.state = ConnectionState.DISCONNECTED
