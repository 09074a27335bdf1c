import json
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigError
from .utils import env_float, env_int, log_notice, log_warn

SYSTEM_VERSION = "1.0.0"

PROJECT_ROOT = Path(__file__).resolve().parents[1]
STATIC_DIR = PROJECT_ROOT / "static"

# --- 検索サービス定数 ---
DEFAULT_INDEX_NAME = "documents"
DEFAULT_TIMEOUT_SEC = 10.0
DEFAULT_RETRY_DELAY_SEC = 2.0
RESULT_PAGE_SIZE = 25

# --- アナライザ定数 ---
ANALYZER_NAME = "pdf_analyzer"
NGRAM_TOKENIZER_NAME = "pdf_ngram_tokenizer"
NGRAM_FILTER_NAME = "pdf_ngram_filter"
NGRAM_MIN_GRAM = 2
NGRAM_MAX_GRAM = 8
MAX_NGRAM_DIFF = 8

DEFAULT_PORT = 80


@dataclass(frozen=True)
class AppConfig:
    es_url: str
    index_name: str
    timeout_sec: float
    retry_delay_sec: float
    store_dir: Path
    port: int
    site_root: str
    site_path: str
    static_dir: Path = STATIC_DIR


def _resolve_config_path() -> Path:
    raw = os.getenv("CONFIG_PATH", "").strip() or "config.json"
    path = Path(raw)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


def _stringify_config_value(value: object) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _set_env_if_missing(name: str, value: object | None) -> None:
    if value is None or name in os.environ:
        return
    os.environ[name] = _stringify_config_value(value)


def _apply_config_env(config: dict) -> None:
    if not isinstance(config, dict):
        return

    search = config.get("search")
    if isinstance(search, dict):
        search_map = {
            "url": "ES_URL",
            "index": "ES_INDEX",
            "timeout_sec": "ES_TIMEOUT_SEC",
            "retry_delay_sec": "ES_RETRY_DELAY_SEC",
        }
        for key, env_name in search_map.items():
            if key in search:
                _set_env_if_missing(env_name, search.get(key))

    storage = config.get("storage")
    if isinstance(storage, dict):
        _set_env_if_missing("STORE_DIR", storage.get("dir"))

    server = config.get("server")
    if isinstance(server, dict):
        server_map = {
            "port": "PORT",
            "site_root": "SITE_ROOT",
            "site_path": "SITE_PATH",
        }
        for key, env_name in server_map.items():
            if key in server:
                _set_env_if_missing(env_name, server.get(key))


def _load_json_config() -> dict:
    config_path = _resolve_config_path()
    if not config_path.exists():
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as file:
            data = json.load(file)
            return data if isinstance(data, dict) else {}
    except json.JSONDecodeError as exc:
        raise ConfigError(f"failed to parse {config_path}: {exc}") from exc


def _is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def normalize_site_path(raw: str) -> str:
    """Return the mount prefix as ``/a/b`` without a trailing slash, or ``""``."""
    parts = [part for part in raw.strip().split("/") if part]
    if not parts:
        return ""
    return "/" + "/".join(parts)


def parse_es_url() -> str:
    es_url = os.getenv("ES_URL", "").strip()
    if not es_url:
        raise ConfigError("ElasticSearch URL required (ES_URL)")
    if not _is_valid_url(es_url):
        raise ConfigError(f"The ElasticSearch URL must be a valid URL: {es_url}")
    return es_url.rstrip("/")


def parse_store_dir() -> Path:
    raw = os.getenv("STORE_DIR", "").strip()
    if not raw:
        raise ConfigError("Directory store location required (STORE_DIR)")
    store_dir = Path(os.path.normpath(os.path.expanduser(raw)))
    if not store_dir.is_dir():
        raise ConfigError(f"Folder does not exist: {store_dir}")
    return store_dir.resolve()


def parse_port() -> int:
    port = env_int("PORT", DEFAULT_PORT)
    if port > 65535 or port < 1:
        raise ConfigError(f"Port out of range: {port}")
    return port


def parse_site_root(port: int) -> str:
    site_root = os.getenv("SITE_ROOT", "").strip()
    if not site_root:
        log_notice(f"Site root not set, defaulting to localhost:{port}")
        return f"localhost:{port}"
    candidate = site_root if "://" in site_root else f"http://{site_root}"
    if not _is_valid_url(candidate):
        raise ConfigError(f"The Site Root must be a valid URL: {site_root}")
    return site_root


def load_env() -> None:
    load_dotenv()


def load_config() -> AppConfig:
    load_env()
    _apply_config_env(_load_json_config())
    port = parse_port()
    retry_delay = env_float("ES_RETRY_DELAY_SEC", DEFAULT_RETRY_DELAY_SEC)
    if retry_delay < 0:
        log_warn(f"ES_RETRY_DELAY_SEC is negative, using {DEFAULT_RETRY_DELAY_SEC}")
        retry_delay = DEFAULT_RETRY_DELAY_SEC
    return AppConfig(
        es_url=parse_es_url(),
        index_name=os.getenv("ES_INDEX", "").strip() or DEFAULT_INDEX_NAME,
        timeout_sec=env_float("ES_TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC),
        retry_delay_sec=retry_delay,
        store_dir=parse_store_dir(),
        port=port,
        site_root=parse_site_root(port),
        site_path=normalize_site_path(os.getenv("SITE_PATH", "")),
    )
