from dataclasses import dataclass, field
from pathlib import Path
import configparser
import os

from solis_backfill.exceptions import ConfigError


@dataclass
class SolisAPIConfig:
    api_id: str | None = None
    api_secret: str | None = None
    base_url: str = "https://www.soliscloud.com:13333"
    timeout: float = 20.0
    currency: str = "USD"
    page_size: int = 50


@dataclass
class BackfillConfig:
    rate_limit_delay: float = 1.0
    max_retries: int = 2
    retry_backoff: float = 1.5
    max_months: int | None = None
    zero_fill_missing: bool = True


@dataclass
class StoreConfig:
    backend: str = "sqlite"
    path: str | None = None
    supabase_url: str | None = None
    supabase_key: str | None = None
    daily_table: str = "inverter_data_daily_summary"
    monthly_table: str = "inverter_data_monthly_summary"
    batch_size: int = 500


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None


@dataclass
class AppConfig:
    solis: SolisAPIConfig
    backfill: BackfillConfig
    store: StoreConfig
    logging: LoggingConfig

    def require_solis_credentials(self) -> None:
        missing = [
            name
            for name, value in (("api_id", self.solis.api_id), ("api_secret", self.solis.api_secret))
            if not value
        ]
        if missing:
            raise ConfigError(
                f"Missing SolisCloud credentials in [solis]: {', '.join(missing)} "
                "(or SOLIS_API_ID / SOLIS_API_SECRET)"
            )

    def require_store(self) -> None:
        backend = self.store.backend
        if backend == "sqlite":
            return
        if backend == "supabase":
            if not self.store.supabase_url or not self.store.supabase_key:
                raise ConfigError(
                    "Supabase store needs supabase_url and supabase_key "
                    "(or SUPABASE_URL / SUPABASE_SERVICE_KEY)"
                )
            return
        raise ConfigError(f"Unknown store backend '{backend}' (expected sqlite or supabase)")


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",))
        read = self.parser.read(self.path)
        if not read:
            raise ConfigError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str, environ=None) -> AppConfig:
        cfg = cls(path)
        env = os.environ if environ is None else environ

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _maybe_int(raw: str | None) -> int | None:
            if raw is None:
                return None
            raw = raw.strip()
            if not raw:
                return None
            return int(raw)

        def _secret(sec, key: str, env_name: str) -> str | None:
            value = sec.get(key, "").strip() if sec is not None else ""
            return value or env.get(env_name) or None

        try:
            # --- SolisCloud ---
            solis_sec = p["solis"] if "solis" in p else None
            solis_kwargs = {
                "api_id": _secret(solis_sec, "api_id", "SOLIS_API_ID"),
                "api_secret": _secret(solis_sec, "api_secret", "SOLIS_API_SECRET"),
            }
            if solis_sec is not None:
                if "base_url" in solis_sec:
                    solis_kwargs["base_url"] = solis_sec["base_url"]
                if "timeout" in solis_sec:
                    solis_kwargs["timeout"] = float(solis_sec["timeout"])
                if "currency" in solis_sec:
                    solis_kwargs["currency"] = solis_sec["currency"].strip()
                if "page_size" in solis_sec:
                    solis_kwargs["page_size"] = int(solis_sec["page_size"])
            solis_cfg = SolisAPIConfig(**solis_kwargs)

            # --- Backfill pacing ---
            backfill_kwargs = {}
            if "backfill" in p:
                bf_sec = p["backfill"]
                if "rate_limit_delay" in bf_sec:
                    backfill_kwargs["rate_limit_delay"] = float(bf_sec["rate_limit_delay"])
                if "max_retries" in bf_sec:
                    backfill_kwargs["max_retries"] = int(bf_sec["max_retries"])
                if "retry_backoff" in bf_sec:
                    backfill_kwargs["retry_backoff"] = float(bf_sec["retry_backoff"])
                if (max_months := _maybe_int(bf_sec.get("max_months"))) is not None:
                    backfill_kwargs["max_months"] = max_months
                if "zero_fill_missing" in bf_sec:
                    backfill_kwargs["zero_fill_missing"] = _as_bool(bf_sec["zero_fill_missing"])
            backfill_cfg = BackfillConfig(**backfill_kwargs)

            # --- Store ---
            store_sec = p["store"] if "store" in p else None
            store_kwargs = {
                "supabase_url": _secret(store_sec, "supabase_url", "SUPABASE_URL"),
                "supabase_key": _secret(store_sec, "supabase_key", "SUPABASE_SERVICE_KEY"),
            }
            if store_sec is not None:
                if "backend" in store_sec:
                    store_kwargs["backend"] = store_sec["backend"].strip().lower()
                if "path" in store_sec:
                    store_kwargs["path"] = store_sec["path"]
                if "daily_table" in store_sec:
                    store_kwargs["daily_table"] = store_sec["daily_table"]
                if "monthly_table" in store_sec:
                    store_kwargs["monthly_table"] = store_sec["monthly_table"]
                if "batch_size" in store_sec:
                    store_kwargs["batch_size"] = int(store_sec["batch_size"])
            store_cfg = StoreConfig(**store_kwargs)

            # --- Logging ---
            logging_kwargs = {}
            if "logging" in p:
                logging_sec = p["logging"]
                if "console_level" in logging_sec:
                    logging_kwargs["console_level"] = logging_sec["console_level"]
                if "console_quiet" in logging_sec:
                    logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
                if "debug_modules" in logging_sec:
                    raw = logging_sec["debug_modules"]
                    logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
                if "structured_enabled" in logging_sec:
                    logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
                if "structured_path" in logging_sec:
                    logging_kwargs["structured_path"] = logging_sec["structured_path"]
            logging_cfg = LoggingConfig(**logging_kwargs)
        except ValueError as exc:
            raise ConfigError(f"Invalid value in {cfg.path}: {exc}") from exc

        if backfill_cfg.max_retries < 0:
            raise ConfigError("[backfill] max_retries must be >= 0")
        if backfill_cfg.max_months is not None and backfill_cfg.max_months <= 0:
            raise ConfigError("[backfill] max_months must be positive when set")

        return AppConfig(
            solis=solis_cfg,
            backfill=backfill_cfg,
            store=store_cfg,
            logging=logging_cfg,
        )
