########## ini_config.py

import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path

INI_DEFAULT_NAME = "ReportsWeb.ini"


@dataclass(frozen=True)
class SqlServerSettings:
    driver: str
    server: str
    database: str
    username: str
    password: str
    trust_cert: bool
    schema: str

    def connection_string(self) -> str:
        parts = [
            f"DRIVER={{{self.driver}}}",
            f"SERVER={self.server}",
            f"DATABASE={self.database}",
        ]

        if self.username:
            parts.append(f"UID={self.username}")
            parts.append(f"PWD={self.password}")
        else:
            parts.append("Trusted_Connection=yes")

        if self.trust_cert:
            parts.append("TrustServerCertificate=yes")

        return ";".join(parts) + ";"


@dataclass(frozen=True)
class AppSettings:
    artifacts_base: Path

    # Paging of run results
    default_take: int
    max_take: int
    runs_take: int

    scheduler_enabled: bool
    scheduler_interval_seconds: int

    log_level: str

    flask_host: str
    flask_port: int
    flask_debug: bool

    sqlserver: SqlServerSettings


# [path] is accepted wherever [paths] is expected, and the reverse
_SECTION_ALIASES = {"paths": ("paths", "path"), "path": ("path", "paths")}


class IniConfig:
    """
    Reads ReportsWeb.ini into AppSettings.
    Only the app factory and tests construct this; services receive plain values.
    """

    def __init__(self, ini_path: Path):
        self._ini_path = ini_path
        self._cfg = ConfigParser()
        if not self._cfg.read(str(ini_path), encoding="utf-8-sig"):
            raise FileNotFoundError(f"INI file not found or unreadable: {ini_path}")

    @property
    def ini_path(self) -> Path:
        return self._ini_path

    @staticmethod
    def from_env_or_default() -> "IniConfig":
        env_path = (os.getenv("APP_INI") or "").strip()
        if env_path:
            return IniConfig(Path(env_path))
        return IniConfig(Path(__file__).resolve().parents[2] / INI_DEFAULT_NAME)

    def _cfg_path(self, section: str, key: str, fallback: str) -> Path:
        """Relative paths are taken relative to the INI file."""
        raw = fallback
        for sec in _SECTION_ALIASES.get(section, (section,)):
            value = (self._cfg.get(sec, key, fallback="") or "").strip()
            if value:
                raw = value
                break

        p = Path(os.path.expandvars(os.path.expanduser(raw)))
        if not p.is_absolute():
            p = self._ini_path.resolve().parent / p
        return p.resolve()

    def _sqlserver(self) -> SqlServerSettings:
        s = self._cfg["sqlserver"] if self._cfg.has_section("sqlserver") else {}
        trust_raw = (s.get("trust_cert", "yes") or "").strip().lower()
        return SqlServerSettings(
            driver=(s.get("driver", "ODBC Driver 17 for SQL Server") or "").strip(),
            server=(s.get("server", "localhost") or "").strip(),
            database=(s.get("database", "") or "").strip(),
            username=(s.get("username", "") or "").strip(),
            password=(s.get("password", "") or "").strip(),
            trust_cert=trust_raw in ("yes", "true", "1"),
            schema=(s.get("schema", "dbo") or "").strip() or "dbo",
        )

    def load_settings(self) -> AppSettings:
        artifacts_base = self._cfg_path("paths", "artifacts_base", "report_artifacts")

        # Paging
        default_take = self._cfg.getint("reports", "default_take", fallback=500)
        max_take = self._cfg.getint("reports", "max_take", fallback=5000)
        runs_take = self._cfg.getint("reports", "runs_take", fallback=100)

        # Scheduler
        scheduler_enabled = self._cfg.getboolean("scheduler", "enabled", fallback=False)
        scheduler_interval_seconds = self._cfg.getint("scheduler", "interval_seconds", fallback=60)

        log_level = (self._cfg.get("logging", "level", fallback="INFO") or "").strip().upper() or "INFO"

        # Flask
        flask_host = (self._cfg.get("flask", "host", fallback="127.0.0.1") or "").strip() or "127.0.0.1"
        flask_port = self._cfg.getint("flask", "port", fallback=5000)
        flask_debug = self._cfg.getboolean("flask", "debug", fallback=False)

        # Validate
        if default_take <= 0 or max_take <= 0:
            raise ValueError("reports.default_take and reports.max_take must be positive")
        if scheduler_interval_seconds <= 0:
            raise ValueError("scheduler.interval_seconds must be positive")

        artifacts_base.mkdir(parents=True, exist_ok=True)

        return AppSettings(
            artifacts_base=artifacts_base,
            default_take=min(default_take, max_take),
            max_take=max_take,
            runs_take=runs_take,
            scheduler_enabled=scheduler_enabled,
            scheduler_interval_seconds=scheduler_interval_seconds,
            log_level=log_level,
            flask_host=flask_host,
            flask_port=flask_port,
            flask_debug=flask_debug,
            sqlserver=self._sqlserver(),
        )
