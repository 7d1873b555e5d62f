import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str
    database_url: str
    database_replica_url: str
    use_read_replica: bool

    inactive_days_default: int
    min_removal_days: int
    export_batch_size: int
    remove_batch_size: int
    export_dir: str
    export_filename: str
    audit_actor: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    return Settings(
        env=_getenv("ENV", "development"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        database_url=_getenv("DATABASE_URL", "sqlite:///retention.db"),
        database_replica_url=_getenv("DATABASE_REPLICA_URL", ""),
        use_read_replica=_getenv_bool("USE_READ_REPLICA"),
        inactive_days_default=_getenv_int("INACTIVE_DAYS_DEFAULT", 365),
        min_removal_days=_getenv_int("MIN_REMOVAL_DAYS", 180),
        export_batch_size=_getenv_int("EXPORT_BATCH_SIZE", 1000),
        remove_batch_size=_getenv_int("REMOVE_BATCH_SIZE", 100),
        export_dir=_getenv("EXPORT_DIR", "var/inactive_customers"),
        export_filename=_getenv("EXPORT_FILENAME", "inactive_customers_emails.csv"),
        audit_actor=_getenv("AUDIT_ACTOR", "cli:inactive-customers"),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "ENV": s.env,
        "LOG_LEVEL": s.log_level,
        "DATABASE_URL": s.database_url,
        "DATABASE_REPLICA_URL": s.database_replica_url,
        "USE_READ_REPLICA": s.use_read_replica,
        # inactivity policy
        "INACTIVE_DAYS_DEFAULT": s.inactive_days_default,
        "MIN_REMOVAL_DAYS": s.min_removal_days,
        # pagination (export reads are cheap, removal mutates per record)
        "EXPORT_BATCH_SIZE": s.export_batch_size,
        "REMOVE_BATCH_SIZE": s.remove_batch_size,
        "EXPORT_DIR": s.export_dir,
        "EXPORT_FILENAME": s.export_filename,
        "AUDIT_ACTOR": s.audit_actor,
    }
