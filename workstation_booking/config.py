from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "WORKSTATION_BOOKING_"
BACKENDS = ("yaml", "sqlite")


@dataclass(frozen=True)
class BookingConfig:
    data_dir: Path = Path("data")
    backend: str = "yaml"
    sqlite_path: Path | None = None
    log_level: str = "INFO"

    @property
    def resolved_sqlite_path(self) -> Path:
        return self.sqlite_path or (self.data_dir / "booking.db")

    @staticmethod
    def from_env(load_dotenv_file: bool = True) -> "BookingConfig":
        if load_dotenv_file:
            load_dotenv()

        backend = os.getenv(f"{ENV_PREFIX}BACKEND", "yaml").strip().lower()
        if backend not in BACKENDS:
            raise ValueError(f"{ENV_PREFIX}BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}")

        sqlite_path = os.getenv(f"{ENV_PREFIX}SQLITE_PATH")
        return BookingConfig(
            data_dir=Path(os.getenv(f"{ENV_PREFIX}DATA_DIR", "data")),
            backend=backend,
            sqlite_path=Path(sqlite_path) if sqlite_path else None,
            log_level=os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper(),
        )
