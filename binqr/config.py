"""BinQR Server Configuration."""

import secrets
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    server_name: str = "BinQR"
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False

    # Paths
    data_dir: Path = Path.home() / "binqr" / "data"

    # Database
    db_path: Path = Path.home() / "binqr" / "data" / "binqr.db"

    # Records: 'database' | 'local' (JSON file fallback)
    record_backend: str = "database"
    local_store_path: Path = Path.home() / "binqr" / "data" / "binqr_store.json"

    # JWT
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 30
    recovery_token_expire_minutes: int = 60

    # Accounts & invites
    password_min_length: int = 6
    initial_invites: int = 5
    invite_code_length: int = 8
    invite_expire_days: int = 7

    # Client
    client_base_url: str = "http://localhost:8080"
    client_timeout_seconds: float = 10.0

    model_config = {"env_prefix": "BINQR_"}

    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in [self.data_dir, self.db_path.parent, self.local_store_path.parent]:
            d.mkdir(parents=True, exist_ok=True)

    def ensure_secrets(self) -> None:
        """Generate the JWT secret if not set, persist it so it survives restarts."""
        secrets_file = self.data_dir / ".secrets"
        saved = {}
        if secrets_file.exists():
            for line in secrets_file.read_text().strip().splitlines():
                if "=" in line:
                    k, v = line.split("=", 1)
                    saved[k.strip()] = v.strip()

        if not self.jwt_secret:
            self.jwt_secret = saved.get("jwt_secret", "") or secrets.token_urlsafe(32)

        secrets_file.write_text(f"jwt_secret={self.jwt_secret}\n")


settings = Settings()
settings.ensure_dirs()
settings.ensure_secrets()
