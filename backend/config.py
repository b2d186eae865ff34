from pydantic_settings import BaseSettings
from pathlib import Path

# Get the project root directory (parent of backend folder)
PROJECT_ROOT = Path(__file__).parent.parent

class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""
    database_url: str = "sqlite:///./flashcards.db"

    # HTTP server
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    # Identity headers. The auth header is set by the upstream authentication
    # provider; the guest header is sent by clients studying without an account.
    auth_user_header: str = "X-Authenticated-User"
    guest_header: str = "X-Guest-Id"

    # Client settings
    api_base_url: str = "http://127.0.0.1:8000"
    request_timeout: float = 10.0
    client_storage_path: str = str(Path.home() / ".flashcards" / "storage.json")
    study_batch_size: int = 0  # 0 = study every card in the set

    log_level: str = "INFO"

    class Config:
        env_file = str(PROJECT_ROOT / ".env")

settings = Settings()

VERSION = "0.1.0"
