"""
Core configuration settings for the keyledger service.

Contains all application settings using Pydantic BaseSettings.
"""
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # 資料庫配置
    database_url: str = "sqlite+aiosqlite:///./keyledger.db"
    storage_backend: str = "sql"  # "sql" 或 "memory"
    testing: bool = False

    # 身分驗證 (JWT) 配置
    jwt_secret_key: str = "your-super-secret-jwt-key-change-this-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30

    # 位址推導配置
    address_namespace: str = "keyledger"

    # 併發控制配置
    conflict_retries: int = 3

    # 日誌配置
    log_level: str = "INFO"

    # 服務配置
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS 配置
    allowed_origins: str = "http://localhost"

    @property
    def allowed_origins_list(self) -> List[str]:
        """將允許來源字符串轉換為列表"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"


settings = Settings()
