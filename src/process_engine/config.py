"""
运行配置
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class Settings:
    """服务配置"""
    database_url: str = "sqlite+aiosqlite:///./process_engine.db"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = False
    api_workers: int = 1
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    disable_auth: bool = False
    timer_sweep_interval: float = 1.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """从环境变量（及 .env 文件）读取配置"""
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            api_host=os.getenv("API_HOST", cls.api_host),
            api_port=int(os.getenv("API_PORT", str(cls.api_port))),
            api_reload=_env_bool("API_RELOAD", "false"),
            api_workers=int(os.getenv("API_WORKERS", str(cls.api_workers))),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY", cls.jwt_secret_key),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", cls.jwt_algorithm),
            disable_auth=_env_bool("DISABLE_AUTH", "false"),
            timer_sweep_interval=float(os.getenv("TIMER_SWEEP_INTERVAL", str(cls.timer_sweep_interval))),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper()
        )
