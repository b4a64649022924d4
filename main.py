"""
Process Engine API 主入口
"""
import logging

import uvicorn
from dotenv import load_dotenv

from process_engine.config import Settings

# 加载环境变量
load_dotenv()

settings = Settings.from_env()

# 配置日志
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


if __name__ == "__main__":
    if settings.api_reload:
        # 开发模式
        uvicorn.run(
            "process_engine.api:create_app",
            factory=True,
            host=settings.api_host,
            port=settings.api_port,
            reload=True,
            log_level="info"
        )
    else:
        # 生产模式
        uvicorn.run(
            "process_engine.api:create_app",
            factory=True,
            host=settings.api_host,
            port=settings.api_port,
            workers=settings.api_workers,
            log_level="info"
        )
