from typing import List, Union
import logging

from pydantic import AnyHttpUrl, Field, validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    PROJECT_NAME: str = "零售管理系统"
    API_V1_STR: str = "/api/v1"

    # CORS配置
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # 数据库配置
    SQLITE_DATABASE_URI: str = "sqlite:///./retailhub.db"
    SQL_DEBUG: bool = False

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_BACKUP_DAYS: int = 14  # 文件日志保留天数

    # 周期性费用定时生成
    RECURRING_EXPENSES_ENABLED: bool = True  # 是否启用定时生成
    RECURRING_EXPENSES_HOUR: int = 1  # 每天执行时间（小时，0-23）
    RECURRING_EXPENSES_MINUTE: int = 0  # 每天执行时间（分钟，0-59）

    # 会员积分：每消费多少金额积 1 分
    LOYALTY_POINTS_RATE: int = Field(default=10, gt=0, description="每积1分所需消费金额")

    # 分页
    DEFAULT_PAGE_SIZE: int = 20

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
logger.info(f"加载配置: API_V1_STR={settings.API_V1_STR}, CORS={settings.BACKEND_CORS_ORIGINS}")
