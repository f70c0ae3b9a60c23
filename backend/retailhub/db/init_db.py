import asyncio

from retailhub.db.base import Base
from retailhub.db.session import engine

# 导入所有模型以注册到 Base.metadata
import retailhub.models  # noqa: F401


async def ensure_tables_exist() -> None:
    """
    确保数据库表存在（应用启动时调用）
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


if __name__ == "__main__":
    asyncio.run(ensure_tables_exist())
