import os
import uvicorn

if __name__ == "__main__":
    # 开发模式默认热重载，可用 RETAILHUB_RELOAD=0 关闭
    is_dev = os.getenv("RETAILHUB_RELOAD", "1") != "0"

    uvicorn.run(
        "retailhub.main:app",
        host=os.getenv("RETAILHUB_HOST", "127.0.0.1"),
        port=int(os.getenv("RETAILHUB_PORT", "8000")),
        reload=is_dev,
        log_level="info"
    )
