import logging

import uvicorn

from config import HOST, PORT


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # 关闭热重载，避免 scheduler 重复启动
    uvicorn.run(
        "api:app",
        host=HOST,
        port=PORT,
        reload=False
    )


if __name__ == "__main__":
    main()
