"""OAuth proxy entry point"""

import uvicorn

from toaster.proxy.app import create_proxy_app
from toaster.proxy.config import get_proxy_settings


def run() -> None:
    settings = get_proxy_settings()
    uvicorn.run(create_proxy_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
