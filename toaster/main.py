"""Server entry point"""

import uvicorn

from toaster.app import create_app
from toaster.core.config import get_settings


def run() -> None:
    settings = get_settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
