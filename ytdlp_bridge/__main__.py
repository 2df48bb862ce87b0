import logging

from .app import create_app
from .config import Settings


def main():
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    app = create_app(settings)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
