import argparse
import logging
import os

import uvicorn

import aidetect.config as settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Capture, score and annotate in near real time")
    parser.add_argument("--config", help="JSON config file")
    args = parser.parse_args()

    # Configure logging for the entire application
    logging.basicConfig(
        level=logging.INFO,
        format="%(levelname)s:     %(name)s - %(message)s",
    )

    # Set log level for our app modules
    logging.getLogger("aidetect").setLevel(logging.INFO)

    if args.config:
        # Reload workers pick the file up from the environment
        os.environ[settings.CONFIG_ENV] = os.path.abspath(args.config)
        settings.config = settings.load_config(args.config)

    cfg = settings.config
    uvicorn.run(
        "aidetect.web.server:app",
        host=cfg.server.host,
        port=cfg.server.port,
        reload=cfg.server.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
