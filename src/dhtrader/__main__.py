"""Entry point: python -m dhtrader"""

import asyncio
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from dhtrader.config import Secrets, load_config
from dhtrader.engine import RebalancingEngine
from dhtrader.logging_config import configure_logging


def main():
    config = load_config(Path(os.getenv("DHTRADER_CONFIG", "config/settings.yaml")))
    try:
        secrets = Secrets()
    except ValidationError as e:
        print(f"Failed to load secrets from .env: {e}")
        sys.exit(1)

    configure_logging(config.logging)

    engine = RebalancingEngine(config, secrets)
    sys.exit(asyncio.run(engine.run()))


if __name__ == "__main__":
    main()
