from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

import asyncio  # noqa: E402
import logging  # noqa: E402

from buildpipe.clients.queue_client import QueueClient  # noqa: E402
from buildpipe.core.config import settings  # noqa: E402
from buildpipe.core.log_setup import configure_logging  # noqa: E402
from buildpipe.runtime.runner import BuildRunner, default_runner_id  # noqa: E402

logger = logging.getLogger(__name__)


async def _serve() -> None:
    runner_id = default_runner_id()
    async with QueueClient(settings.server_url, runner_id=runner_id) as client:
        runner = BuildRunner(client, runner_id=runner_id)
        logger.info("Runner %s using queue %s", runner_id, settings.server_url)
        await runner.run_forever()


def main() -> None:
    configure_logging(settings.log_level, settings.log_file)
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
