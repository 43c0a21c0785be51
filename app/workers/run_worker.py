from __future__ import annotations

import asyncio

from arq.worker import run_worker

from app.core.logging import configure_logging
from app.workers.arq_worker import WorkerSettings


def main() -> None:
    configure_logging()
    # arq looks the loop up with asyncio.get_event_loop(); newer interpreters no longer create one implicitly.
    asyncio.set_event_loop(asyncio.new_event_loop())
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
