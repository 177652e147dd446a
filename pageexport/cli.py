import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .app_logging import log_with_fields, setup_logger
from .config import build_job, parse_args
from .context import JobContext
from .errors import UsageError
from .models import Job, ProcessOutcome
from .runner import run_job


async def main_async(job: Job, logger: logging.Logger) -> int:
    context = JobContext(job, logger)
    outcome = await run_job(context)
    return outcome.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = parse_args(argv)
        job = build_job(args)
    except UsageError as exc:
        print(f"pageexport: error: {exc}", file=sys.stderr)
        return ProcessOutcome.USAGE_ERROR.exit_code

    logger = setup_logger(Path(args.log_file) if args.log_file else None, verbose=args.verbose)
    try:
        return asyncio.run(main_async(job, logger))
    except KeyboardInterrupt:
        log_with_fields(logger, logging.INFO, "shutdown", reason="keyboard_interrupt")
        return ProcessOutcome.FATAL.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
