from __future__ import annotations

import json
import logging
import sys
from typing import Optional, Sequence

from venuecrawl.config import settings_from_args
from venuecrawl.errors import ConfigurationError
from venuecrawl.models import STOP_FATAL
from venuecrawl.orchestrator import run


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        settings = settings_from_args(argv)
    except ConfigurationError as exc:
        _configure_logging("INFO")
        logging.getLogger("venuecrawl").error("configuration error: %s", exc)
        return 2

    _configure_logging(settings.log_level)
    try:
        summaries = run(settings)
    except ConfigurationError as exc:
        logging.getLogger("venuecrawl").error("configuration error: %s", exc)
        return 2

    for s in summaries:
        print(json.dumps(s.as_dict(), ensure_ascii=False))

    ok = sum(1 for s in summaries if s.stopped_reason != STOP_FATAL)
    total = sum(s.total_delivered for s in summaries)
    print(f"\nDONE: sources_ok={ok} failed={len(summaries) - ok} delivered={total}")
    return 1 if ok < len(summaries) else 0


if __name__ == "__main__":
    sys.exit(main())
