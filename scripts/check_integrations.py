"""Check that every upstream of the generation pipeline is reachable.

Exits non-zero when any check fails, so it can gate a deploy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from geoimage.integrations import IntegrationCheckResult, run_all_checks
from geoimage.monitoring.logging import configure_logging

logger = logging.getLogger("check_integrations")


def _format_result(result: IntegrationCheckResult, width: int) -> str:
    status = "✅" if result.success else "❌"
    latency = f"{result.latency_ms:>7.1f} ms" if result.latency_ms is not None else " " * 10
    return f"{status} {result.name:<{width}} {latency}  {result.message}"


def print_results(results: Sequence[IntegrationCheckResult]) -> None:
    width = max((len(result.name) for result in results), default=0)
    for result in results:
        print(_format_result(result, width))
    passed = sum(result.success for result in results)
    print(f"{passed}/{len(results)} upstreams reachable")


def main() -> None:
    configure_logging(level="WARNING")
    results = asyncio.run(run_all_checks())
    print_results(results)
    if not all(result.success for result in results):
        logger.error("Integration checks failed: %s", ", ".join(r.name for r in results if not r.success))
        raise SystemExit(1)


if __name__ == "__main__":
    main()
