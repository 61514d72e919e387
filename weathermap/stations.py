# region Imports
from __future__ import annotations
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional

from weathermap.config import DEFAULT_THREADS
from weathermap.isd import InvalidRecord, parse_file
from weathermap.models import WeatherStation
# endregion

logger = logging.getLogger(__name__)


# region Directory Loading
def station_files(directory: str, max_stations: Optional[int] = None) -> List[str]:
    names = sorted(n for n in os.listdir(directory) if os.path.isfile(os.path.join(directory, n)))
    if max_stations is not None:
        names = names[:max_stations]
    return [os.path.join(directory, n) for n in names]


def load_directory(
    directory: str,
    *,
    max_stations: Optional[int] = None,
    max_measurements: Optional[int] = None,
    threads: int = DEFAULT_THREADS,
    clock=time.monotonic,
) -> List[WeatherStation]:
    """Parse every station file in ``directory`` on a thread pool; bad files are logged and skipped."""
    paths = station_files(directory, max_stations)
    stations: List[WeatherStation] = []

    start = last_update = clock()
    processed = 0
    with ThreadPoolExecutor(max_workers=max(1, threads)) as pool:
        futures = {pool.submit(parse_file, p, max_measurements): p for p in paths}
        for fut in as_completed(futures):
            try:
                stations.append(fut.result())
            except (InvalidRecord, OSError) as e:
                logger.error("%s", e)
                continue

            processed += 1
            now = clock()
            if now - last_update > 1.0:
                last_update = now
                elapsed = now - start
                logger.info("processed %d files in %.3f - %.1f files / second",
                            processed, elapsed, processed / elapsed)

    logger.info("loaded %d of %d station files from %s", len(stations), len(paths), directory)
    return stations
# endregion
