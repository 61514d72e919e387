# isd.py
# ----------------
# NOAA Integrated Surface Database (ISD) fixed-width record parser.
#
# Data: https://www1.ncdc.noaa.gov/pub/data/noaa/
# Format: https://www1.ncdc.noaa.gov/pub/data/noaa/ish-format-document.pdf
#
# Exposes:
#   - parse(filename, lines, max_measurements)  -> WeatherStation
#   - parse_file(path, max_measurements)        -> WeatherStation (.gz aware)
#   - InvalidRecord

from __future__ import annotations
import gzip
import logging
import operator
import zlib
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from weathermap.models import WeatherMeasurement, WeatherStation, WindMeasurement

logger = logging.getLogger(__name__)


class InvalidRecord(ValueError):
    pass


# -----------------------------
# Checks
# -----------------------------

_OPS = {"==": operator.eq, ">=": operator.ge, "<=": operator.le}


def _check(lhs_name: str, lhs, op: str, rhs_name: str, rhs) -> None:
    if not _OPS[op](lhs, rhs):
        raise InvalidRecord(f"check {lhs_name} {op} {rhs_name}; failed for {lhs!r} {op} {rhs!r}")


def _int(field: str, text: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise InvalidRecord(f"bad {field} field {text!r}") from None


# -----------------------------
# Field decoding
# -----------------------------

def _wind(direction: int, speed: int, kind: str) -> Optional[WindMeasurement]:
    if 0 <= direction <= 360 and 0 <= speed <= 900:
        return WindMeasurement.normal(speed / 10.0, direction)
    if kind == "C" or (kind == "9" and speed == 0):
        return WindMeasurement.calm()
    if kind == "V":
        return WindMeasurement.variable()
    return None


def _station_ids(filename: str):
    parts = Path(filename).stem.split("-")
    if len(parts) < 2:
        raise InvalidRecord(f"file name {filename!r} is not USAF-WBAN-YEAR")
    return parts[0], parts[1]


def parse(filename: str, lines: Iterable[str], max_measurements: Optional[int] = None) -> WeatherStation:
    usaf, wban = _station_ids(filename)
    station = WeatherStation(usaf=usaf, wban=wban)
    missing: Counter = Counter()

    for line in lines:
        line = line.rstrip("\r\n")

        _check("station.usaf", station.usaf, "==", "usaf", line[4:10])
        _check("station.wban", station.wban, "==", "wban", line[10:15])

        date, hhmm = line[15:23], line[23:27]
        try:
            dt = datetime(
                _int("year", date[0:4]), _int("month", date[4:6]), _int("day", date[6:8]),
                _int("hour", hhmm[0:2]), _int("minute", hhmm[2:4]),
                tzinfo=timezone.utc,
            )
        except ValueError as e:
            if isinstance(e, InvalidRecord):
                raise
            raise InvalidRecord(f"bad date/time {date!r} {hhmm!r}: {e}") from None

        latitude = _int("latitude", line[28:34]) / 1000.0
        _check("latitude", latitude, ">=", "-90.0", -90.0)
        _check("latitude", latitude, "<=", "90.0", 90.0)
        longitude = _int("longitude", line[34:41]) / 1000.0
        _check("longitude", longitude, ">=", "-180.0", -180.0)
        _check("longitude", longitude, "<=", "180.0", 180.0)
        if not station.measurements:
            station.latitude = latitude
            station.longitude = longitude

        elevation = _int("elevation", line[46:51])
        if -400 <= elevation <= 9000:
            if station.elevation is None:
                station.elevation = elevation
        else:
            missing["elevation"] += 1

        wind = _wind(_int("wind direction", line[60:63]), _int("wind speed", line[65:69]), line[64:65])
        if wind is None:
            missing["wind"] += 1

        temp = _int("air temperature", line[87:92])
        air_temperature = temp / 10.0 if -1000 <= temp <= 1000 else None
        if air_temperature is None:
            missing["air_temperature"] += 1

        pressure = _int("air pressure", line[99:104])
        air_pressure = pressure / 10.0 if 0 <= pressure <= 20000 else None
        if air_pressure is None:
            missing["air_pressure"] += 1

        if wind is None and air_temperature is None and air_pressure is None:
            continue

        station.measurements.append(WeatherMeasurement(dt, wind, air_temperature, air_pressure))
        if max_measurements is not None and len(station.measurements) >= max_measurements:
            break

    if missing and station.measurements and logger.isEnabledFor(logging.DEBUG):
        for key, count in missing.items():
            pct = count / len(station.measurements) * 100.0
            if pct > 1.0:
                logger.debug("%s-%s missing %s: %d (%.1f %%)", usaf, wban, key, count, pct)

    return station


def parse_file(path, max_measurements: Optional[int] = None) -> WeatherStation:
    path = str(path)
    opener = gzip.open if path.endswith(".gz") else open
    try:
        with opener(path, "rt", encoding="ascii", errors="replace") as f:
            return parse(path, f, max_measurements)
    except (InvalidRecord, EOFError, zlib.error) as e:
        raise InvalidRecord(f"parsing {path} failed: {e}") from e
