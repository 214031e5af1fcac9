from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from flightlog.core.errors import AirportDirectoryError

logger = logging.getLogger("airports")


@dataclass(frozen=True)
class Airport:
    code: str
    name: str
    city: str
    country: str
    lat: float
    lng: float


def _load_and_prepare_airports(csv_path: Path) -> pd.DataFrame:
    df = pd.read_csv(csv_path, keep_default_na=False, dtype=str)

    # OurAirports schema: iata_code, name, municipality, iso_country, latitude_deg, longitude_deg
    df = df[df["iata_code"].str.strip() != ""].copy()
    df["iata_code"] = df["iata_code"].str.upper().str.strip()
    df = df[df["iata_code"].str.len() == 3].copy()

    for column in ("name", "municipality", "iso_country"):
        if column not in df.columns:
            df[column] = ""
        df[column] = df[column].str.strip()

    df["latitude_deg"] = pd.to_numeric(df["latitude_deg"], errors="coerce").fillna(0.0)
    df["longitude_deg"] = pd.to_numeric(df["longitude_deg"], errors="coerce").fillna(0.0)

    # Later rows win, as with a plain dict load
    return df.drop_duplicates(subset="iata_code", keep="last")


class AirportDirectory:
    """
    In-memory IATA code lookup.
    Coordinates and city names on flight records always come from here,
    never from the model output.
    """

    def __init__(self, airports: Iterable[Airport] = ()):
        self._airports: Dict[str, Airport] = {a.code.upper(): a for a in airports}

    @classmethod
    def from_csv(cls, csv_path: str | Path) -> "AirportDirectory":
        path = Path(csv_path)
        if not path.exists():
            raise AirportDirectoryError(f"Airport data file missing: {path}")

        try:
            df = _load_and_prepare_airports(path)
        except (KeyError, ValueError, pd.errors.ParserError) as e:
            raise AirportDirectoryError(f"Could not read airport data from {path}: {e}") from e

        airports = [
            Airport(
                code=row.iata_code,
                name=row.name,
                city=row.municipality,
                country=row.iso_country,
                lat=float(row.latitude_deg),
                lng=float(row.longitude_deg),
            )
            for row in df.itertuples(index=False)
        ]
        logger.info(f"Loaded {len(airports)} airports with IATA codes from {path}")
        return cls(airports)

    def lookup(self, iata_code: Optional[str]) -> Optional[Airport]:
        if not iata_code:
            return None
        return self._airports.get(iata_code.strip().upper())

    def __len__(self) -> int:
        return len(self._airports)

    def __contains__(self, iata_code: str) -> bool:
        return self.lookup(iata_code) is not None
