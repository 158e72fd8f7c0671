"""Local city/state to ZIP code lookup. No network access."""

import re
from typing import Dict, Optional, Tuple

# Representative ZIP per state, used when the city is not in the table
STATE_ZIP_CENTROIDS: Dict[str, str] = {
    "AL": "35201", "AK": "99501", "AZ": "85001", "AR": "72201",
    "CA": "90001", "CO": "80201", "CT": "06101", "DE": "19901",
    "FL": "33101", "GA": "30301", "HI": "96801", "ID": "83701",
    "IL": "60601", "IN": "46201", "IA": "50301", "KS": "66101",
    "KY": "40201", "LA": "70101", "ME": "04101", "MD": "21201",
    "MA": "02101", "MI": "48201", "MN": "55401", "MS": "39201",
    "MO": "63101", "MT": "59101", "NE": "68101", "NV": "89101",
    "NH": "03101", "NJ": "07001", "NM": "87101", "NY": "10001",
    "NC": "28201", "ND": "58101", "OH": "44101", "OK": "73101",
    "OR": "97201", "PA": "19101", "RI": "02901", "SC": "29201",
    "SD": "57101", "TN": "37201", "TX": "75201", "UT": "84101",
    "VT": "05401", "VA": "23201", "WA": "98101", "WV": "25301",
    "WI": "53201", "WY": "82001", "DC": "20001",
}

STATE_NAMES: Dict[str, str] = {
    "AL": "alabama", "AK": "alaska", "AZ": "arizona", "AR": "arkansas",
    "CA": "california", "CO": "colorado", "CT": "connecticut", "DE": "delaware",
    "FL": "florida", "GA": "georgia", "HI": "hawaii", "ID": "idaho",
    "IL": "illinois", "IN": "indiana", "IA": "iowa", "KS": "kansas",
    "KY": "kentucky", "LA": "louisiana", "ME": "maine", "MD": "maryland",
    "MA": "massachusetts", "MI": "michigan", "MN": "minnesota", "MS": "mississippi",
    "MO": "missouri", "MT": "montana", "NE": "nebraska", "NV": "nevada",
    "NH": "new hampshire", "NJ": "new jersey", "NM": "new mexico", "NY": "new york",
    "NC": "north carolina", "ND": "north dakota", "OH": "ohio", "OK": "oklahoma",
    "OR": "oregon", "PA": "pennsylvania", "RI": "rhode island", "SC": "south carolina",
    "SD": "south dakota", "TN": "tennessee", "TX": "texas", "UT": "utah",
    "VT": "vermont", "VA": "virginia", "WA": "washington", "WV": "west virginia",
    "WI": "wisconsin", "WY": "wyoming", "DC": "district of columbia",
}

STATE_ABBREVIATIONS: Dict[str, str] = {name: abbr for abbr, name in STATE_NAMES.items()}
STATE_ABBREVIATIONS["washington dc"] = "DC"

CITY_POSTAL_CODES: Dict[Tuple[str, str], str] = {
    ("atlanta", "GA"): "30303",
    ("austin", "TX"): "78701",
    ("aurora", "CO"): "80012",
    ("baltimore", "MD"): "21202",
    ("boston", "MA"): "02108",
    ("boulder", "CO"): "80302",
    ("charlotte", "NC"): "28202",
    ("chicago", "IL"): "60602",
    ("colorado springs", "CO"): "80903",
    ("columbus", "OH"): "43215",
    ("dallas", "TX"): "75201",
    ("denver", "CO"): "80202",
    ("detroit", "MI"): "48226",
    ("fort collins", "CO"): "80521",
    ("houston", "TX"): "77002",
    ("jacksonville", "FL"): "32202",
    ("kansas city", "MO"): "64105",
    ("lakewood", "CO"): "80226",
    ("las vegas", "NV"): "89101",
    ("los angeles", "CA"): "90012",
    ("miami", "FL"): "33130",
    ("minneapolis", "MN"): "55401",
    ("nashville", "TN"): "37203",
    ("new york", "NY"): "10007",
    ("orlando", "FL"): "32801",
    ("philadelphia", "PA"): "19107",
    ("phoenix", "AZ"): "85004",
    ("portland", "OR"): "97204",
    ("raleigh", "NC"): "27601",
    ("salt lake city", "UT"): "84111",
    ("san antonio", "TX"): "78205",
    ("san diego", "CA"): "92101",
    ("san francisco", "CA"): "94102",
    ("seattle", "WA"): "98104",
    ("tampa", "FL"): "33602",
    ("washington", "DC"): "20001",
}


def _city_key(city: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9\s]", "", city.lower())).strip()


def lookup_postal_code(city: Optional[str], state: Optional[str]) -> Optional[str]:
    """Return a ZIP for ``city``/``state`` (two-letter code).

    City-level entries win; otherwise the state's centroid ZIP is used.
    """
    if not state:
        return None
    state = state.upper()
    if city:
        postal_code = CITY_POSTAL_CODES.get((_city_key(city), state))
        if postal_code:
            return postal_code
    return STATE_ZIP_CENTROIDS.get(state)
