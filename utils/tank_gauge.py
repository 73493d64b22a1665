from decimal import Decimal

from core.errors import InvalidTankLevel

EIGHTHS_PER_TANK = 8

# Gauge labels indexed by level in eighths (0 = empty, 8 = full)
TANK_LABELS = ["E", "1/8", "1/4", "3/8", "1/2", "5/8", "3/4", "7/8", "F"]

# Long forms seen on imported data
LABEL_ALIASES = {"EMPTY": 0, "FULL": 8}


def _check_level(level) -> int:
    if isinstance(level, bool) or not isinstance(level, int):
        raise InvalidTankLevel(f"Tank level must be a whole number of eighths, got {level!r}")
    if not 0 <= level <= EIGHTHS_PER_TANK:
        raise InvalidTankLevel(f"Tank level must be between 0 and 8, got {level}")
    return level


def label_for(level: int) -> str:
    """Display label for a tank level: 0 -> "E", 4 -> "1/2", 8 -> "F"."""
    return TANK_LABELS[_check_level(level)]


def level_for(label: str) -> int:
    """Exact inverse of label_for; also accepts EMPTY/FULL in any case."""
    if not isinstance(label, str):
        raise InvalidTankLevel(f"Tank label must be text, got {label!r}")
    key = label.strip().upper()
    if key in LABEL_ALIASES:
        return LABEL_ALIASES[key]
    try:
        return TANK_LABELS.index(key)
    except ValueError:
        raise InvalidTankLevel(f"Unknown tank label: {label!r}")


def fraction_for(level: int) -> Decimal:
    """Share of a full tank, e.g. 6 -> 0.75."""
    return Decimal(_check_level(level)) / EIGHTHS_PER_TANK


def parse_tank_level(value):
    """Form input for a tank level: a gauge label ("3/4", "F") or a number of eighths."""
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        return level_for(text)
    return value
