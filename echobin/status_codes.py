import math
import random
import re
from dataclasses import dataclass
from typing import List, Optional

from echobin.errors import InvalidArgument

MIN_STATUS_CODE = 100
MAX_STATUS_CODE = 599

# ASCII only: int() and float() also take other Unicode digits and "1_0"
INTEGER_PATTERN = re.compile(r"[+-]?\d+", re.ASCII)
DECIMAL_PATTERN = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


@dataclass(frozen=True)
class WeightedCode:
    code: int
    weight: float


def check_status_code(code: int) -> int:
    if not MIN_STATUS_CODE <= code <= MAX_STATUS_CODE:
        raise InvalidArgument("Invalid status code")
    return code


def parse_status_code(raw: str) -> int:
    if not INTEGER_PATTERN.fullmatch(raw):
        raise InvalidArgument("Invalid status code")
    return check_status_code(int(raw))


def parse_weighted_codes(spec: str) -> List[WeightedCode]:
    """Parse ``200,404:0.5,500:2`` into weighted entries (bare codes weigh 1)."""
    choices = []
    for choice in spec.split(","):
        raw_code, _, raw_weight = choice.partition(":")
        code = parse_status_code(raw_code)
        if raw_weight and not DECIMAL_PATTERN.fullmatch(raw_weight):
            raise InvalidArgument("Invalid status code")
        weight = float(raw_weight) if raw_weight else 1.0
        if not math.isfinite(weight) or weight < 0:
            raise InvalidArgument("Invalid status code")
        choices.append(WeightedCode(code, weight))
    if sum(c.weight for c in choices) <= 0:
        raise InvalidArgument("Invalid status code")
    return choices


def choose_status_code(choices: List[WeightedCode], rng: random.Random) -> int:
    total = 0.0
    cum_weights = []
    for choice in choices:
        total += choice.weight
        cum_weights.append(total)
    x = rng.random() * total
    for choice, cum_weight in zip(choices, cum_weights):
        if cum_weight > x:
            return choice.code
    # float rounding only
    return next(c.code for c in reversed(choices) if c.weight > 0)


def select_status_code(spec: str, seed: Optional[int] = None) -> int:
    """Return a status code from a comma-separated weighted spec.

    A single entry is returned as-is. Otherwise a fresh generator is drawn
    from for this call only, seeded when ``seed`` is given.
    """
    if "," not in spec:
        return parse_status_code(spec)
    choices = parse_weighted_codes(spec)
    return choose_status_code(choices, random.Random(seed))
