import re
from dataclasses import dataclass
from typing import Optional

from echobin.errors import RangeNotSatisfiable

RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$", re.ASCII)


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def is_partial(self) -> bool:
        return not (self.start == 0 and self.end == self.total - 1)

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


def resolve_range(range_header: Optional[str], total: int) -> ByteRange:
    """Resolve a raw Range header against a resource of ``total`` bytes.

    A missing or unparsable header selects the whole resource. Suffix ranges
    (``bytes=-500``) select the last bytes. Windows that start after they end
    or run past the resource raise RangeNotSatisfiable.
    """
    first, last = 0, total - 1
    match = RANGE_PATTERN.match(range_header or "")
    if match:
        left, right = match.groups()
        if left == "" and right:
            first = max(0, total - int(right))
        elif left and right == "":
            first = int(left)
        elif left and right:
            first, last = int(left), int(right)

    if first > last or last >= total:
        raise RangeNotSatisfiable(total)
    return ByteRange(first, last, total)
