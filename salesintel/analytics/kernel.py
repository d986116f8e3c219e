"""
Aggregation Kernel

Generic, side-effect-free window and rollup primitives over record
sequences. Records can be anything (dicts from ``DataFrame.to_dicts()``,
dataclasses, tuples); callers supply extractor functions. Nothing here knows
about orders or customers.

Ordering rules shared by every primitive:
- sorting is stable and ties on the ordering value are broken by an explicit
  secondary key (``tie_key``), so output is reproducible for a fixed input;
- ``None`` ordering values sort last regardless of direction;
- empty input yields empty output, never an exception.
"""

from collections import deque
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

KeyFn = Callable[[T], Any]
ValueFn = Callable[[T], Optional[float]]


def _sort_key(order_fn: KeyFn, descending: bool, tie_key: Optional[KeyFn]):
    def key(record):
        value = order_fn(record)
        tie = tie_key(record) if tie_key is not None else None
        if value is None:
            return (1, 0, tie)
        return (0, -value if descending else value, tie)
    return key


def sort_records(
    records: Iterable[T],
    order_fn: KeyFn,
    descending: bool = False,
    tie_key: Optional[KeyFn] = None,
) -> List[T]:
    """
    Stable sort by ``order_fn`` with a deterministic tie-break.

    Numeric ordering values are negated for descending order; the tie-break
    key always ascends. Non-numeric ordering values must use ascending order.
    """
    return sorted(records, key=_sort_key(order_fn, descending, tie_key))


def group_sum(
    records: Iterable[T],
    key_fn: Callable[[T], K],
    value_fn: ValueFn,
) -> Dict[K, float]:
    """
    Sum values per key.

    Records whose value is ``None`` do not contribute; a key whose records are
    all ``None`` is absent from the result rather than mapped to zero.
    """
    totals: Dict[K, float] = {}
    for record in records:
        value = value_fn(record)
        if value is None:
            continue
        key = key_fn(record)
        totals[key] = totals.get(key, 0.0) + value
    return totals


def group_mean(
    records: Iterable[T],
    key_fn: Callable[[T], K],
    value_fn: ValueFn,
) -> Dict[K, float]:
    """Average values per key, excluding ``None`` values from the denominator"""
    totals: Dict[K, float] = {}
    counts: Dict[K, int] = {}
    for record in records:
        value = value_fn(record)
        if value is None:
            continue
        key = key_fn(record)
        totals[key] = totals.get(key, 0.0) + value
        counts[key] = counts.get(key, 0) + 1
    return {key: totals[key] / counts[key] for key in totals}


def running_sum(
    records: Iterable[T],
    order_fn: ValueFn,
    value_fn: Optional[ValueFn] = None,
    descending: bool = True,
    tie_key: Optional[KeyFn] = None,
) -> List[Tuple[T, float]]:
    """
    Cumulative sum in rank order.

    Records are ordered by ``order_fn`` (descending by default, the revenue
    rank order) and accumulate ``value_fn`` (defaults to ``order_fn``).
    ``None`` values add nothing to the running total.
    """
    value_fn = value_fn or order_fn
    cumulative = 0.0
    result = []
    for record in sort_records(records, order_fn, descending, tie_key):
        value = value_fn(record)
        if value is not None:
            cumulative += value
        result.append((record, cumulative))
    return result


def rank(
    records: Iterable[T],
    order_fn: KeyFn,
    descending: bool = True,
    tie_key: Optional[KeyFn] = None,
    method: str = "row_number",
) -> List[Tuple[T, int]]:
    """
    1-indexed rank in sort order.

    Methods:
        row_number: consecutive positions after the tie-break (default)
        min: standard competition rank; equal values share the lowest
            position and the next distinct value skips ahead (1, 1, 3)
        dense: equal values share a rank with no gaps (1, 1, 2)
    """
    if method not in ("row_number", "min", "dense"):
        raise ValueError(f"Unknown rank method: {method}")

    ordered = sort_records(records, order_fn, descending, tie_key)
    result: List[Tuple[T, int]] = []
    previous = object()
    current = 0
    distinct = 0
    for position, record in enumerate(ordered, start=1):
        value = order_fn(record)
        if method == "row_number":
            current = position
        elif value != previous:
            distinct += 1
            current = position if method == "min" else distinct
        previous = value
        result.append((record, current))
    return result


def bucket_sizes(count: int, bucket_count: int) -> List[int]:
    """Near-equal partition sizes, remainder to the first buckets"""
    if bucket_count < 1:
        raise ValueError("bucket_count must be at least 1")
    base, remainder = divmod(count, bucket_count)
    return [base + 1 if i < remainder else base for i in range(bucket_count)]


def quantile_bucket(
    records: Iterable[T],
    order_fn: KeyFn,
    bucket_count: int,
    descending: bool = False,
    tie_key: Optional[KeyFn] = None,
) -> List[Tuple[T, int]]:
    """
    Assign each record to one of ``bucket_count`` near-equal buckets.

    Records are sorted (ascending by default) and split into consecutive
    buckets numbered from 1; when the records do not divide evenly the first
    buckets hold one extra record each. With fewer records than buckets the
    trailing buckets are empty. Returns ``(record, bucket)`` pairs in sorted
    order.
    """
    ordered = sort_records(records, order_fn, descending, tie_key)
    result: List[Tuple[T, int]] = []
    position = 0
    for bucket, size in enumerate(bucket_sizes(len(ordered), bucket_count), start=1):
        for record in ordered[position:position + size]:
            result.append((record, bucket))
        position += size
    return result


def lag(
    sequence: Iterable[T],
    order_fn: KeyFn,
    value_fn: Optional[Callable[[T], Any]] = None,
    offset: int = 1,
) -> List[Tuple[T, Optional[Any]]]:
    """
    Pair each element with the value ``offset`` positions earlier.

    Elements are sorted ascending by ``order_fn``; the first ``offset``
    elements have no predecessor and are paired with ``None``.
    """
    value_fn = value_fn or order_fn
    ordered = sorted(sequence, key=order_fn)
    result: List[Tuple[T, Optional[Any]]] = []
    for i, record in enumerate(ordered):
        previous = value_fn(ordered[i - offset]) if i >= offset else None
        result.append((record, previous))
    return result


def moving_average(
    sequence: Iterable[T],
    order_fn: KeyFn,
    value_fn: ValueFn,
    window: int,
) -> List[Tuple[T, Optional[float]]]:
    """
    Trailing average over the last ``window`` elements, current included.

    The first elements average over the shorter history available. ``None``
    values are skipped; a window holding only ``None`` averages to ``None``.
    """
    if window < 1:
        raise ValueError("window must be at least 1")

    trailing: deque = deque(maxlen=window)
    result: List[Tuple[T, Optional[float]]] = []
    for record in sorted(sequence, key=order_fn):
        trailing.append(value_fn(record))
        present = [v for v in trailing if v is not None]
        result.append((record, sum(present) / len(present) if present else None))
    return result


def safe_ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """Division that yields ``None`` for an absent or zero denominator"""
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator


def safe_pct(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """Percentage form of ``safe_ratio``"""
    ratio = safe_ratio(numerator, denominator)
    return ratio * 100 if ratio is not None else None


def growth_pct(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    """Period-over-period growth; absent when the previous period is zero or absent"""
    if current is None:
        return None
    return safe_pct(current - previous if previous is not None else None, previous)


def mean(values: Sequence[Optional[float]]) -> Optional[float]:
    """Mean of present values; ``None`` when there are none"""
    present = [v for v in values if v is not None]
    return sum(present) / len(present) if present else None
