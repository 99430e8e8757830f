"""
Timestamp alignment of independently fetched metric streams

Each metric comes back with its own sparse set of timestamps. Streams are
folded into pandas frames keyed by UTC timestamp and joined, keeping absent
values as None so callers can tell "no datapoint" from a real zero.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .metrics import MetricSample


@dataclass(frozen=True)
class AlignedRow:
    timestamp: datetime
    values: Dict[str, Optional[float]] = field(default_factory=dict)

    def get(self, metric_name: str, statistic: str = 'avg') -> Optional[float]:
        return self.values.get(column_name(metric_name, statistic))


def column_name(metric_name: str, statistic: str) -> str:
    return f"{metric_name}.{statistic}"


def stream_frame(metric_name: str, samples: Sequence[MetricSample]) -> pd.DataFrame:
    """Fold one metric stream into a frame indexed by UTC timestamp"""
    avg_col = column_name(metric_name, 'avg')
    max_col = column_name(metric_name, 'max')
    records = [
        {'timestamp': s.timestamp, avg_col: s.average, max_col: s.maximum}
        for s in samples
        if s.timestamp is not None
    ]
    frame = pd.DataFrame(records, columns=['timestamp', avg_col, max_col])
    frame['timestamp'] = pd.to_datetime(frame['timestamp'], utc=True)
    frame = frame.set_index('timestamp')
    # Later samples for the same timestamp replace earlier ones
    frame = frame[~frame.index.duplicated(keep='last')]
    return frame.astype('float64')


def _clean(value) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return float(value)


def align_samples(streams: Mapping[str, Sequence[MetricSample]], driver: Optional[str] = None) -> List[AlignedRow]:
    """
    Merge metric streams into one row per timestamp

    Args:
        streams: metric name -> samples
        driver: metric whose timestamps define the rows; the other streams are
            left-joined onto it. When omitted, the union of all timestamps is used.

    Returns:
        Rows sorted by timestamp
    """
    if not streams:
        return []
    if driver is not None and driver not in streams:
        raise ValueError(f"Driver metric {driver} is not among the fetched streams")

    frames = {name: stream_frame(name, samples) for name, samples in streams.items()}

    if driver is not None:
        merged = frames[driver]
        for name, frame in frames.items():
            if name != driver:
                merged = merged.join(frame, how='left')
    else:
        merged = pd.concat(list(frames.values()), axis=1, join='outer')

    merged = merged.sort_index()

    rows = []
    for timestamp, values in merged.to_dict('index').items():
        if pd.isna(timestamp):
            continue
        rows.append(AlignedRow(
            timestamp=timestamp.to_pydatetime(),
            values={col: _clean(v) for col, v in values.items()},
        ))
    return rows
