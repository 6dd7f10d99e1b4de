"""
Data lineage: an audit trail of what happened to a dataset.

A ``LineageTracker`` is created per dataset and owned by whoever loaded it
(normally an ``AnalysisSession``). It records uploads, filters, aggregations,
transformations and exports, and derives a heuristic 0-100 trust score from
age, transformation count and row loss.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ACTIONS = ('uploaded', 'filtered', 'aggregated', 'transformed', 'exported')


@dataclass
class LineageEvent:
    id: str
    timestamp: datetime
    action: str
    description: str
    affected_rows: int
    previous_row_count: int
    row_count_change: int
    details: Dict[str, Any] = field(default_factory=dict)


class LineageTracker:
    """Audit trail and trust score for one dataset."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or datetime.now
        self.events: List[LineageEvent] = []
        self.upload_time: datetime = self.clock()
        self.original_row_count = 0
        self.current_row_count = 0

    def initialize(self, row_count: int, file_name: str) -> None:
        """Start the trail with the upload event."""
        self.events = []
        self.upload_time = self.clock()
        self.original_row_count = row_count
        self.current_row_count = row_count
        self.record_event('uploaded', f"Uploaded file: {file_name}", row_count, 0,
                          {'file_name': file_name})

    def record_event(self,
                     action: str,
                     description: str,
                     affected_rows: int,
                     previous_row_count: int,
                     details: Optional[Dict[str, Any]] = None) -> LineageEvent:
        if action not in ACTIONS:
            raise ValueError(f"Unknown lineage action '{action}'")

        event = LineageEvent(
            id=f"event-{uuid.uuid4().hex[:12]}",
            timestamp=self.clock(),
            action=action,
            description=description,
            affected_rows=affected_rows,
            previous_row_count=previous_row_count,
            row_count_change=affected_rows - previous_row_count,
            details=dict(details or {}),
        )
        self.current_row_count = affected_rows
        self.events.append(event)
        logger.debug(f"Lineage event {action}: {description}")
        return event

    def record_filter(self, description: str, previous_count: int, new_count: int,
                      details: Optional[Dict[str, Any]] = None) -> LineageEvent:
        return self.record_event('filtered', description, new_count, previous_count, details)

    def record_aggregation(self, group_column: str, aggregation_type: str,
                           result_row_count: int, previous_count: int) -> LineageEvent:
        return self.record_event(
            'aggregated',
            f"Aggregated by {group_column} using {aggregation_type}",
            result_row_count,
            previous_count,
            {'group_column': group_column, 'aggregation_type': aggregation_type},
        )

    def record_transformation(self, description: str, affected_rows: int, previous_count: int,
                              details: Optional[Dict[str, Any]] = None) -> LineageEvent:
        return self.record_event('transformed', description, affected_rows, previous_count, details)

    def record_export(self, export_format: str, row_count: int) -> LineageEvent:
        return self.record_event(
            'exported',
            f"Exported {row_count} rows to {export_format.upper()}",
            row_count,
            row_count,
            {'format': export_format, 'row_count': row_count},
        )

    def _age_hours(self) -> float:
        if not self.events:
            return 0.0
        return (self.clock() - self.events[-1].timestamp).total_seconds() / 3600

    def _transform_count(self) -> int:
        return sum(1 for e in self.events if e.action != 'uploaded')

    def trust_score(self) -> int:
        """
        Heuristic trust score in [0, 100].

        Starts at 100, loses a point per hour since the last event (max 30),
        two per transformation (max 20) and one per 5% of rows lost (max 25),
        and gains 5 when the latest step kept the row count. 50 when empty.
        """
        if not self.events:
            return 50

        score = 100
        score -= min(30, math.floor(self._age_hours()))

        transforms = self._transform_count()
        score -= min(20, transforms * 2)

        if self.original_row_count:
            row_loss = (self.original_row_count - self.current_row_count) / self.original_row_count * 100
            score -= min(25, math.floor(max(0.0, row_loss) / 5))

        if transforms > 0 and self.events[-1].row_count_change == 0:
            score += 5

        return max(0, min(100, round(score)))

    def get_history(self) -> Dict[str, Any]:
        return {
            'upload_time': self.upload_time,
            'last_modified': self.events[-1].timestamp if self.events else self.upload_time,
            'events': list(self.events),
            'total_transformations': self._transform_count(),
            'current_row_count': self.current_row_count,
            'original_row_count': self.original_row_count,
            'data_trust_score': self.trust_score(),
        }

    def get_freshness(self) -> Dict[str, Any]:
        if not self.events:
            return {'age_hours': 0.0, 'age_label': 'Just now', 'fresh': True,
                    'recommendation': 'Data is fresh'}

        age = self._age_hours()
        fresh = True
        if age < 1:
            label, recommendation = 'Just now', '✅ Data is very fresh'
        elif age < 24:
            label, recommendation = f"{math.floor(age)}h ago", '✅ Data is fresh'
        elif age < 168:
            label, recommendation = f"{math.floor(age / 24)} days ago", '⚠️ Data is moderately aged'
        else:
            label, recommendation = f"{math.floor(age / 168)} weeks ago", '⚠️ Consider refreshing data'
            fresh = False

        return {
            'age_hours': round(age, 1),
            'age_label': label,
            'fresh': fresh,
            'recommendation': recommendation,
        }

    def get_impact_summary(self) -> Dict[str, Any]:
        rows_removed = self.original_row_count - self.current_row_count
        impact = rows_removed / self.original_row_count * 100 if self.original_row_count else 0.0
        return {
            'total_filters': sum(1 for e in self.events if e.action == 'filtered'),
            'total_aggregations': sum(1 for e in self.events if e.action == 'aggregated'),
            'total_transforms': sum(1 for e in self.events if e.action == 'transformed'),
            'rows_removed': rows_removed,
            'completeness_impact': round(impact, 2),
        }

    def export_timeline(self) -> str:
        """Readable timeline of every recorded event."""
        lines = [
            '📊 DATA LINEAGE TIMELINE',
            '========================',
            '',
            f"📅 Upload: {self.upload_time:%Y-%m-%d %H:%M:%S}",
            f"📈 Original Rows: {self.original_row_count}",
            f"📉 Current Rows: {self.current_row_count}",
            f"⭐ Trust Score: {self.trust_score()}/100",
            '',
            'TRANSFORMATIONS:',
        ]
        for position, event in enumerate(self.events, start=1):
            if event.row_count_change < 0:
                arrow = '📉'
            elif event.row_count_change > 0:
                arrow = '📈'
            else:
                arrow = '→'
            sign = '+' if event.row_count_change > 0 else ''
            lines.append(f"{position}. [{event.timestamp:%H:%M:%S}] {arrow} {event.action.upper()}")
            lines.append(f"   {event.description}")
            lines.append(
                f"   Rows: {event.previous_row_count} → {event.affected_rows} "
                f"({sign}{event.row_count_change})"
            )
            lines.append('')
        return '\n'.join(lines)
