"""
Replay report - ordered per-file outcomes rendered once at the end of a run.
"""

import csv
import io
import json
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterator, List

from ..storage.fetcher import SkippedObject


OUTPUT_FORMATS = ('table', 'csv', 'json')


@dataclass(frozen=True)
class ReplayOutcome:
    """Result of replaying one staged file."""
    source_file: str
    status_code: str

    def to_dict(self) -> Dict:
        """Row with the report's column headers as keys."""
        return {
            'file': self.source_file,
            'statusCode': self.status_code
        }


class ReplayReport:
    """Append-only collection of outcomes in arrival order."""

    COLUMNS = ('file', 'statusCode')

    def __init__(self):
        self.outcomes: List[ReplayOutcome] = []
        self.skipped: List[SkippedObject] = []

    def add(self, outcome: ReplayOutcome):
        self.outcomes.append(outcome)

    def add_skipped(self, skipped: SkippedObject):
        self.skipped.append(skipped)

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[ReplayOutcome]:
        return iter(self.outcomes)

    def rows(self) -> List[Dict]:
        return [outcome.to_dict() for outcome in self.outcomes]

    def status_counts(self) -> Dict[str, int]:
        """Number of outcomes per status code, in order of first appearance."""
        return dict(Counter(outcome.status_code for outcome in self.outcomes))

    def render(self, output: str = 'table') -> str:
        """
        Render the report.

        Args:
            output: One of 'table', 'csv' or 'json'

        Returns:
            Rendered report text
        """
        if output == 'table':
            return self._render_table()
        if output == 'csv':
            return self._render_csv()
        if output == 'json':
            return self._render_json()
        raise ValueError(f"Unknown report format: {output}")

    def _render_table(self) -> str:
        rows = [[row[column] for column in self.COLUMNS] for row in self.rows()]
        widths = [
            max([len(column)] + [len(row[i]) for row in rows])
            for i, column in enumerate(self.COLUMNS)
        ]

        def format_line(values) -> str:
            return ' '.join(value.ljust(width) for value, width in zip(values, widths)).rstrip()

        lines = [
            format_line(self.COLUMNS),
            format_line(['-' * width for width in widths])
        ]
        lines.extend(format_line(row) for row in rows)

        tally = ', '.join(f"{code}: {count}" for code, count in self.status_counts().items())
        lines.append('')
        lines.append(f"Replayed: {len(self.outcomes)}" + (f" ({tally})" if tally else ''))

        if self.skipped:
            lines.append(f"Skipped downloads: {len(self.skipped)}")
            for skipped in self.skipped:
                lines.append(f"  {skipped.path}: {skipped.reason}")

        return '\n'.join(lines)

    def _render_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=list(self.COLUMNS), lineterminator='\n')
        writer.writeheader()
        writer.writerows(self.rows())
        return buffer.getvalue().rstrip('\n')

    def _render_json(self) -> str:
        return json.dumps({
            'outcomes': self.rows(),
            'skipped': [
                {'file': s.path, 'object': s.object_name, 'reason': s.reason}
                for s in self.skipped
            ],
            'summary': {
                'replayed': len(self.outcomes),
                'skipped': len(self.skipped),
                'status_codes': self.status_counts()
            }
        }, indent=2)
