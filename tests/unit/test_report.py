"""
Unit tests for the replay report.
"""

import csv
import io
import json

import pytest

from bonus_replayer.replay.report import ReplayOutcome, ReplayReport
from bonus_replayer.storage.fetcher import SkippedObject


@pytest.fixture
def report():
    report = ReplayReport()
    report.add(ReplayOutcome('tmp/2024-bonus/a.json', '200'))
    report.add(ReplayOutcome('tmp/2024-bonus/b.json', '429'))
    report.add(ReplayOutcome('tmp/2024-bonus/c.json', '200'))
    return report


def test_outcomes_keep_arrival_order(report):
    """Test outcomes are neither sorted nor deduplicated."""
    report.add(ReplayOutcome('tmp/2024-bonus/a.json', '200'))

    assert [o.source_file for o in report] == [
        'tmp/2024-bonus/a.json',
        'tmp/2024-bonus/b.json',
        'tmp/2024-bonus/c.json',
        'tmp/2024-bonus/a.json',
    ]
    assert len(report) == 4


def test_rows_use_column_headers(report):
    assert report.rows()[1] == {'file': 'tmp/2024-bonus/b.json', 'statusCode': '429'}


def test_status_counts(report):
    assert report.status_counts() == {'200': 2, '429': 1}


def test_render_table(report):
    """Test the table has a header, a separator and one line per outcome."""
    lines = report.render('table').splitlines()

    assert lines[0].split() == ['file', 'statusCode']
    assert set(lines[1].replace(' ', '')) == {'-'}
    assert lines[2].split() == ['tmp/2024-bonus/a.json', '200']
    assert lines[3].split() == ['tmp/2024-bonus/b.json', '429']
    assert lines[4].split() == ['tmp/2024-bonus/c.json', '200']
    assert 'Replayed: 3 (200: 2, 429: 1)' in lines

    # Status column is aligned
    assert lines[2].index('200') == lines[0].index('statusCode')


def test_render_table_empty():
    lines = ReplayReport().render().splitlines()

    assert lines[0].split() == ['file', 'statusCode']
    assert 'Replayed: 0' in lines


def test_render_table_lists_skipped(report):
    report.add_skipped(SkippedObject('2024-bonus/d.json', 'tmp/2024-bonus/d.json', 'AccessDenied'))

    text = report.render('table')

    assert 'Skipped downloads: 1' in text
    assert 'tmp/2024-bonus/d.json: AccessDenied' in text


def test_render_csv(report):
    rows = list(csv.DictReader(io.StringIO(report.render('csv'))))

    assert rows == report.rows()


def test_render_json(report):
    report.add_skipped(SkippedObject('2024-bonus/d.json', 'tmp/2024-bonus/d.json', 'AccessDenied'))

    data = json.loads(report.render('json'))

    assert data['outcomes'] == report.rows()
    assert data['skipped'] == [
        {'file': 'tmp/2024-bonus/d.json', 'object': '2024-bonus/d.json', 'reason': 'AccessDenied'}
    ]
    assert data['summary'] == {'replayed': 3, 'skipped': 1, 'status_codes': {'200': 2, '429': 1}}


def test_render_unknown_format(report):
    with pytest.raises(ValueError):
        report.render('xml')
