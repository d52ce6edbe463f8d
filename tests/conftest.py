"""
Shared fakes for the object store and the redeem API.
"""

from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest
import requests
from botocore.exceptions import ClientError


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({'Error': {'Code': code, 'Message': f'{code} error'}}, operation)


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls used by the fetcher."""

    def __init__(self, objects: Dict[str, bytes], page_size: int = 1000):
        self.objects = objects
        self.page_size = page_size
        self.list_error: Optional[Exception] = None
        self.download_errors: Dict[str, Exception] = {}
        self.downloads: List[str] = []
        self.paginate_calls: List[Dict] = []

    def get_paginator(self, operation_name):
        assert operation_name == 'list_objects_v2'
        paginator = Mock()
        paginator.paginate.side_effect = self._paginate
        return paginator

    def _paginate(self, Bucket, Prefix):
        self.paginate_calls.append({'Bucket': Bucket, 'Prefix': Prefix})
        if self.list_error:
            raise self.list_error

        keys = [key for key in self.objects if key.startswith(Prefix)]
        if not keys:
            yield {'KeyCount': 0}
            return

        for start in range(0, len(keys), self.page_size):
            chunk = keys[start:start + self.page_size]
            yield {
                'KeyCount': len(chunk),
                'Contents': [{'Key': key, 'Size': len(self.objects[key])} for key in chunk]
            }

    def download_file(self, Bucket, Key, Filename):
        if Key in self.download_errors:
            raise self.download_errors[Key]
        self.downloads.append(Key)
        Path(Filename).write_bytes(self.objects[Key])


def make_response(status_code: int, body=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    if body is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
        response.text = ''
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def fake_s3():
    """Store holding two redeemed requests under 2024-bonus/."""
    return FakeS3Client({
        '2024-bonus/a.json': b'{"id": "a", "code": "AAA"}',
        '2024-bonus/b.json': b'{"id": "b", "code": "BBB"}',
    })


@pytest.fixture
def mock_session():
    """requests.Session mock answering 200 to every POST."""
    session = Mock(spec=requests.Session)
    session.post.return_value = make_response(200, {'status': 'ok'})
    return session
