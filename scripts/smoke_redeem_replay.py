#!/usr/bin/env python3
"""
Smoke Test - Redeem Bonuses Replay

Verifies against a live S3-compatible store (MinIO) that the replayer:
1. Lists and downloads every object under a container folder
2. Posts each staged request to the API with the subscription key
3. Paces consecutive requests and reports the status of each

Requires a reachable MinIO; the redeem API is replaced by a local stub.
"""

import json
import os
import subprocess
import sys
import tempfile
import time
import uuid
from http.server import BaseHTTPRequestHandler, HTTPServer
from threading import Thread

import boto3
from botocore.exceptions import ClientError


MINIO_ENDPOINT = os.getenv('MINIO_ENDPOINT', 'http://localhost:9000')
MINIO_ACCESS_KEY = os.getenv('MINIO_ACCESS_KEY', 'minioadmin')
MINIO_SECRET_KEY = os.getenv('MINIO_SECRET_KEY', 'minioadmin123')
BUCKET = os.getenv('SMOKE_BUCKET', 'redeemed-requests')
STUB_PORT = int(os.getenv('SMOKE_STUB_PORT', '8089'))
API_KEY = 'smoke-key'

received = []


class RedeemStubHandler(BaseHTTPRequestHandler):
    """Answers 200 to the first request and 429 to the following ones."""

    def do_POST(self):
        length = int(self.headers.get('Content-Length', 0))
        received.append({
            'time': time.monotonic(),
            'key': self.headers.get('Ocp-Apim-Subscription-Key'),
            'body': self.rfile.read(length).decode('utf-8')
        })
        status = 200 if len(received) == 1 else 429
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps({'status': status}).encode('utf-8'))

    def log_message(self, format, *args):
        pass


def upload_test_objects(s3, folder):
    print("Step 1: Uploading test requests to MinIO...")
    try:
        s3.head_bucket(Bucket=BUCKET)
    except ClientError:
        s3.create_bucket(Bucket=BUCKET)

    keys = []
    for name in ('a', 'b'):
        key = f"{folder}/{name}.json"
        body = json.dumps({'id': str(uuid.uuid4()), 'code': name.upper() * 3})
        s3.put_object(Bucket=BUCKET, Key=key, Body=body.encode('utf-8'))
        keys.append(key)
        print(f"  ✓ Uploaded {key}")
    return keys


def run_replayer(folder, tmp_dir):
    print("\nStep 2: Running replayer...")
    env = dict(
        os.environ,
        REPLAYER_STORAGE_NAME='smoke',
        REPLAYER_BONUS_REDEEMED_CONTAINER=BUCKET,
        REPLAYER_STORAGE_CONNECTION=(
            f"EndpointUrl={MINIO_ENDPOINT};AccessKeyId={MINIO_ACCESS_KEY};"
            f"SecretAccessKey={MINIO_SECRET_KEY};Region=us-east-1"
        )
    )
    cmd = [
        sys.executable, '-m', 'bonus_replayer',
        '--tmp-dir', tmp_dir,
        '--container-folder', folder,
        '--api-url', f'http://127.0.0.1:{STUB_PORT}/redeemed',
        '--api-key', API_KEY,
        '--output', 'json'
    ]
    print(f"  Command: {' '.join(cmd)}")
    return subprocess.run(cmd, env=env, capture_output=True, text=True)


def main():
    print("=" * 60)
    print("REDEEM BONUSES REPLAY SMOKE TEST")
    print("=" * 60)

    s3 = boto3.client(
        's3',
        endpoint_url=MINIO_ENDPOINT,
        aws_access_key_id=MINIO_ACCESS_KEY,
        aws_secret_access_key=MINIO_SECRET_KEY,
        region_name='us-east-1'
    )
    folder = f"smoke-{uuid.uuid4().hex[:8]}"

    server = HTTPServer(('127.0.0.1', STUB_PORT), RedeemStubHandler)
    Thread(target=server.serve_forever, daemon=True).start()

    try:
        keys = upload_test_objects(s3, folder)

        with tempfile.TemporaryDirectory() as tmp_dir:
            result = run_replayer(folder, tmp_dir)

            if result.returncode != 0:
                print(f"✗ Replayer exited with {result.returncode}")
                print(result.stderr)
                return 1

            report = json.loads(result.stdout)
            expected = [
                {'file': os.path.join(tmp_dir, keys[0]), 'statusCode': '200'},
                {'file': os.path.join(tmp_dir, keys[1]), 'statusCode': '429'},
            ]

        print("\nStep 3: Checking results...")
        checks = [
            ("report lists every object in order", report['outcomes'] == expected),
            ("every request carried the api key", all(r['key'] == API_KEY for r in received)),
            ("requests were paced >= 1s apart", len(received) == 2 and received[1]['time'] - received[0]['time'] >= 1.0),
            ("body is the staged text as a JSON string", all(isinstance(json.loads(r['body']), str) for r in received)),
        ]
        for label, ok in checks:
            print(f"  {'✓' if ok else '✗'} {label}")

        passed = all(ok for _, ok in checks)
        print("=" * 60)
        print("PASSED" if passed else "FAILED")
        print("=" * 60)
        return 0 if passed else 1

    finally:
        server.shutdown()
        for name in ('a', 'b'):
            s3.delete_object(Bucket=BUCKET, Key=f"{folder}/{name}.json")


if __name__ == '__main__':
    sys.exit(main())
