"""Helpers for creating AWS clients.

The templates bucket client uses the application's own credentials. SES and
SNS clients are built per user from the keys they registered.
"""

import boto3
from botocore.client import BaseClient


def _normalize_endpoint(endpoint_url):
    if endpoint_url:
        return endpoint_url.rstrip("/")
    return None


def get_s3_client(config) -> BaseClient:
    """Return an S3 client for the templates bucket (S3-compatible endpoints allowed)."""
    return boto3.client(
        "s3",
        region_name=config.get('AWS_REGION'),
        aws_access_key_id=config.get('AWS_ACCESS_KEY_ID') or None,
        aws_secret_access_key=config.get('AWS_SECRET_ACCESS_KEY') or None,
        endpoint_url=_normalize_endpoint(config.get('S3_ENDPOINT_URL')),
    )


def _session_for(access_key: str, secret_key: str, region: str) -> boto3.session.Session:
    return boto3.session.Session(
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
    )


def get_ses_client(access_key: str, secret_key: str, region: str) -> BaseClient:
    return _session_for(access_key, secret_key, region).client("ses")


def get_sns_client(access_key: str, secret_key: str, region: str) -> BaseClient:
    return _session_for(access_key, secret_key, region).client("sns")
