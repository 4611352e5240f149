from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config

from ..config import AwsSettings


def boto3_session(aws: AwsSettings) -> boto3.session.Session:
    kwargs: dict[str, Any] = {"region_name": aws.region}
    if aws.access_key_id and aws.secret_access_key:
        kwargs["aws_access_key_id"] = aws.access_key_id
        kwargs["aws_secret_access_key"] = aws.secret_access_key
    return boto3.session.Session(**kwargs)


def boto3_client(service: str, aws: AwsSettings, session: boto3.session.Session | None = None) -> Any:
    session = session or boto3_session(aws)
    kwargs: dict[str, Any] = {
        "config": Config(retries={"max_attempts": 3}, signature_version="s3v4"),
    }
    if aws.s3_endpoint_url and service == "s3":
        kwargs["endpoint_url"] = aws.s3_endpoint_url
    return session.client(service, **kwargs)
