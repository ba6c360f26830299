"""
Centralized AWS client factory.

Credentials come from settings (which loads from .env) and fall back to the
default boto3 credential chain when unset.
"""

import boto3
from botocore.config import Config

from imgjobs.config.logging import get_logger
from imgjobs.config.settings import Settings

logger = get_logger(__name__)


def _client_kwargs(settings: Settings) -> dict:
    kwargs = {
        "region_name": settings.aws_region,
        "aws_access_key_id": settings.aws_access_key_id,
        "aws_secret_access_key": settings.aws_secret_access_key,
        "aws_session_token": settings.aws_session_token,
    }
    if settings.aws_endpoint_url:
        kwargs["endpoint_url"] = settings.aws_endpoint_url
    return kwargs


def get_s3_client(settings: Settings):
    """Get S3 client with proper credentials."""
    try:
        client = boto3.client(
            "s3",
            config=Config(signature_version="s3v4"),
            **_client_kwargs(settings),
        )
        logger.info("S3 client initialized", region=settings.aws_region)
        return client
    except Exception as e:
        logger.error("Failed to initialize S3 client", error=str(e))
        raise


def get_sqs_client(settings: Settings):
    """Get SQS client with proper credentials."""
    try:
        client = boto3.client("sqs", **_client_kwargs(settings))
        logger.info("SQS client initialized", region=settings.aws_region)
        return client
    except Exception as e:
        logger.error("Failed to initialize SQS client", error=str(e))
        raise


def has_explicit_credentials(settings: Settings) -> bool:
    """True when static keys are set; otherwise boto3 uses its default chain."""
    return bool(settings.aws_access_key_id and settings.aws_secret_access_key)
