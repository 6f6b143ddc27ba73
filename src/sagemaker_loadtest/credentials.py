"""Temporary AWS credentials from the EC2 instance metadata service (IMDSv2)."""

from dataclasses import dataclass, field
from typing import Optional

import httpx
import structlog

from .exceptions import CredentialsError

logger = structlog.get_logger()

TOKEN_PATH = "/latest/api/token"
ROLE_PATH = "/latest/meta-data/iam/security-credentials/"

TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
TOKEN_HEADER = "X-aws-ec2-metadata-token"


@dataclass(frozen=True)
class Credentials:
    """Role credentials handed out by IMDS."""
    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: Optional[str] = field(default=None, repr=False)
    expiration: Optional[str] = None


async def fetch_credentials(
    client: httpx.AsyncClient,
    base_url: str = "http://169.254.169.254",
    token_ttl: int = 300,
    timeout: float = 5.0,
) -> Credentials:
    """
    Fetch the instance role's credentials using the IMDSv2 token flow.

    Raises:
        CredentialsError: If IMDS answers with a non-200 status or an
            incomplete credentials document.
        httpx.HTTPError: If IMDS can't be reached.
    """
    base_url = base_url.rstrip("/")

    token_res = await client.put(
        base_url + TOKEN_PATH,
        headers={TOKEN_TTL_HEADER: str(token_ttl)},
        timeout=timeout,
    )
    if token_res.status_code != 200:
        raise CredentialsError(f"IMDS token failed: {token_res.status_code}")

    headers = {TOKEN_HEADER: token_res.text}

    role_res = await client.get(base_url + ROLE_PATH, headers=headers, timeout=timeout)
    if role_res.status_code != 200:
        raise CredentialsError(f"No IAM role attached to EC2: {role_res.status_code}")

    role_name = role_res.text.strip()
    creds_res = await client.get(base_url + ROLE_PATH + role_name, headers=headers, timeout=timeout)
    if creds_res.status_code != 200:
        raise CredentialsError(
            f"Credentials for role {role_name} unavailable: {creds_res.status_code}"
        )

    try:
        creds = creds_res.json()
        credentials = Credentials(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds["Token"],
            expiration=creds.get("Expiration"),
        )
    except (ValueError, KeyError, TypeError) as e:
        raise CredentialsError(f"Malformed credentials for role {role_name}: {e}") from e

    logger.info("Fetched instance credentials", role=role_name, expiration=credentials.expiration)
    return credentials
