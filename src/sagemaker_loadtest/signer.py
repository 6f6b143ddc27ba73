"""SigV4 signing of SageMaker runtime invocation requests."""

from dataclasses import dataclass
from typing import Dict, Optional

from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials as BotocoreCredentials

from .credentials import Credentials

SERVICE_NAME = "sagemaker"
CUSTOM_ATTRIBUTES_HEADER = "X-Amzn-SageMaker-Custom-Attributes"


def endpoint_url(region: str) -> str:
    return f"https://runtime.sagemaker.{region}.amazonaws.com"


def invocation_path(endpoint_name: str) -> str:
    return f"/endpoints/{endpoint_name}/invocations"


def build_headers(content_type: str, sensitivity: Optional[str] = None) -> Dict[str, str]:
    """Invocation headers, with the sensitivity custom attribute when set."""
    headers = {
        "Content-Type": content_type,
        "Accept": "application/json",
    }
    if sensitivity is not None:
        headers[CUSTOM_ATTRIBUTES_HEADER] = f'Sensitivity={{"default_sensitivity": {sensitivity}}}'
    return headers


@dataclass
class SignedRequest:
    url: str
    headers: Dict[str, str]


class RequestSigner:
    """
    Signs requests with AWS Signature Version 4.

    A fresh signing date is used for every request, so one signer can be
    shared by all virtual users.
    """

    def __init__(self, credentials: Credentials, region: str, service: str = SERVICE_NAME):
        self.region = region
        self.service = service
        self._auth = SigV4Auth(
            BotocoreCredentials(
                credentials.access_key_id,
                credentials.secret_access_key,
                credentials.session_token,
            ),
            service,
            region,
        )

    def sign(self, method: str, url: str, headers: Dict[str, str], body: bytes) -> SignedRequest:
        request = AWSRequest(method=method, url=url, headers=dict(headers), data=body)
        self._auth.add_auth(request)
        return SignedRequest(url=request.url, headers=dict(request.headers.items()))
