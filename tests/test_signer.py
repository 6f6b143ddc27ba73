import unittest

from sagemaker_loadtest.credentials import Credentials
from sagemaker_loadtest.signer import (
    CUSTOM_ATTRIBUTES_HEADER,
    RequestSigner,
    build_headers,
    endpoint_url,
    invocation_path,
)


class TestInvocationTarget(unittest.TestCase):

    def test_endpoint_url(self):
        self.assertEqual(endpoint_url("us-east-1"), "https://runtime.sagemaker.us-east-1.amazonaws.com")

    def test_invocation_path(self):
        self.assertEqual(invocation_path("whisper-endpoint"), "/endpoints/whisper-endpoint/invocations")


class TestBuildHeaders(unittest.TestCase):

    def test_without_sensitivity(self):
        self.assertEqual(build_headers("audio/mp3"), {
            "Content-Type": "audio/mp3",
            "Accept": "application/json",
        })

    def test_with_sensitivity(self):
        headers = build_headers("audio/mp3", "-1")
        self.assertEqual(headers[CUSTOM_ATTRIBUTES_HEADER], 'Sensitivity={"default_sensitivity": -1}')

    def test_zero_sensitivity_is_sent(self):
        headers = build_headers("audio/mp3", "0")
        self.assertEqual(headers["X-Amzn-SageMaker-Custom-Attributes"], 'Sensitivity={"default_sensitivity": 0}')


class TestRequestSigner(unittest.TestCase):

    def setUp(self):
        self.url = endpoint_url("us-west-2") + invocation_path("whisper-endpoint")
        self.credentials = Credentials("ASIAEXAMPLE", "secret", "session-token")

    def test_sign_adds_sigv4_headers(self):
        signer = RequestSigner(self.credentials, "us-west-2")
        signed = signer.sign("POST", self.url, build_headers("audio/mp3"), b"ID3audio")

        self.assertEqual(signed.url, self.url)
        self.assertEqual(signed.headers["Content-Type"], "audio/mp3")
        self.assertEqual(signed.headers["Accept"], "application/json")
        self.assertEqual(signed.headers["X-Amz-Security-Token"], "session-token")
        self.assertIn("X-Amz-Date", signed.headers)

        authorization = signed.headers["Authorization"]
        self.assertTrue(authorization.startswith("AWS4-HMAC-SHA256 Credential=ASIAEXAMPLE/"))
        self.assertIn("/us-west-2/sagemaker/aws4_request", authorization)
        self.assertIn("content-type", authorization)
        self.assertIn("Signature=", authorization)

    def test_no_session_token(self):
        signer = RequestSigner(Credentials("AKIAEXAMPLE", "secret"), "us-west-2")
        signed = signer.sign("POST", self.url, build_headers("audio/mp3"), b"ID3audio")
        self.assertNotIn("X-Amz-Security-Token", signed.headers)

    def test_signature_depends_on_body(self):
        signer = RequestSigner(self.credentials, "us-west-2")
        headers = build_headers("audio/mp3")
        first = signer.sign("POST", self.url, headers, b"one")
        second = signer.sign("POST", self.url, headers, b"two")
        self.assertNotEqual(first.headers["Authorization"], second.headers["Authorization"])

    def test_caller_headers_untouched(self):
        headers = build_headers("audio/mp3")
        RequestSigner(self.credentials, "us-west-2").sign("POST", self.url, headers, b"x")
        self.assertNotIn("Authorization", headers)


if __name__ == '__main__':
    unittest.main()
