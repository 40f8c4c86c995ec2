import json
import os
import unittest
from decimal import Decimal
from unittest.mock import patch

import requests

from rifazo.config import Settings
from rifazo.verification import HttpReceiptVerifier


class DummyResponse:
    def __init__(self, json_data=None, content: bytes = b"", error=None):
        self._json = json_data
        if json_data is not None and not content:
            content = json.dumps(json_data).encode()
        self.content = content
        self._error = error

    def json(self):
        return self._json

    def raise_for_status(self):
        if self._error is not None:
            raise self._error


class DummySession:
    def __init__(self, response: DummyResponse):
        self.response = response
        self.calls = []

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "json": json,
                "timeout": timeout,
            }
        )
        return self.response


def _verify(verifier):
    return verifier.verify(
        receipt_ref="receipts/abc.jpg",
        expected_amount=Decimal("15.00"),
        payer_name="Alice Rivera",
        draw_name="Motorbike",
    )


class TestHttpReceiptVerifier(unittest.TestCase):
    @patch("rifazo.verification.load_dotenv")
    def test_requires_url(self, mock_load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                HttpReceiptVerifier()

    @patch("rifazo.verification.load_dotenv")
    def test_reads_url_and_token_from_env(self, mock_load_dotenv):
        env = {
            "RIFAZO_VERIFIER_URL": "https://verify.example.com/",
            "RIFAZO_VERIFIER_TOKEN": "secret",
        }
        with patch.dict(os.environ, env, clear=True):
            verifier = HttpReceiptVerifier(session=DummySession(DummyResponse({})))
        self.assertEqual(verifier.base_url, "https://verify.example.com")
        self.assertEqual(verifier.headers["Authorization"], "Bearer secret")

    def test_posts_receipt_and_parses_verdict(self):
        session = DummySession(
            DummyResponse({"isConfirmed": True, "confirmationDetails": "Amount matches"})
        )
        verifier = HttpReceiptVerifier(
            base_url="https://verify.example.com", timeout=5, session=session
        )

        verdict = _verify(verifier)

        self.assertTrue(verdict.is_confirmed)
        self.assertEqual(verdict.details, "Amount matches")
        call = session.calls[0]
        self.assertEqual(call["method"], "POST")
        self.assertEqual(call["url"], "https://verify.example.com/verify-receipt")
        self.assertEqual(call["timeout"], 5)
        self.assertEqual(
            call["json"],
            {
                "receiptRef": "receipts/abc.jpg",
                "expectedAmount": "15.00",
                "payerName": "Alice Rivera",
                "raffleName": "Motorbike",
            },
        )

    @patch("rifazo.verification.load_dotenv")
    def test_from_settings(self, mock_load_dotenv):
        settings = Settings(
            verifier_url="https://verify.example.com/",
            verifier_token="from-settings",
            verifier_timeout=7,
        )
        session = DummySession(DummyResponse({"isConfirmed": False}))

        with patch.dict(os.environ, {"RIFAZO_VERIFIER_TOKEN": "from-env"}, clear=True):
            verifier = HttpReceiptVerifier.from_settings(settings, session=session)
        verdict = _verify(verifier)

        self.assertFalse(verdict.is_confirmed)
        self.assertEqual(verifier.base_url, "https://verify.example.com")
        call = session.calls[0]
        self.assertEqual(call["timeout"], 7)
        self.assertEqual(call["headers"]["Authorization"], "Bearer from-settings")

    def test_http_error_is_reported(self):
        session = DummySession(
            DummyResponse({}, error=requests.HTTPError("503 Service Unavailable"))
        )
        verifier = HttpReceiptVerifier(base_url="https://verify.example.com", session=session)

        with self.assertRaises(RuntimeError) as ctx:
            _verify(verifier)
        self.assertIn("503", str(ctx.exception))

    def test_unexpected_body_is_rejected(self):
        session = DummySession(DummyResponse({"status": "ok"}))
        verifier = HttpReceiptVerifier(base_url="https://verify.example.com", session=session)

        with self.assertRaises(RuntimeError):
            _verify(verifier)


if __name__ == "__main__":
    unittest.main()
