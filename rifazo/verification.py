"""Adapter to the external payment-receipt verification service.

Verdicts are advisory: they are stored next to the participation and never
change its payment status.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional, Protocol

import requests
from dotenv import load_dotenv

from .config import DEFAULT_VERIFIER_TIMEOUT, Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiptVerification:
    is_confirmed: bool
    details: str


class ReceiptVerifier(Protocol):
    def verify(
        self,
        *,
        receipt_ref: str,
        expected_amount: Decimal,
        payer_name: str,
        draw_name: str,
    ) -> ReceiptVerification: ...


class HttpReceiptVerifier:
    """Posts receipt checks to ``RIFAZO_VERIFIER_URL`` and parses the verdict.

    The service answers ``{"isConfirmed": bool, "confirmationDetails": str}``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = DEFAULT_VERIFIER_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        url = base_url or os.getenv("RIFAZO_VERIFIER_URL")
        if not url:
            raise ValueError("Environment variable 'RIFAZO_VERIFIER_URL' is not set")
        self.base_url = url.rstrip("/")
        self.token = token or os.getenv("RIFAZO_VERIFIER_TOKEN")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(
        cls, settings: Settings, session: Optional[requests.Session] = None
    ) -> "HttpReceiptVerifier":
        """Build a verifier from the ``RIFAZO_VERIFIER_*`` values held by ``settings``."""
        return cls(
            base_url=settings.verifier_url,
            token=settings.verifier_token,
            timeout=settings.verifier_timeout,
            session=session,
        )

    @property
    def headers(self) -> Mapping[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def verify(
        self,
        *,
        receipt_ref: str,
        expected_amount: Decimal,
        payer_name: str,
        draw_name: str,
    ) -> ReceiptVerification:
        payload = {
            "receiptRef": receipt_ref,
            "expectedAmount": str(expected_amount),
            "payerName": payer_name,
            "raffleName": draw_name,
        }
        try:
            r = self.session.request(
                method="POST",
                url=f"{self.base_url}/verify-receipt",
                headers=self.headers,
                json=payload,
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            # Do not log the payload; it carries the payer's name.
            logger.critical(f"Receipt verification request failed: {e}")
            raise RuntimeError(f"Receipt verification failed: {e}") from e

        body: Any = r.json() if r.content else None
        if not isinstance(body, dict) or "isConfirmed" not in body:
            raise RuntimeError(f"Unexpected verification response: {body!r}")
        return ReceiptVerification(
            is_confirmed=bool(body["isConfirmed"]),
            details=str(body.get("confirmationDetails") or ""),
        )


__all__ = ["HttpReceiptVerifier", "ReceiptVerification", "ReceiptVerifier"]
