"""
Focusly — Paystack payment webhook.

POST /paystack/webhook

The raw body must be signed with HMAC-SHA512 under the Paystack secret key
and the hex digest sent in `x-paystack-signature`. A bad signature is
rejected with 400 before anything is parsed.

`charge.success` events with `data.status == "success"` and
`data.metadata = {userId, plan}` activate the plan. Other events are
acknowledged with 200 and ignored.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from fastapi import FastAPI, HTTPException, Request

from focusly.core.clock import now_local
from focusly.core.errors import InvalidWebhookSignature, UserNotFound
from focusly.core.subscriptions import activate_subscription, parse_plan

if TYPE_CHECKING:
    from focusly.data.db import PaymentDB
    from focusly.ports.notification_port import NotificationPort
    from focusly.ports.store_port import UserStore

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


def sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str) -> None:
    """Raise InvalidWebhookSignature unless `signature` matches the body."""
    if not secret or not signature:
        raise InvalidWebhookSignature("missing secret or signature")
    if not hmac.compare_digest(sign(body, secret), signature):
        raise InvalidWebhookSignature("signature mismatch")


def _metadata(data: dict[str, Any]) -> dict[str, Any]:
    # Payment pages may deliver metadata as a JSON string
    metadata = data.get("metadata")
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            return {}
    return metadata if isinstance(metadata, dict) else {}


def create_app(
    users: UserStore,
    notifier: NotificationPort,
    secret: str,
    payments: PaymentDB | None = None,
    clock: Callable[[], datetime] = now_local,
) -> FastAPI:
    """Build the webhook app around the given stores and messaging port."""
    app = FastAPI(title="Focusly payments")

    @app.post("/paystack/webhook")
    async def paystack_webhook(request: Request) -> dict[str, str]:
        body = await request.body()
        try:
            verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret)
        except InvalidWebhookSignature as exc:
            logger.warning("Rejected Paystack webhook: %s", exc.detail)
            raise HTTPException(status_code=400, detail="Invalid signature") from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Malformed body") from exc
        if not isinstance(event, dict):
            raise HTTPException(status_code=400, detail="Malformed body")

        data = event.get("data") or {}
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="Malformed data")
        if event.get("event") != "charge.success" or data.get("status") != "success":
            logger.info("Ignoring Paystack event %r", event.get("event"))
            return {"status": "ignored"}

        metadata = _metadata(data)
        user_id = metadata.get("userId")
        plan = parse_plan(metadata.get("plan"))
        if not user_id or plan is None:
            logger.warning("Paystack charge without usable metadata: %r", metadata)
            raise HTTPException(status_code=400, detail="Missing or invalid metadata")

        reference = str(data.get("reference") or "")
        if payments is not None and payments.has_reference(reference):
            logger.info("Duplicate Paystack charge %s ignored", reference)
            return {"status": "duplicate"}

        amount = data.get("amount")
        try:
            await activate_subscription(
                users,
                notifier,
                str(user_id),
                plan,
                clock(),
                payments=payments,
                reference=reference,
                amount=amount if isinstance(amount, int) else None,
            )
        except UserNotFound as exc:
            logger.warning("Paystack charge for unknown user %s", user_id)
            raise HTTPException(status_code=404, detail="User not found") from exc

        return {"status": "ok"}

    return app
