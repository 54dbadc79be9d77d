#!/usr/bin/env python3
"""Post a signed Coinbase-style webhook to a running instance (smoke test)."""

from __future__ import annotations

import json
import os
import sys
import uuid
from datetime import datetime, timezone

import requests

from paygate.infrastructure.gateway.crypto_gateway import sign_payload

URL = os.getenv("PAYGATE_URL", "http://localhost:8000")
SECRET = os.getenv("CRYPTO_WEBHOOK_SECRET", "whsec_local")


def main() -> int:
    charge_id = sys.argv[1] if len(sys.argv) > 1 else str(uuid.uuid4())
    event_type = sys.argv[2] if len(sys.argv) > 2 else "charge:confirmed"

    event = {
        "id": str(uuid.uuid4()),
        "event": {
            "id": str(uuid.uuid4()),
            "type": event_type,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "data": {"id": charge_id, "code": charge_id[:8].upper()},
        },
    }
    body = json.dumps(event).encode("utf-8")
    resp = requests.post(
        f"{URL}/webhooks/payment/crypto",
        data=body,
        headers={
            "Content-Type": "application/json",
            "X-CC-Webhook-Signature": sign_payload(body, SECRET),
            "X-Correlation-Id": uuid.uuid4().hex,
        },
        timeout=10,
    )
    print(json.dumps({"status": resp.status_code, "body": resp.json()}))
    return 0 if resp.ok else 1


if __name__ == "__main__":
    sys.exit(main())
