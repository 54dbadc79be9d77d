#!/usr/bin/env python3
"""Mark overdue bank transfer / cash on delivery payments as expired (run from cron)."""

from __future__ import annotations

import json
import sys

from paygate.application.expiry import expire_overdue
from paygate.infrastructure.db.session import init_db
from paygate.infrastructure.ledger.sql import SqlManualPaymentLedger
from paygate.shared.config import load_settings
from paygate.shared.logging import configure_logging


def main() -> int:
    settings = load_settings()
    configure_logging(settings.log_level)
    if not settings.database_url:
        print("DATABASE_URL is required", file=sys.stderr)
        return 2
    ledger = SqlManualPaymentLedger(init_db(settings))
    expired = expire_overdue(ledger)
    print(json.dumps({"expired": expired}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
