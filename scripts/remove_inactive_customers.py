#!/usr/bin/env python3
"""Delete inactive customers (GDPR). Customers with orders are skipped.

Usage:
    python scripts/remove_inactive_customers.py --days=365 --dry-run  # Preview only
    python scripts/remove_inactive_customers.py --days=730 --shop=1 --force
    python scripts/remove_inactive_customers.py --days=1095           # Interactive mode

Live runs refuse anything under MIN_REMOVAL_DAYS (default 180).

Environment:
    DATABASE_URL: shop database connection string
    DATABASE_REPLICA_URL / USE_READ_REPLICA: optional read replica for dry runs
"""

import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.retention.modules.inactive_customers.commands import remove_main  # noqa: E402


if __name__ == "__main__":
    sys.exit(remove_main())
