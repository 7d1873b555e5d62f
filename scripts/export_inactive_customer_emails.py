#!/usr/bin/env python3
"""Export emails of inactive customers (no login, no order for N days).

Usage:
    python scripts/export_inactive_customer_emails.py --days=365
    python scripts/export_inactive_customer_emails.py --days=730 --shop=1
    python scripts/export_inactive_customer_emails.py --days=365 --out-name=my_emails.csv
    python scripts/export_inactive_customer_emails.py --days=365 --display

Environment:
    DATABASE_URL: shop database connection string
"""

import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.retention.modules.inactive_customers.commands import export_main  # noqa: E402


if __name__ == "__main__":
    sys.exit(export_main())
