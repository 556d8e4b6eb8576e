"""
Briq Trust Ledger — Agreement reconciliation

Finishes rental agreements left PENDING by a failed tenant-side write.

Run manually:
    python -m trustledger.rental.reconcile              # every pending agreement
    python -m trustledger.rental.reconcile 0xabc...     # one agreement hash
"""
import sys

import structlog

from trustledger.config import get_settings
from trustledger.ledger import build_ledger
from trustledger.log import configure_logging

logger = structlog.get_logger()


def run(agreement_hash=None) -> int:
    """One reconciliation pass. Returns how many agreements are still pending."""
    ledger = build_ledger()
    try:
        outcomes = ledger.coordinator.reconcile(agreement_hash)
    finally:
        ledger.close()

    pending = [o for o in outcomes if o.degraded]
    for outcome in outcomes:
        status = "still pending" if outcome.degraded else outcome.state.value
        print(f"{outcome.property_id}  {outcome.agreement_hash}  {status}")
    print(f"Reconciled {len(outcomes) - len(pending)}/{len(outcomes)} agreements")
    return len(pending)


# ── CLI Entry Point ───────────────────────────────

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) > 1:
        print("Usage: python -m trustledger.rental.reconcile [agreement_hash]")
        sys.exit(1)

    configure_logging(json_logs=get_settings().LOG_JSON)
    remaining = run(argv[0] if argv else None)
    sys.exit(1 if remaining else 0)


if __name__ == "__main__":
    main()
