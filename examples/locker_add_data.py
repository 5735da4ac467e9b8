"""Card locker ``/data/add`` load test, run from Python instead of the CLI.

Posts a pre-encrypted JWE envelope at a constant arrival rate and checks
for a 200 response. The same run from the command line:

    loadpace run examples/profiles/constant_request_rate.json \\
        --url http://locker_server:8080/data/add --body examples/jwe_envelope.json

Pass ``--plain`` to send an unencrypted card with a fresh number per
iteration instead.
"""

from __future__ import annotations

import json
import sys
import uuid
from pathlib import Path
from typing import Any

from loadpace import (
    ArrivalRate,
    ArrivalRateSpec,
    HttpPostRunner,
    IterationContext,
    run_load_test,
)

URL = "http://locker_server:8080/data/add"
ENVELOPE = Path(__file__).with_name("jwe_envelope.json")


def plain_card(context: IterationContext) -> dict[str, Any]:
    """Build an unencrypted store-card request with a unique card number."""
    return {
        "merchant_id": "m1100",
        "merchant_customer_id": "c11",
        "card": {
            "card_number": str(uuid.uuid4()),
            "name_on_card": "Max Payne",
        },
    }


def main() -> int:
    payload = plain_card if "--plain" in sys.argv else json.loads(ENVELOPE.read_text())
    profile = ArrivalRate(
        ArrivalRateSpec(
            rate=100_000,
            time_unit=1.0,
            duration=300.0,
            pre_allocated=3,
            max_workers=5,
        )
    )
    summary = run_load_test(profile, HttpPostRunner(URL, payload))
    print(json.dumps(summary.to_dict(), indent=2))
    return 1 if summary.error_rate > 0 else 0


if __name__ == "__main__":
    sys.exit(main())
