#!/usr/bin/env python3
"""
Example of cascade funding every saved account from one source account.
"""
import os
import sys

from chainpilot import CascadeFundingRequest, Engine
from chainpilot.funding import format_cascade_results


def main():
    SOURCE = os.environ.get("SOURCE_ADDRESS")
    NETWORK = os.environ.get("NETWORK", "sepolia")
    OWNER = os.environ.get("CHAINPILOT_OWNER", "local")

    if not SOURCE:
        print("ERROR: SOURCE_ADDRESS environment variable is required")
        return 1

    engine = Engine()
    network = engine.resolve_network(OWNER, NETWORK)

    # Top every other account up with enough for a few transactions
    request = CascadeFundingRequest(
        owner=OWNER,
        source_account_address=SOURCE,
        mode="gas_only",
        network_id=network.network_id,
    )
    results = engine.funder.cascade_fund(request)
    print(format_cascade_results(results, network))
    return 0 if all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
