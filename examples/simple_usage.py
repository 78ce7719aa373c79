#!/usr/bin/env python3
"""
Simple example of using chainpilot as a library.
"""
import os

from chainpilot import ChainPilotError, Engine


def main():
    """
    Demonstrate basic usage of the Engine.

    This example shows how to:
    1. Create an engine from CHAINPILOT_* environment variables
    2. Import an EVM account and save a task set on Sepolia
    3. Run the task set and print each result
    """
    # Read configuration from environment
    PRIVATE_KEY = os.environ.get("PRIVATE_KEY")
    OWNER = os.environ.get("CHAINPILOT_OWNER", "local")

    if not os.environ.get("CHAINPILOT_MASTER_KEY"):
        print("ERROR: CHAINPILOT_MASTER_KEY environment variable is required")
        return

    engine = Engine()

    if PRIVATE_KEY and not engine.accounts.list_accounts(OWNER, "evm"):
        account = engine.accounts.import_secret(OWNER, "evm", PRIVATE_KEY, label="Example")
        print(f"Imported {account.address}")

    task_set = engine.create_task_set(
        OWNER,
        "Sepolia example",
        ["Check balance", "Claim testnet faucet"],
        "sepolia",
    )
    print(f"Saved task set {task_set.id}")

    try:
        for result in engine.run_task_set(OWNER, task_set.id):
            status = "OK" if result.success else "FAILED"
            print(f"[{status}] {result.account_address}: {result.task_text} -> {result.message}")
    except ChainPilotError as e:
        print(f"Error running task set: {e}")


if __name__ == "__main__":
    main()
