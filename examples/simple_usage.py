#!/usr/bin/env python3
"""
Simple example of using the Counter SDK.
"""
import asyncio
import os

from counter_sdk import ClientConfig, CounterClient, TransactionStatus


async def main():
    """
    Demonstrate basic usage of the CounterClient.

    This example shows how to:
    1. Initialize the client
    2. Connect a wallet
    3. Submit counter operations and inspect the transaction history

    It runs against the simulated wallet unless COUNTER_WALLET_BACKEND says
    otherwise.
    """
    config = ClientConfig.from_env(
        wallet_backend=os.environ.get("COUNTER_WALLET_BACKEND", "mock"),
        contract_address=os.environ.get("COUNTER_CONTRACT_ADDRESS"),
    )

    async with CounterClient(config) as client:
        if client.session is None:
            session = await client.connect()
            print(f"Connected as {session.account_id} on {session.network}")

        for record in (await client.increment(), await client.increment_by(5), await client.decrement()):
            if record.status == TransactionStatus.SUCCESS:
                print(f"{record.kind.value}: {client.transaction_url(record)}")
            else:
                print(f"{record.kind.value} failed: {record.error.message}")

        print(f"Count is now {await client.get_count()}")
        print(f"{len(client.transactions)} transaction(s) in history")


if __name__ == "__main__":
    asyncio.run(main())
