"""
Concurrent attack script to stress the stock cache.

Restocks a single product, then launches hundreds of simultaneous retrieve
requests against it and checks that the cache never sells more units than
it holds.
"""

import asyncio
import time

import aiohttp


# Configuration
CONCURRENT_USERS = 500
INITIAL_STOCK = 50
RETRIEVE_AMOUNT = 1
PRODUCT_ID = 9001
BASE_URL = "http://localhost:8000"


async def get_stock(session: aiohttp.ClientSession) -> int:
    async with session.get(f"{BASE_URL}/stock/{PRODUCT_ID}") as resp:
        return int(await resp.json())


async def make_retrieve(session: aiohttp.ClientSession) -> int:
    """Attempts a single retrieve and returns the HTTP status code."""
    payload = {"productId": PRODUCT_ID, "amount": RETRIEVE_AMOUNT}
    try:
        async with session.post(f"{BASE_URL}/stock/retrieve", json=payload) as response:
            return response.status
    except aiohttp.ClientError:
        return 500


async def run_attack() -> tuple[int, int, int, float]:
    """
    Launches concurrent retrieve requests against one product.

    Returns:
        tuple: (successful, rejected, final_stock, duration_seconds)
    """
    async with aiohttp.ClientSession() as session:
        # Bring the product to exactly INITIAL_STOCK units
        current = await get_stock(session)
        await session.post(
            f"{BASE_URL}/stock/restock",
            json={"productId": PRODUCT_ID, "amount": INITIAL_STOCK - current},
        )

        start_time = time.perf_counter()
        tasks = [make_retrieve(session) for _ in range(CONCURRENT_USERS)]
        results = await asyncio.gather(*tasks)
        duration = time.perf_counter() - start_time

        final_stock = await get_stock(session)
        return results.count(200), results.count(400), final_stock, duration


def print_report(successful: int, rejected: int, final_stock: int, duration: float) -> None:
    """Prints a short summary of the run."""
    expected_sales = INITIAL_STOCK // RETRIEVE_AMOUNT
    consistent = (
        successful == expected_sales
        and final_stock == INITIAL_STOCK - successful * RETRIEVE_AMOUNT
        and final_stock >= 0
    )
    status = "OK" if consistent else "OVERSELLING"

    print(f"""
Stock cache concurrency report
  Scenario.............: {CONCURRENT_USERS} clients, {INITIAL_STOCK} units of product {PRODUCT_ID}
  Successful retrieves.: {successful}
  Rejected retrieves...: {rejected}
  Final stock..........: {final_stock}
  Time.................: {duration:.3f}s
  Status...............: {status}
""")


async def main():
    print(f"\nTarget: {BASE_URL}")
    print(f"Concurrent clients: {CONCURRENT_USERS}, initial stock: {INITIAL_STOCK}\n")
    successful, rejected, final_stock, duration = await run_attack()
    print_report(successful, rejected, final_stock, duration)


if __name__ == "__main__":
    asyncio.run(main())
