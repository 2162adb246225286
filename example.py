"""
Example of using httpfuture against httpbin.

Every verb returns a request that can be awaited or aborted. Non-2xx
responses raise RequestRejected, which still carries status and body.
"""

import asyncio

from httpfuture import RequestRejected, http


async def main() -> None:
    resp = await http("https://httpbin.org/get").get(headers={"Accept": "application/json"})
    print(f"Status: {resp.status}")
    print(f"Response: {resp.json()}")

    # POST request with a JSON body
    resp2 = await http("https://httpbin.org/post").post({"test": "data"})
    print(f"POST Status: {resp2.status}")

    # Non-2xx statuses reject with the normal response shape
    try:
        await http("https://httpbin.org/status/418").get()
    except RequestRejected as exc:
        print(f"Rejected: {exc.status} {exc.data!r}")

    # Abort a slow request
    req = http("https://httpbin.org/delay/5").get()
    req.abort()
    outcome = await req.outcome()
    print(f"Aborted with status {outcome.response.status}")

    # Compose a deadline from outside; timing out aborts the request
    try:
        await asyncio.wait_for(http("https://httpbin.org/delay/5").get(), timeout=1)
    except asyncio.TimeoutError:
        print("Timed out")


if __name__ == "__main__":
    asyncio.run(main())
