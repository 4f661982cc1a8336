#!/usr/bin/env python3
"""Run every service on its configured port."""
import asyncio

import uvicorn

from hotelops.config import get_settings

SERVICES = ("users", "rooms", "bookings", "restaurant", "reports", "integrations")


async def start_servers(reload: bool = False) -> None:
    settings = get_settings()
    servers = []
    for name in SERVICES:
        config = uvicorn.Config(
            f"services.{name}.app:app",
            host="0.0.0.0",
            port=getattr(settings, f"{name}_service_port"),
            reload=reload,
        )
        servers.append(uvicorn.Server(config))
    await asyncio.gather(*(server.serve() for server in servers))


if __name__ == "__main__":
    try:
        asyncio.run(start_servers())
    except KeyboardInterrupt:
        print("\nShutting down servers...")
