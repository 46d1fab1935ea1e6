"""Telnet Session Module.

This module provides an asyncio-based, line-oriented session for talking to
legacy devices and text services over TCP, optionally through a SOCKS4 proxy.

Example usage:
    ```python
    import asyncio
    from telnet_agent.clients.telnet import CallbackListener, TelnetSession

    async def main():
        session = TelnetSession("device.example.com", 23, send_rate=1.0)
        session.add_listener(CallbackListener(on_message=print))
        async with session:
            await session.send("show version")
            await session.wait_closed()

    asyncio.run(main())
    ```
"""

from __future__ import annotations

from .client import TelnetSession
from .types import CallbackListener, SessionListener, SessionState

__all__ = ["CallbackListener", "SessionListener", "SessionState", "TelnetSession"]
