# protocol/host.py

import asyncio
import json

import websockets

from protocol.server import ToolServer
from utils.logger import logger


def make_handler(server: ToolServer):
    """Build a websockets connection handler that answers JSON-RPC frames."""

    async def handler(websocket, path=None):
        logger.info(f"[Host] Client connected to {server.server_info.name}")
        try:
            async for raw in websocket:
                logger.debug(f"[Host] Received raw: {raw}")

                # the dispatcher never raises; tool handlers may block, so keep them off the loop
                response = await asyncio.to_thread(server.handle_request, raw)

                resp_json = json.dumps(response)
                logger.debug(f"[Host] Sending response: {resp_json}")
                await websocket.send(resp_json)

        except websockets.exceptions.ConnectionClosedOK:
            logger.info("[Host] Client disconnected gracefully")
        except websockets.exceptions.ConnectionClosedError as e:
            logger.warning(f"[Host] Connection closed with error: {e}")

    return handler


async def run_host(server: ToolServer, host: str = "localhost", port: int = 8765):
    logger.info(f"[Host] Starting tool host {server.server_info.name} at ws://{host}:{port}")
    async with websockets.serve(make_handler(server), host, port):
        await asyncio.Future()  # run forever


def build_default_server(name: str = "agentdesk-tools", version: str = "1.0.0") -> ToolServer:
    from tools import register_default_tools

    server = ToolServer(name, version)
    register_default_tools(server)
    return server


if __name__ == "__main__":
    asyncio.run(run_host(build_default_server()))
