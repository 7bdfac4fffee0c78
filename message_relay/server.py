#!/usr/bin/env python3
"""Debug Message Relay - Server

Hosts the relay for development-time debugging:
- WebSocket at /message for app and debugger clients (see relay.py)
- POST /open-stack-frame to open a file at a line in the local editor
- POST /broadcast for host-initiated notifications to every client
- GET /status for liveness
"""

import json
import logging
import sys

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from message_relay.config import LOG_FILE, LOG_FORMAT, LOG_LEVEL, MESSAGE_PATH, RELAY_HOST, RELAY_PORT, WATCH_FOLDERS
from message_relay.editor import launch_editor
from message_relay.relay import MessageRelay, attach

logger = logging.getLogger("relay.server")


async def _read_json(request: Request) -> dict:
    raw = await request.body()
    try:
        data = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")
    return data


def create_app(watch_folders=None, message_path: str = MESSAGE_PATH) -> FastAPI:
    """Build the relay application."""
    if watch_folders is None:
        watch_folders = WATCH_FOLDERS
    app = FastAPI(title="Debug Message Relay")
    relay: MessageRelay = attach(app, message_path)
    app.state.relay = relay

    @app.post("/open-stack-frame")
    async def open_stack_frame(request: Request):
        """Open {file, lineNumber} in the configured editor."""
        frame = await _read_json(request)
        file_name = frame.get("file")
        if not isinstance(file_name, str) or not file_name:
            raise HTTPException(status_code=400, detail="Missing 'file'")
        await launch_editor(file_name, frame.get("lineNumber"), watch_folders)
        return PlainTextResponse("OK")

    @app.post("/broadcast")
    async def broadcast(request: Request):
        """Push a method call from the host to every connected client."""
        data = await _read_json(request)
        method = data.get("method")
        if not isinstance(method, str) or not method:
            raise HTTPException(status_code=400, detail="Missing 'method'")
        params = data.get("params")
        if params is not None and not isinstance(params, dict):
            raise HTTPException(status_code=400, detail="'params' must be an object")
        peers = await relay.server_broadcast(method, params)
        return JSONResponse({"ok": True, "peers": peers})

    @app.get("/status")
    async def status():
        return JSONResponse({
            "status": "running",
            "relay_active": relay.is_relay_active(),
            "connections": [c.to_dict() for _, c in relay.registry.snapshot()],
            "stats": relay.stats(),
        })

    return app


def configure_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, handlers=handlers)


def main():
    import uvicorn

    configure_logging()
    logger.info(f"Starting message relay on {RELAY_HOST}:{RELAY_PORT} (path {MESSAGE_PATH})")
    uvicorn.run(create_app(), host=RELAY_HOST, port=RELAY_PORT, log_config=None)


if __name__ == "__main__":
    main()
