"""Interactive call graph view served to the browser.

A :class:`VisualizationSession` owns one immutable call graph and the
Starlette app that renders it. The page receives the whole graph once, in the
HTML, and talks back over a WebSocket: clicking a function sends
``{"command": "openFile", "file": ..., "line": ...}`` and the session opens
that location in the editor.
"""

from __future__ import annotations

import asyncio
import html
import json
import logging
import re
import socket
import threading
import time
import webbrowser
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

from pydantic import ValidationError

from .config import TEMPLATE_DIR
from .config_manager import ServerSettings
from .editor import EditorCapability, to_editor_line
from .errors import NavigationError, SessionError
from .models import CallGraph, NavigationRequest
from .schemas import OpenFileMessage, dump_call_graph

logger = logging.getLogger(__name__)

GRAPH_TEMPLATE = TEMPLATE_DIR / "graph.html"
_PLACEHOLDER = re.compile(r"\{\{ (TITLE|LIVE|GRAPH_DATA) \}\}")


def render_graph_html(graph: CallGraph, title: str = "Go Call Graph", live: bool = True) -> str:
    """Fill the page template with the serialized graph."""
    template = GRAPH_TEMPLATE.read_text(encoding="utf-8")
    # keep "</script>" inside string values from closing the script element
    payload = dump_call_graph(graph).replace("</", "<\\/")
    values = {
        "TITLE": html.escape(title),
        "LIVE": "true" if live else "false",
        "GRAPH_DATA": payload,
    }
    # one pass, so placeholder text inside titles or node values stays literal
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)


class VisualizationSession:
    """One rendering surface bound to one call graph."""

    def __init__(
        self,
        graph: CallGraph,
        base_path: Path,
        editor: EditorCapability,
        idle_grace: float = 5.0,
        title: str = "Go Call Graph",
    ) -> None:
        self.graph = graph
        self.base_path = Path(base_path).absolute()
        self.editor = editor
        self.idle_grace = idle_grace
        self.title = title
        self._html = render_graph_html(graph, title=title)
        self._closed = False
        self._close_event: Optional[asyncio.Event] = None
        self._sockets: Set[Any] = set()
        self._idle_timer: Optional[asyncio.TimerHandle] = None
        self.app = self._create_app()

    @property
    def closed(self) -> bool:
        return self._closed

    def resolve(self, request: NavigationRequest) -> Path:
        """Resolve the request's file against the session base path."""
        path = Path(request.file).expanduser()
        if not path.is_absolute():
            path = self.base_path / path
        return path.resolve()

    async def navigate(self, request: NavigationRequest) -> Optional[Path]:
        """Open the requested location; ignored once the session is closed."""
        if self._closed:
            logger.debug("Ignoring navigation after close: %s:%d", request.file, request.line)
            return None
        try:
            path = self.resolve(request)
            line = to_editor_line(request.line, self.editor.line_base)
        except (OSError, ValueError) as exc:
            raise NavigationError(f"Cannot open {request.file!r} at line {request.line}: {exc}") from exc
        logger.info("Opening %s at line %d", path, request.line)
        await self.editor.open_file(path, line)
        return path

    async def handle_message(self, message: Any) -> Dict[str, Any]:
        """Process one inbound message and return the reply frame."""
        if self._closed:
            return {"ok": False, "error": "session closed"}
        if isinstance(message, dict) and message.get("command") == "close":
            self.close()
            return {"ok": True, "command": "close"}

        try:
            msg = OpenFileMessage.model_validate(message)
        except ValidationError as exc:
            logger.warning("Rejected message from page: %s", exc.errors()[0].get("msg"))
            return {"ok": False, "error": "invalid message"}

        try:
            path = await self.navigate(msg.to_request())
        except NavigationError as exc:
            logger.warning("Navigation failed: %s", exc.user_message())
            return {"ok": False, "error": exc.user_message()}
        if path is None:
            return {"ok": False, "error": "session closed"}
        return {"ok": True, "command": "openFile", "file": str(path), "line": msg.line}

    def close(self) -> None:
        """End the session; later messages no longer reach the editor."""
        if self._closed:
            return
        self._closed = True
        self.editor.close()
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None
        if self._close_event is not None:
            self._close_event.set()
        logger.debug("Visualization session closed")

    async def wait_closed(self) -> None:
        if self._close_event is None:
            self._close_event = asyncio.Event()
            if self._closed:
                self._close_event.set()
        await self._close_event.wait()

    def _connected(self, websocket: Any) -> None:
        self._sockets.add(websocket)
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _disconnected(self, websocket: Any) -> None:
        self._sockets.discard(websocket)
        if self._sockets or self._closed:
            return
        loop = asyncio.get_running_loop()
        self._idle_timer = loop.call_later(self.idle_grace, self._idle_timeout)

    def _idle_timeout(self) -> None:
        self._idle_timer = None
        if not self._sockets:
            logger.info("Browser page closed, ending session")
            self.close()

    def _create_app(self):
        from starlette.applications import Starlette
        from starlette.responses import HTMLResponse, JSONResponse
        from starlette.routing import Route, WebSocketRoute
        from starlette.websockets import WebSocketDisconnect, WebSocketState

        async def homepage(request):
            return HTMLResponse(self._html)

        async def api_graph(request):
            return JSONResponse(self.graph.to_dict())

        async def ws_endpoint(websocket):
            await websocket.accept()
            self._connected(websocket)
            try:
                while not self._closed:
                    text = await websocket.receive_text()
                    try:
                        message = json.loads(text)
                    except json.JSONDecodeError:
                        await websocket.send_json({"ok": False, "error": "message is not JSON"})
                        continue
                    reply = await self.handle_message(message)
                    await websocket.send_json(reply)
                # session ended; disconnect every page still attached
                for ws in list(self._sockets):
                    if ws.application_state == WebSocketState.CONNECTED:
                        await ws.close()
            except WebSocketDisconnect:
                pass
            finally:
                self._disconnected(websocket)

        return Starlette(routes=[
            Route("/", homepage),
            Route("/api/graph", api_graph),
            WebSocketRoute("/ws", ws_endpoint),
        ])


class VisualizationHost:
    """Serves sessions on a local port and waits for them to end."""

    def __init__(self, settings: ServerSettings, open_browser: Optional[bool] = None) -> None:
        self.settings = settings
        self.open_browser = settings.open_browser if open_browser is None else open_browser
        self.url = ""

    def bind_socket(self) -> socket.socket:
        """Bind the configured port, or the first free one of the next four.

        uvicorn is handed the bound socket, so it never binds the port itself.
        """
        port = self.settings.port
        for candidate in range(port, port + 5):
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((self.settings.host, candidate))
            except OSError as exc:
                sock.close()
                logger.debug("Port %d unavailable: %s", candidate, exc)
                continue
            return sock
        raise SessionError(f"Ports {port}-{port + 4} on {self.settings.host} are all in use.")

    async def serve(
        self,
        session: VisualizationSession,
        announce: Optional[Callable[[str], None]] = None,
    ) -> None:
        """Serve *session* until it closes or the server is interrupted.

        Raises:
            SessionError: no port could be bound or the server failed to start.
        """
        import uvicorn

        sock = self.bind_socket()
        port = sock.getsockname()[1]
        config = uvicorn.Config(
            session.app,
            host=self.settings.host,
            port=port,
            log_level="warning",
            lifespan="off",
        )
        server = uvicorn.Server(config)
        self.url = f"http://{self.settings.host}:{port}"

        server_task = asyncio.ensure_future(self._run_server(server, sock))
        closed_task = asyncio.ensure_future(session.wait_closed())
        if announce is not None:
            announce(self.url)
        if self.open_browser:
            self._launch_browser(self.url)

        try:
            await asyncio.wait({server_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            session.close()
            server.should_exit = True
            closed_task.cancel()
            try:
                await server_task
            finally:
                sock.close()

    async def _run_server(self, server: Any, sock: socket.socket) -> None:
        try:
            await server.serve(sockets=[sock])
        except SystemExit as exc:
            # uvicorn calls sys.exit when startup fails
            raise SessionError(f"Could not start visualization server at {self.url}") from exc

    @staticmethod
    def _launch_browser(url: str) -> None:
        def _open_browser():
            time.sleep(1.0)
            webbrowser.open(url)

        threading.Thread(target=_open_browser, daemon=True).start()
