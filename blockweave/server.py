# blockweave/server.py
"""
HTTP server for a deployed registry.

Exposes the registry operations over JSON. Mutations arrive as signed
calls; the caller is the address recovered from the signature.

Endpoints:
    POST /transactions               - Signed call to a mutating operation
    GET  /nodes/:id                  - Node record
    GET  /nodes/:id/children         - Child ids (fractal registry)
    GET  /creators/:address/nodes    - Ids created by an identity (fractal registry)
    GET  /stats                      - Total node count
    GET  /owner                      - Registry owner
    GET  /registry                   - Kind, address, owner, total nodes
    GET  /events?name=&since=        - Event log
    GET  /health                     - Liveness
"""

import inspect
import json
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from .errors import RegistryError
from .identity import ReplayGuard, verify_call
from .registry import BaseRegistry

logger = logging.getLogger(__name__)


class RegistryServer:
    """
    HTTP server hosting one registry.

    Usage:
        server = RegistryServer(registry, port=8545)
        server.start()  # Blocking

    Every registry operation runs under the registry's own lock, so
    requests handled on concurrent threads stay serialized.
    """

    def __init__(self, registry: BaseRegistry, host: str = "127.0.0.1", port: int = 8545,
                 signature_max_age: Optional[float] = 300.0):
        self.registry = registry
        self.host = host
        self.port = port
        self.signature_max_age = signature_max_age
        self.replay_guard = ReplayGuard(signature_max_age)
        self._httpd: Optional[ThreadingHTTPServer] = None

    def execute(self, call: Dict[str, Any]) -> Any:
        """
        Authenticate a signed call and apply it to the registry.

        Raises:
            InvalidSignature: call is unsigned, stale, forged or already submitted
            ValueError: unknown method or bad params
            RegistryError: the registry rejected the operation
        """
        caller = verify_call(call, max_age=self.signature_max_age)
        self.replay_guard.check(call)
        method = call.get("method")
        if method not in self.registry.MUTATORS:
            raise ValueError(f"Unknown method for {self.registry.kind} registry: {method}")

        params = call.get("params") or {}
        if not isinstance(params, dict):
            raise ValueError("params must be an object")
        operation = getattr(self.registry, method)
        try:
            inspect.signature(operation).bind(caller, **params)
        except TypeError as e:
            raise ValueError(f"Invalid params for {method}: {e}")

        logger.debug(f"{caller} -> {method}({params})")
        return operation(caller, **params)

    def _create_handler(server_instance):
        """Create request handler with access to server instance."""

        class RequestHandler(BaseHTTPRequestHandler):
            server_ref = server_instance

            def log_message(self, format, *args):
                logger.debug(format % args)

            def _send_json(self, data: Any, status: int = 200):
                body = json.dumps(data).encode()
                self.send_response(status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def _send_error(self, message: str, status: int = 400, code: str = None):
                data = {"error": message}
                if code:
                    data["code"] = code
                self._send_json(data, status)

            def _route(self) -> Tuple[list, Dict[str, list]]:
                parsed = urlparse(self.path)
                parts = [p for p in parsed.path.split("/") if p]
                return parts, parse_qs(parsed.query)

            def do_GET(self):
                parts, query = self._route()
                registry = self.server_ref.registry
                try:
                    if parts == ["health"]:
                        self._send_json({"status": "ok"})

                    elif parts == ["registry"]:
                        self._send_json({
                            "kind": registry.kind,
                            "address": registry.address,
                            "owner": registry.owner,
                            "total_nodes": registry.get_stats(),
                        })

                    elif parts == ["owner"]:
                        self._send_json({"owner": registry.owner})

                    elif parts == ["stats"]:
                        self._send_json({"total_nodes": registry.get_stats()})

                    elif parts == ["events"]:
                        name = query.get("name", [None])[0]
                        since = int(query.get("since", ["0"])[0])
                        events = registry.events.list(name=name, since=since)
                        self._send_json({"events": [e.to_dict() for e in events]})

                    elif len(parts) == 2 and parts[0] == "nodes":
                        node = registry.get_node(_parse_id(parts[1]))
                        self._send_json(node.to_dict())

                    elif (len(parts) == 3 and parts[0] == "nodes" and parts[2] == "children"
                          and hasattr(registry, "get_children")):
                        node_id = _parse_id(parts[1])
                        self._send_json({
                            "node_id": node_id,
                            "children": registry.get_children(node_id),
                        })

                    elif (len(parts) == 3 and parts[0] == "creators" and parts[2] == "nodes"
                          and hasattr(registry, "get_created_by")):
                        self._send_json({
                            "creator": parts[1],
                            "nodes": registry.get_created_by(parts[1]),
                        })

                    else:
                        self._send_error("Not found", 404)

                except RegistryError as e:
                    self._send_error(str(e), e.status, e.code)
                except ValueError as e:
                    self._send_error(str(e))
                except Exception as e:
                    logger.exception("Request failed")
                    self._send_error(str(e), 500)

            def do_POST(self):
                parts, _ = self._route()
                if parts != ["transactions"]:
                    self._send_error("Not found", 404)
                    return

                try:
                    content_length = int(self.headers.get("Content-Length", 0))
                    body = self.rfile.read(content_length).decode()
                    call = json.loads(body)
                    if not isinstance(call, dict):
                        raise ValueError("Call must be a JSON object")
                    result = self.server_ref.execute(call)
                    self._send_json({"result": result})
                except json.JSONDecodeError as e:
                    self._send_error(f"Invalid JSON: {e}")
                except RegistryError as e:
                    self._send_error(str(e), e.status, e.code)
                except ValueError as e:
                    self._send_error(str(e))
                except Exception as e:
                    logger.exception("Transaction failed")
                    self._send_error(str(e), 500)

        return RequestHandler

    def bind(self) -> ThreadingHTTPServer:
        """Bind the listening socket (port 0 picks a free port)."""
        if self._httpd is None:
            handler = self._create_handler()
            self._httpd = ThreadingHTTPServer((self.host, self.port), handler)
            self.port = self._httpd.server_address[1]
        return self._httpd

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self):
        """Start the HTTP server (blocking)."""
        httpd = self.bind()
        logger.info(f"Registry {self.registry.address} serving on {self.host}:{self.port}")
        print(f"BlockWeave {self.registry.kind} registry running on {self.url}")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("\nShutting down...")
        finally:
            httpd.server_close()

    def start_background(self) -> threading.Thread:
        """Start the server in a background thread."""
        self.bind()
        thread = threading.Thread(target=self._httpd.serve_forever)
        thread.daemon = True
        thread.start()
        return thread

    def shutdown(self):
        """Stop a server started with start_background()."""
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None


def _parse_id(text: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"Invalid node id: {text}")


def main():
    """CLI entry point."""
    import argparse

    from .config import load_settings
    from .deploy import open_registry

    parser = argparse.ArgumentParser(description="BlockWeave registry server")
    parser.add_argument("--config", help="Settings YAML file")
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to bind to")
    parser.add_argument("--store-dir", help="Directory of the deployed registry")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    settings = load_settings(args.config)
    registry = open_registry(Path(args.store_dir) if args.store_dir else settings.store_dir)
    server = RegistryServer(
        registry,
        host=args.host or settings.host,
        port=args.port or settings.port,
        signature_max_age=settings.signature_max_age,
    )
    server.start()


if __name__ == "__main__":
    main()
