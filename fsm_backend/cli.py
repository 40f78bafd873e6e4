#!/usr/bin/env python3
"""FSM Designer CLI - run the server, export offline, or drive a running server."""

import argparse
import json
import logging
import sys
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path

from . import config


def _json_out(data):
    print(json.dumps(data))
    sys.exit(0)


def _api_request(method, endpoint, data=None, params=None, raw_body=None):
    """Make a request to the FSM Designer backend."""
    url = f"{config.API_BASE}{endpoint}"

    if params:
        filtered = {k: v for k, v in params.items() if v is not None}
        if filtered:
            url = f"{url}?{urllib.parse.urlencode(filtered)}"

    headers = {"Content-Type": "application/json"}
    if raw_body is not None:
        body = raw_body
    else:
        body = json.dumps(data).encode() if data else None

    req = urllib.request.Request(url, data=body, headers=headers, method=method)

    try:
        with urllib.request.urlopen(req, timeout=30) as response:
            return json.loads(response.read().decode())
    except urllib.error.HTTPError as e:
        error_body = e.read().decode()
        try:
            error_data = json.loads(error_body)
            _json_out({"status": "error", "error": f"API error: {error_data.get('detail', 'Unknown error')}"})
        except json.JSONDecodeError:
            _json_out({"status": "error", "error": f"API error ({e.code}): {error_body}"})
    except urllib.error.URLError as e:
        _json_out({"status": "error", "error": f"Connection failed: {e.reason}. Is the FSM Designer server running?"})


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    import uvicorn

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("fsm_backend.main:app", host=args.host, port=args.port)


# ── Offline ──────────────────────────────────────────────────────────────────

def cmd_export(args):
    from .diagram_manager import DiagramManager

    source = Path(args.input)
    if not source.exists():
        _json_out({"status": "error", "error": f"Diagram file not found: {source}"})

    manager = DiagramManager(canvas_width=args.width, canvas_height=args.height)
    graph = manager.load_from_document(source.read_bytes())

    output = Path(args.output)
    fmt = args.format or output.suffix.lstrip(".").lower() or "svg"
    if fmt == "svg":
        output.write_text(manager.export_document(), encoding="utf-8")
    elif fmt == "png":
        output.write_bytes(manager.export_raster_image())
    else:
        _json_out({"status": "error", "error": f"Unknown export format: {fmt}"})

    _json_out({
        "status": "exported",
        "file_path": str(output),
        "format": fmt,
        "nodes": len(graph.nodes),
        "links": len(graph.links),
    })


# ── Server ───────────────────────────────────────────────────────────────────

def cmd_get(args):
    _json_out(_api_request("GET", "/diagram"))


def cmd_load(args):
    source = Path(args.file_path)
    if not source.exists():
        _json_out({"status": "error", "error": f"Diagram file not found: {source}"})
    _json_out(_api_request("PUT", "/diagram", raw_body=source.read_bytes()))


def cmd_add_node(args):
    _json_out(_api_request("POST", "/nodes", data={"x": args.x, "y": args.y, "text": args.text}))


def cmd_label(args):
    _json_out(_api_request("PATCH", f"/entities/{args.entity_id}", data={"text": args.text}))


def cmd_delete(args):
    _json_out(_api_request("DELETE", f"/entities/{args.entity_id}"))


def main(argv=None):
    parser = argparse.ArgumentParser(prog="fsm-designer", description="Finite state machine diagram editor")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve")
    p.add_argument("--host", default=config.HOST)
    p.add_argument("--port", type=int, default=config.PORT)

    p = sub.add_parser("export")
    p.add_argument("input")
    p.add_argument("-o", "--output", required=True)
    p.add_argument("--format", choices=["svg", "png"], default=None)
    p.add_argument("--width", type=int, default=config.CANVAS_WIDTH)
    p.add_argument("--height", type=int, default=config.CANVAS_HEIGHT)

    sub.add_parser("get")

    p = sub.add_parser("load")
    p.add_argument("--file-path", required=True)

    p = sub.add_parser("add-node")
    p.add_argument("--x", type=float, default=100)
    p.add_argument("--y", type=float, default=100)
    p.add_argument("--text", default="")

    p = sub.add_parser("label")
    p.add_argument("--entity-id", required=True)
    p.add_argument("--text", required=True)

    p = sub.add_parser("delete")
    p.add_argument("--entity-id", required=True)

    args = parser.parse_args(argv)

    cmd_map = {
        "serve": cmd_serve,
        "export": cmd_export,
        "get": cmd_get,
        "load": cmd_load,
        "add-node": cmd_add_node,
        "label": cmd_label,
        "delete": cmd_delete,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
