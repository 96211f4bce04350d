"""
HTTP request node handler.
"""

from typing import Any, Dict

from ..exceptions import NodeExecutionError
from .base import NodeHandler, NodeRun

BODYLESS_METHODS = ("GET", "HEAD", "OPTIONS")


class HTTPNodeHandler(NodeHandler):
    """Generic HTTP call; a JSON object response becomes the node output."""

    node_types = ("http", "httpRequest")

    async def execute(self, config: Dict[str, Any], run: NodeRun) -> Any:
        url = self.require(config, "url", run, "Request URL is required")
        method = str(config.get("method") or "GET").upper()
        headers = config.get("headers") or {}
        if not isinstance(headers, dict):
            raise NodeExecutionError("Headers must be an object", node_id=run.node.id, node_type=run.node.type)

        json_data = None
        if method not in BODYLESS_METHODS:
            json_data = config["body"] if config.get("body") is not None else run.input.get("previous", {})

        self.logger.info(f"🌐 {method} {url}")
        response = await self.make_http_request(
            method,
            url,
            headers={str(k): str(v) for k, v in headers.items()},
            json_data=json_data,
            params=config.get("params") or None,
        )
        self.raise_for_status(response, "HTTP")
        run.log(f"{method} {url} -> {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return {"status": response.status_code, "data": response.text}

        if isinstance(data, dict):
            return data
        return {"status": response.status_code, "data": data}
