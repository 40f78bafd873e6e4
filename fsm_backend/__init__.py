"""FSM Designer service layer: editor operations, HTTP/WebSocket API and CLI."""
