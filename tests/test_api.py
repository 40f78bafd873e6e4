"""
Tests for the HTTP API and the WebSocket endpoint.
"""

import json

import pytest
from fastapi.testclient import TestClient

from fsm_backend import main
from fsm_backend.diagram_manager import diagram_manager


DOCUMENT = {
    "nodes": [
        {"x": 100, "y": 100, "text": "q_0", "isAcceptState": False},
        {"x": 300, "y": 100, "text": "q_1", "isAcceptState": True},
    ],
    "links": [
        {"type": "Link", "nodeA": 0, "nodeB": 1, "text": "a", "lineAngleAdjust": 0,
         "parallelPart": 0.5, "perpendicularPart": 0},
    ],
}


@pytest.fixture
def client():
    diagram_manager.clear(main.session)
    main.session.caret_visible = True
    main.session.has_focus = True
    with TestClient(main.app) as test_client:
        yield test_client
    diagram_manager.clear(main.session)


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_load_and_get_diagram(client):
    response = client.put("/api/diagram", content=json.dumps(DOCUMENT))
    assert response.status_code == 200
    assert response.json()["nodes"] == 2
    assert response.json()["links"] == 1

    state = client.get("/api/diagram").json()
    assert state["diagram"] == DOCUMENT
    assert len(state["ids"]["nodes"]) == 2


def test_load_malformed_document_empties_diagram(client):
    client.put("/api/diagram", content=json.dumps(DOCUMENT))
    response = client.put("/api/diagram", content="{oops")
    assert response.status_code == 200
    assert response.json()["nodes"] == 0
    assert client.get("/api/diagram").json()["diagram"] == {"nodes": [], "links": []}


def test_create_update_delete_node(client):
    created = client.post("/api/nodes", json={"x": 50, "y": 60, "text": "s"}).json()
    node = created["node"]
    assert node["kind"] == "Node"
    assert node["id"].startswith("n")
    assert node["text"] == "s"

    updated = client.patch(f"/api/entities/{node['id']}", json={"x": 80, "text": "t"}).json()
    assert updated["entity"]["x"] == 80
    assert updated["entity"]["y"] == 60
    assert updated["entity"]["text"] == "t"

    toggled = client.post(f"/api/nodes/{node['id']}/toggle-accept").json()
    assert toggled["node"]["is_accept_state"] is True

    assert client.delete(f"/api/entities/{node['id']}").json()["success"]
    assert client.get(f"/api/entities/{node['id']}").status_code == 404


@pytest.mark.parametrize("body", ['{"x": NaN, "y": 0}', '{"x": 0, "y": Infinity}'])
def test_non_finite_coordinates_are_422(client, body):
    response = client.post("/api/nodes", content=body,
                           headers={"content-type": "application/json"})
    assert response.status_code == 422
    assert client.get("/api/diagram").json()["diagram"]["nodes"] == []


def test_unknown_entity_is_404(client):
    assert client.get("/api/entities/n12345678").status_code == 404
    assert client.patch("/api/entities/n12345678", json={"text": "x"}).status_code == 404
    assert client.delete("/api/entities/n12345678").status_code == 404
    assert client.post("/api/nodes/n12345678/toggle-accept").status_code == 404


def test_links_cannot_be_moved(client):
    client.put("/api/diagram", content=json.dumps(DOCUMENT))
    link_id = client.get("/api/diagram").json()["ids"]["links"][0]
    response = client.patch(f"/api/entities/{link_id}", json={"x": 1})
    assert response.status_code == 400


def test_delete_node_cascades(client):
    client.put("/api/diagram", content=json.dumps(DOCUMENT))
    node_id = client.get("/api/diagram").json()["ids"]["nodes"][0]
    client.delete(f"/api/entities/{node_id}")
    diagram = client.get("/api/diagram").json()["diagram"]
    assert len(diagram["nodes"]) == 1
    assert diagram["links"] == []


def test_hit_test(client):
    client.put("/api/diagram", content=json.dumps(DOCUMENT))
    hit = client.get("/api/hit-test", params={"x": 100, "y": 100}).json()
    assert hit["entity"]["kind"] == "Node"
    link = client.get("/api/hit-test", params={"x": 200, "y": 102}).json()
    assert link["entity"]["kind"] == "Link"
    miss = client.get("/api/hit-test", params={"x": 700, "y": 500}).json()
    assert miss["entity"] is None


def test_select_rect(client):
    client.put("/api/diagram", content=json.dumps(DOCUMENT))
    response = client.post("/api/select-rect", json={"x1": 150, "y1": 150, "x2": 50, "y2": 50})
    assert len(response.json()["selected"]) == 1


def test_pointer_gestures_create_link(client):
    client.put("/api/diagram", content=json.dumps({"nodes": DOCUMENT["nodes"], "links": []}))
    down = client.post("/api/pointer/down", json={"x": 100, "y": 100, "shift": True}).json()
    assert down["target"] is not None
    client.post("/api/pointer/move", json={"x": 300, "y": 100})
    up = client.post("/api/pointer/up").json()
    assert up["link"]["kind"] == "Link"
    assert up["selected"] == [up["link"]["id"]]


def test_double_click_then_type(client):
    created = client.post("/api/pointer/double-click", json={"x": 400, "y": 300}).json()
    node_id = created["entity"]["id"]

    typed = client.post("/api/keys/type", json={"text": "q_0\t"}).json()
    assert typed["accepted"] == 3
    client.post("/api/keys/backspace")

    entity = client.get(f"/api/entities/{node_id}").json()["entity"]
    assert entity["text"] == "q_"

    assert client.post("/api/keys/delete").json()["success"]
    assert client.get(f"/api/entities/{node_id}").status_code == 404


def test_session_state(client):
    response = client.patch("/api/session", json={"has_focus": False}).json()
    assert response["show_caret"] is False


def test_exports(client):
    client.put("/api/diagram", content=json.dumps(DOCUMENT))

    svg = client.get("/api/export/svg")
    assert svg.headers["content-type"].startswith("image/svg+xml")
    assert "<svg" in svg.text
    assert "q&#8320;" in svg.text

    png = client.get("/api/export/png")
    assert png.headers["content-type"] == "image/png"
    assert png.content.startswith(b"\x89PNG")

    assert client.get("/api/export/json").json() == DOCUMENT
    assert client.get("/api/view.png").content.startswith(b"\x89PNG")


def test_clear(client):
    client.put("/api/diagram", content=json.dumps(DOCUMENT))
    client.post("/api/diagram/clear")
    assert client.get("/api/diagram").json()["diagram"] == {"nodes": [], "links": []}


def test_websocket_ping(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text("ping")
        assert websocket.receive_json() == {"type": "pong"}


def test_websocket_subscriber_receives_snapshot_then_redraw(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.send_text("subscribe")
        assert websocket.receive_json() == {"type": "subscribed"}

        client.post("/api/nodes", json={"x": 10, "y": 20})

        changed = websocket.receive_json()
        assert changed["type"] == "changed"
        assert changed["diagram"]["nodes"] == [
            {"x": 10, "y": 20, "text": "", "isAcceptState": False}
        ]
        assert websocket.receive_json() == {"type": "redraw", "nodes": 1, "links": 0}
