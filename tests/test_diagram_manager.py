"""
Tests for editor operations, gestures and change notification.
"""

import json
import math

import pytest

from fsm_backend.diagram_manager import DiagramManager
from fsm_core.graph import EntityNotFoundError
from fsm_core.models import Link, Node, SelfLink, StartLink, TemporaryLink
from fsm_core.session import EditorSession


@pytest.fixture
def manager():
    return DiagramManager()


@pytest.fixture
def session():
    return EditorSession()


@pytest.fixture
def two_nodes(manager):
    a = manager.create_node(100, 100)
    b = manager.create_node(300, 100)
    return a, b


class TestNotifications:

    def test_mutation_notifies_with_snapshot(self, manager):
        snapshots = []
        redraws = []
        manager.on_change(snapshots.append)
        manager.on_redraw(lambda: redraws.append(True))

        manager.create_node(10, 20)

        assert len(snapshots) == 1
        assert json.loads(snapshots[0])["nodes"][0]["x"] == 10
        assert redraws

    def test_selection_only_requests_redraw(self, manager, session, two_nodes):
        snapshots = []
        redraws = []
        manager.on_change(snapshots.append)
        manager.on_redraw(lambda: redraws.append(True))

        manager.begin_drag(session, 100, 100)
        manager.end_drag(session)

        assert snapshots == []
        assert redraws


class TestEntityOperations:

    def test_toggle_accept_state(self, manager, two_nodes):
        a, _ = two_nodes
        manager.toggle_accept_state(a.id)
        assert a.is_accept_state
        manager.toggle_accept_state(a.id)
        assert not a.is_accept_state

    def test_set_label_and_move(self, manager, two_nodes):
        a, _ = two_nodes
        manager.set_label(a.id, "q_0")
        manager.move_node(a.id, 50, 60)
        assert (a.text, a.x, a.y) == ("q_0", 50, 60)

    def test_delete_node_cascades_and_prunes_selection(self, manager, session, two_nodes):
        a, b = two_nodes
        link = manager.add_link(Link(node_a=a.id, node_b=b.id))
        session.select(a, link)

        manager.delete_entity(a.id, session)

        assert manager.graph.nodes == [b]
        assert manager.graph.links == []
        assert session.selected == []

    def test_unknown_id_raises(self, manager):
        with pytest.raises(EntityNotFoundError):
            manager.set_label("n00000000", "x")

    def test_load_from_document_resets_session(self, manager, session, two_nodes):
        session.select(two_nodes[0])
        graph = manager.load_from_document('{"nodes": [{"x": 1, "y": 2}], "links": []}', session)
        assert len(graph.nodes) == 1
        assert session.selected == []

    def test_load_malformed_document_gives_empty_graph(self, manager, two_nodes):
        graph = manager.load_from_document("{broken")
        assert len(graph) == 0


class TestGestures:

    def test_double_click_creates_then_toggles(self, manager, session):
        node = manager.double_click(session, 100, 100)
        assert isinstance(node, Node)
        assert session.primary is node

        again = manager.double_click(session, 100, 100)
        assert again is node
        assert node.is_accept_state

    def test_drag_moves_node(self, manager, session, two_nodes):
        a, _ = two_nodes
        manager.begin_drag(session, 105, 100)
        manager.update_drag(session, 155, 120)
        manager.end_drag(session)
        assert (a.x, a.y) == (150, 120)
        assert session.selected == [a]

    def test_drag_snaps_to_other_node(self, manager, session, two_nodes):
        a, _ = two_nodes
        manager.begin_drag(session, 100, 100)
        manager.update_drag(session, 150, 103)
        assert a.y == 100

    def test_shift_drag_between_nodes_commits_link(self, manager, session, two_nodes):
        a, b = two_nodes
        manager.begin_drag(session, 100, 100, shift=True)
        assert isinstance(session.current_link, SelfLink)

        manager.update_drag(session, 300, 100)
        assert isinstance(session.current_link, Link)

        link = manager.end_drag(session)
        assert isinstance(link, Link)
        assert (link.node_a, link.node_b) == (a.id, b.id)
        assert manager.graph.links == [link]
        assert session.primary is link
        assert session.current_link is None

    def test_shift_drag_on_node_commits_self_link(self, manager, session, two_nodes):
        manager.begin_drag(session, 100, 100, shift=True)
        manager.update_drag(session, 100, 85)
        link = manager.end_drag(session)
        assert isinstance(link, SelfLink)
        assert link.anchor_angle == pytest.approx(-math.pi / 2)

    def test_shift_drag_from_canvas_commits_start_link(self, manager, session, two_nodes):
        a, _ = two_nodes
        manager.begin_drag(session, 20, 100, shift=True)
        assert isinstance(session.current_link, TemporaryLink)
        assert session.selection_target is None

        manager.update_drag(session, 100, 100)
        link = manager.end_drag(session)

        assert isinstance(link, StartLink)
        assert link.node == a.id
        assert (link.delta_x, link.delta_y) == (-80, 0)

    def test_free_floating_link_discarded(self, manager, session, two_nodes):
        manager.begin_drag(session, 100, 100, shift=True)
        manager.update_drag(session, 200, 300)
        assert isinstance(session.current_link, TemporaryLink)
        assert manager.end_drag(session) is None
        assert manager.graph.links == []

    def test_rubber_band_selects_nodes(self, manager, session, two_nodes):
        a, b = two_nodes
        manager.begin_drag(session, 0, 0)
        manager.update_drag(session, 400, 400)
        assert session.selected == [a, b]
        assert session.selection_rect is not None
        manager.end_drag(session)
        assert session.selection_rect is None
        assert session.selected == [a, b]

    def test_click_empty_canvas_clears_selection(self, manager, session, two_nodes):
        session.select(two_nodes[0])
        manager.begin_drag(session, 500, 500)
        assert session.selected == []

    def test_ctrl_adds_to_selection(self, manager, session, two_nodes):
        a, b = two_nodes
        manager.begin_drag(session, 100, 100)
        manager.end_drag(session)
        manager.begin_drag(session, 300, 100, ctrl=True)
        assert session.selected == [a, b]


class TestKeyboard:

    def test_typing_appends_printable_ascii(self, manager, session, two_nodes):
        a, _ = two_nodes
        session.select(a)
        assert manager.type_character(session, "q")
        assert manager.type_character(session, "_")
        assert not manager.type_character(session, "\n")
        assert not manager.type_character(session, "é")
        assert a.text == "q_"

    def test_typing_without_selection_is_ignored(self, manager, session):
        assert not manager.type_character(session, "a")

    def test_backspace(self, manager, session, two_nodes):
        a, _ = two_nodes
        manager.set_label(a.id, "ab")
        session.select(a)
        assert manager.backspace(session)
        assert a.text == "a"

    def test_typing_resets_caret(self, manager, session, two_nodes):
        session.select(two_nodes[0])
        session.caret_visible = False
        manager.type_character(session, "x")
        assert session.caret_visible

    def test_delete_selected(self, manager, session, two_nodes):
        a, b = two_nodes
        manager.add_link(Link(node_a=a.id, node_b=b.id))
        session.select(b)
        assert manager.delete_selected(session)
        assert manager.graph.nodes == [a]
        assert manager.graph.links == []
        assert not manager.delete_selected(session)


class TestAutosave:

    def test_mutations_write_snapshot(self, tmp_path):
        path = tmp_path / "state" / "autosave.json"
        manager = DiagramManager(autosave_path=path)
        manager.create_node(10, 10)
        assert json.loads(path.read_text())["nodes"][0]["y"] == 10

    def test_restore(self, tmp_path):
        path = tmp_path / "autosave.json"
        first = DiagramManager(autosave_path=path)
        a = first.create_node(10, 10)
        b = first.create_node(90, 10)
        first.add_link(Link(node_a=a.id, node_b=b.id, text="t"))

        second = DiagramManager(autosave_path=path)
        graph = second.restore_autosave()
        assert len(graph.nodes) == 2
        assert graph.links[0].text == "t"

    def test_restore_malformed_snapshot(self, tmp_path):
        path = tmp_path / "autosave.json"
        path.write_text("not json")
        graph = DiagramManager(autosave_path=path).restore_autosave()
        assert len(graph) == 0

    def test_restore_without_file(self, tmp_path):
        manager = DiagramManager(autosave_path=tmp_path / "missing.json")
        assert len(manager.restore_autosave()) == 0
