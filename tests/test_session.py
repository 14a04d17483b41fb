import config
from models import Person
from services.session_service import SessionManager, TreeState


def test_replace_people_records_history():
    state = TreeState()
    state.replace_people([Person(id="a")], "create_person")
    state.replace_people([Person(id="a"), Person(id="b")], "create_person")

    assert state.revision == 2
    assert state.last_action == "create_person"
    assert list(state.tree.persons) == ["a", "b"]

    assert state.undo()
    assert list(state.tree.persons) == ["a"]
    assert state.can_redo()
    assert state.redo()
    assert list(state.tree.persons) == ["a", "b"]
    assert state.revision == 4


def test_new_edit_clears_redo():
    state = TreeState()
    state.replace_people([Person(id="a")], "create_person")
    state.undo()
    state.replace_people([Person(id="b")], "import_json")
    assert not state.can_redo()
    assert not state.redo()


def test_metadata_is_kept_unless_replaced():
    state = TreeState()
    state.replace_people([], "import_gedcom", metadata={"tree_id": "t1"})
    state.replace_people([Person(id="a")], "create_person")
    assert state.tree.metadata == {"tree_id": "t1"}


def test_history_is_bounded():
    state = TreeState(max_history=3)
    for i in range(5):
        state.replace_people([Person(id=str(i))], "create_person")
    assert len(state.undo_stack) == 3
    while state.undo():
        pass
    assert list(state.tree.persons) == ["1"]


def test_undo_snapshot_is_independent():
    state = TreeState()
    state.replace_people([Person(id="a")], "create_person")
    state.save_state("auto_layout")
    state.tree.persons["a"].x = 50.0
    state.undo()
    assert state.tree.persons["a"].x is None


def test_sessions_are_reused_and_created():
    manager = SessionManager()
    sid, state = manager.get_or_create_session()
    assert manager.get_or_create_session(sid) == (sid, state)

    other_id, other = manager.get_or_create_session("unknown")
    assert other_id != "unknown"
    assert other is not state


def test_oldest_session_is_evicted():
    manager = SessionManager(max_sessions=2)
    first, _ = manager.get_or_create_session()
    second, _ = manager.get_or_create_session()
    manager.sessions[first].last_accessed -= 100
    third, _ = manager.get_or_create_session()
    assert set(manager.sessions) == {second, third}


def test_idle_sessions_expire(monkeypatch):
    monkeypatch.setattr(config, "SESSION_CLEANUP_INTERVAL", 0)
    manager = SessionManager()
    sid, state = manager.get_or_create_session()
    state.last_accessed -= config.SESSION_MAX_AGE + 1
    manager.get_or_create_session()
    assert sid not in manager.sessions
