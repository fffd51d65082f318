import json

from deckpanel.client.session import Screen, SessionState, SessionStore, restore_screen
from deckpanel.core.entities import AudienceSelection, Recommendation


def _state(**kwargs) -> SessionState:
    return SessionState(**{"goal": "Raise a seed round", "file_name": "deck.pptx", **kwargs})


def test_round_trip(tmp_path, slides, personas, evaluations):
    store = SessionStore(str(tmp_path), "tab-1")
    state = _state(
        screen=Screen.RESULTS,
        slide_contents=slides,
        audience_selections=[AudienceSelection(category_id="investors", knowledge_level="expert")],
        personas=personas,
        evaluations=evaluations,
    )
    store.save(state)

    assert store.load() == state
    stored = json.loads(store.path.read_text(encoding="utf-8"))
    assert stored["screen"] == "results"
    assert "slideContents" in stored and "audienceSelections" in stored


def test_saving_while_loading_is_a_noop(tmp_path):
    store = SessionStore(str(tmp_path))
    store.save(_state(screen=Screen.SETUP))
    store.save(_state(screen=Screen.LOADING, goal="changed"))

    loaded = store.load()
    assert loaded.screen is Screen.SETUP
    assert loaded.goal == "Raise a seed round"


def test_loading_never_written_to_fresh_store(tmp_path):
    store = SessionStore(str(tmp_path))
    store.save(_state(screen=Screen.LOADING))
    assert store.load() is None


def test_recommendations_without_data_resume_at_results(tmp_path):
    store = SessionStore(str(tmp_path))
    store.save(_state(screen=Screen.RECOMMENDATIONS))
    assert store.load().screen is Screen.RESULTS


def test_recommendations_with_data_resume_in_place(tmp_path):
    store = SessionStore(str(tmp_path))
    rec = Recommendation(number=1, title="t", text="x", priority="top")
    store.save(_state(screen=Screen.RECOMMENDATIONS, recommendations=[rec]))
    assert store.load().screen is Screen.RECOMMENDATIONS


def test_stored_loading_screen_resumes_at_setup():
    assert restore_screen(_state(screen=Screen.LOADING)).screen is Screen.SETUP


def test_corrupt_file_is_ignored(tmp_path):
    store = SessionStore(str(tmp_path))
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() is None


def test_clear(tmp_path):
    store = SessionStore(str(tmp_path))
    store.save(_state(screen=Screen.SETUP))
    store.clear()
    assert store.load() is None
    store.clear()


def test_sessions_are_isolated_by_key(tmp_path):
    SessionStore(str(tmp_path), "a").save(_state(screen=Screen.SETUP))
    assert SessionStore(str(tmp_path), "b").load() is None


def test_unsafe_session_key_is_sanitized(tmp_path):
    store = SessionStore(str(tmp_path), "../../etc/passwd")
    assert store.path.parent == tmp_path


def test_unwritable_directory_is_absorbed(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    store = SessionStore(str(blocker / "sessions"))
    store.save(_state(screen=Screen.SETUP))
    assert store.load() is None


def test_undecodable_file_is_ignored(tmp_path):
    store = SessionStore(str(tmp_path))
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_bytes(b"\xff\xfe\x00garbage")
    assert store.load() is None
