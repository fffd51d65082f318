import asyncio

import aiosqlite
import httpx
import pytest

from conftest import RECOMMENDATIONS_PAYLOAD
from deckpanel.client.api import DeckpanelClient
from deckpanel.client.controller import RunProgress, SessionController
from deckpanel.client.history import EvaluationHistory
from deckpanel.client.session import Screen, SessionStore
from deckpanel.core.entities import AudienceSelection, OverallSummary, RecommendationBatch
from deckpanel.core.errors import ApiError
from deckpanel.core.events import DoneEvent, ErrorEvent, EvaluationEvent, PersonasEvent, SummaryEvent
from deckpanel.processing.recommender import normalize_batch
from deckpanel.core.schemas import RecommendationsOutput
from deckpanel.web.app import create_app


class FakeClient:
    def __init__(self, events, batch=None, error=None):
        self.events = events
        self.batch = batch
        self.error = error
        self.stream_calls = 0
        self.recommendation_calls = []

    async def stream_evaluation(self, **kwargs):
        self.stream_calls += 1
        for event in self.events:
            await asyncio.sleep(0)
            yield event

    async def fetch_recommendations(self, **kwargs):
        self.recommendation_calls.append(kwargs)
        if self.error:
            raise self.error
        return self.batch


@pytest.fixture
def batch() -> RecommendationBatch:
    return normalize_batch(
        RecommendationsOutput.model_validate(RECOMMENDATIONS_PAYLOAD),
        persona_ids={"persona-1", "persona-2", "persona-3"},
        page_numbers={1, 2, 3},
    )


@pytest.fixture
def run_events(personas, evaluations):
    return [
        PersonasEvent(personas=personas),
        *[EvaluationEvent(evaluation=e) for e in evaluations],
        SummaryEvent(summary=OverallSummary(text="Mixed reception")),
        DoneEvent(),
    ]


def _controller(tmp_path, client, history=None) -> SessionController:
    return SessionController(client, SessionStore(str(tmp_path / "sessions"), "tab"), history=history)


def _configured(tmp_path, client, slides, history=None) -> SessionController:
    controller = _controller(tmp_path, client, history)
    controller.load_deck(slides, file_name="deck.pptx")
    controller.configure(
        goal="Raise a seed round",
        audience_selections=[AudienceSelection(category_id="investors")],
    )
    return controller


async def test_run_reaches_results_and_updates_incrementally(tmp_path, slides, run_events):
    controller = _configured(tmp_path, FakeClient(run_events), slides)
    seen = []

    def on_event(event):
        seen.append((event.type.value, controller.screen, len(controller.state.evaluations)))

    assert await controller.run_evaluation(on_event=on_event)

    assert seen[0] == ("personas", Screen.LOADING, 0)
    assert seen[1] == ("evaluation", Screen.LOADING, 1)
    assert seen[-1] == ("done", Screen.RESULTS, 3)
    assert controller.state.overall_summary.text == "Mixed reception"
    assert controller.store.load().screen is Screen.RESULTS


async def test_progress_is_not_persisted_while_loading(tmp_path, slides, personas):
    controller = _configured(tmp_path, FakeClient([PersonasEvent(personas=personas)]), slides)
    snapshots = []

    await controller.run_evaluation(on_event=lambda event: snapshots.append(controller.store.load()))

    assert snapshots[0].screen is Screen.SETUP
    assert snapshots[0].personas == []


async def test_error_returns_to_setup(tmp_path, slides, personas):
    events = [PersonasEvent(personas=personas), ErrorEvent(message="Evaluation failed for Ingrid")]
    controller = _configured(tmp_path, FakeClient(events), slides)

    assert not await controller.run_evaluation()

    assert controller.screen is Screen.SETUP
    assert controller.state.last_error == "Evaluation failed for Ingrid"
    assert controller.state.personas == []


async def test_stream_ending_early_returns_to_setup(tmp_path, slides, personas):
    controller = _configured(tmp_path, FakeClient([PersonasEvent(personas=personas)]), slides)
    assert not await controller.run_evaluation()
    assert controller.screen is Screen.SETUP
    assert controller.state.last_error


async def test_recommendations_are_fetched_once(tmp_path, slides, run_events, batch):
    client = FakeClient(run_events, batch=batch)
    controller = _configured(tmp_path, client, slides)
    await controller.run_evaluation()

    assert await controller.show_recommendations()
    assert controller.screen is Screen.RECOMMENDATIONS
    controller.back()
    assert controller.screen is Screen.RESULTS

    assert await controller.show_recommendations()
    assert controller.screen is Screen.RECOMMENDATIONS
    assert len(client.recommendation_calls) == 1


async def test_failed_recommendations_can_be_retried(tmp_path, slides, run_events, batch):
    client = FakeClient(run_events, error=ApiError("Failed to generate recommendations", status_code=500))
    controller = _configured(tmp_path, client, slides)
    await controller.run_evaluation()

    assert not await controller.show_recommendations()
    assert controller.screen is Screen.RECOMMENDATIONS
    assert controller.state.last_error == "Failed to generate recommendations"
    # an interrupted fetch resumes at results
    assert controller.store.load().screen is Screen.RESULTS

    client.error = None
    client.batch = batch
    assert await controller.retry_recommendations()
    assert client.recommendation_calls[0] == client.recommendation_calls[1]
    assert controller.state.recommendations == batch.recommendations
    assert controller.state.last_error is None


async def test_reset_clears_everything(tmp_path, slides, run_events):
    controller = _configured(tmp_path, FakeClient(run_events), slides)
    await controller.run_evaluation()

    controller.reset()

    assert controller.screen is Screen.UPLOAD
    assert controller.state.slide_contents == []
    assert controller.store.load() is None


async def test_controller_resumes_from_store(tmp_path, slides, run_events):
    await _configured(tmp_path, FakeClient(run_events), slides).run_evaluation()
    resumed = _controller(tmp_path, FakeClient([]))
    assert resumed.screen is Screen.RESULTS
    assert len(resumed.state.evaluations) == 3


def test_invalid_transitions_are_rejected(tmp_path, slides):
    controller = _controller(tmp_path, FakeClient([]))
    with pytest.raises(ValueError):
        controller.back()
    with pytest.raises(ValueError):
        controller.configure(goal="x", audience_selections=[AudienceSelection(category_id="team")])
    controller.load_deck(slides)
    with pytest.raises(ValueError):
        controller.configure(goal="  ", audience_selections=[AudienceSelection(category_id="team")])


async def test_history_records_completed_runs(tmp_path, slides, run_events, batch):
    history = EvaluationHistory(str(tmp_path / "history.db"))
    controller = _configured(tmp_path, FakeClient(run_events, batch=batch), slides, history=history)

    await controller.run_evaluation()
    await controller.show_recommendations()

    records = await history.recent()
    assert len(records) == 1
    assert records[0].file_name == "deck.pptx"
    assert len(records[0].evaluations) == 3
    assert len(records[0].recommendations) == len(batch.recommendations)


def test_run_progress_flags_slow_runs():
    now = [100.0]
    progress = RunProgress(slow_after=90, clock=lambda: now[0])
    assert progress.elapsed == 0.0
    progress.start()
    now[0] = 150.0
    assert not progress.is_slow
    now[0] = 191.0
    assert progress.is_slow
    progress.stop()
    now[0] = 500.0
    assert progress.elapsed == 91.0


# ---- real client against the app ----

async def test_client_against_app(config, fake_llm, slides, tmp_path):
    app = create_app(config, llm=fake_llm)
    transport = httpx.ASGITransport(app=app)

    async with DeckpanelClient("http://deckpanel.test", transport=transport) as client:
        controller = _configured(tmp_path, client, slides)
        assert await controller.run_evaluation()
        assert [p.id for p in controller.state.personas] == ["persona-1", "persona-2", "persona-3"]

        assert await controller.show_recommendations()
        assert sum(1 for r in controller.state.recommendations if r.priority == "top") == 1

        audiences = await client.list_audiences()
        assert any(a.id == "investors" for a in audiences)


async def test_client_reports_validation_error_as_event(config, fake_llm, slides):
    app = create_app(config, llm=fake_llm)
    transport = httpx.ASGITransport(app=app)

    async with DeckpanelClient("http://deckpanel.test", transport=transport) as client:
        events = [
            event async for event in client.stream_evaluation(
                slide_contents=slides,
                goal="Raise",
                audience_selections=[AudienceSelection(category_id="martians")],
            )
        ]

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert "audience" in events[0].message


async def test_client_raises_api_error_on_500(config, personas, evaluations, slides):
    from conftest import FakeGateway

    app = create_app(config, llm=FakeGateway(recommendations={"mainAdvice": "x"}))
    transport = httpx.ASGITransport(app=app)

    async with DeckpanelClient("http://deckpanel.test", transport=transport) as client:
        with pytest.raises(ApiError) as info:
            await client.fetch_recommendations(
                goal="Raise", personas=personas, evaluations=evaluations, slide_contents=slides,
            )
    assert info.value.status_code == 500


async def test_unwritable_history_does_not_lose_the_run(tmp_path, slides, run_events, batch):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    history = EvaluationHistory(str(blocker / "history.db"))
    controller = _configured(tmp_path, FakeClient(run_events, batch=batch), slides, history=history)

    assert await controller.run_evaluation()

    assert controller.screen is Screen.RESULTS
    assert controller.state.last_error is None
    assert controller.state.history_id is None
    assert len(controller.state.evaluations) == 3
    assert await controller.show_recommendations()


class BrokenUpdateHistory(EvaluationHistory):
    async def update_recommendations(self, record_id, recommendations):
        raise aiosqlite.OperationalError("database is locked")


async def test_failed_history_update_keeps_recommendations(tmp_path, slides, run_events, batch):
    history = BrokenUpdateHistory(str(tmp_path / "history.db"))
    controller = _configured(tmp_path, FakeClient(run_events, batch=batch), slides, history=history)
    await controller.run_evaluation()

    assert await controller.show_recommendations()

    assert controller.screen is Screen.RECOMMENDATIONS
    assert controller.state.recommendations == batch.recommendations
    assert controller.state.history_id is not None
