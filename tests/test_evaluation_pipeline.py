import copy
import time

from conftest import PERSONAS_PAYLOAD, SUMMARY_PAYLOAD, FakeGateway, delayed, evaluation_by_name, persona_name
from deckpanel.core.audiences import INVESTORS
from deckpanel.core.entities import EvaluateRequest
from deckpanel.core.errors import UpstreamError
from deckpanel.core.events import DoneEvent, ErrorEvent, EvaluationEvent, SummaryEvent
from deckpanel.workflows.evaluation import PanelEvaluationPipeline, Phase
from deckpanel.workflows.fanout import FailurePolicy


async def _run(pipeline):
    return [event async for event in pipeline.run()]


def _pipeline(evaluate_body, llm, **kwargs):
    return PanelEvaluationPipeline(EvaluateRequest.model_validate(evaluate_body), llm, **kwargs)


async def test_events_follow_phase_order(evaluate_body, fake_llm):
    pipeline = _pipeline(evaluate_body, fake_llm)
    events = await _run(pipeline)

    kinds = [e.type.value for e in events]
    assert kinds[0] == "personas"
    assert kinds[1:4] == ["evaluation"] * 3
    assert kinds[4:] == ["summary", "done"]
    assert pipeline.phase is Phase.DONE

    persona_ids = {p.id for p in events[0].personas}
    evaluated = [e.evaluation.persona_id for e in events if isinstance(e, EvaluationEvent)]
    assert sorted(evaluated) == sorted(persona_ids)
    assert len(set(evaluated)) == len(evaluated)


async def test_evaluations_are_emitted_in_completion_order(evaluate_body):
    # persona 3 answers first, persona 1 last
    delays = {"Ingrid Sandvik": 0.09, "Marcus Lindqvist": 0.05, "Sofia Berg": 0.01}
    llm = FakeGateway(
        personas=PERSONAS_PAYLOAD,
        evaluation=delayed(delays, evaluation_by_name),
        summary=SUMMARY_PAYLOAD,
    )
    events = await _run(_pipeline(evaluate_body, llm))

    evaluated = [e.evaluation.persona_id for e in events if isinstance(e, EvaluationEvent)]
    assert evaluated == ["persona-3", "persona-2", "persona-1"]
    assert isinstance(events[-2], SummaryEvent)
    assert isinstance(events[-1], DoneEvent)
    assert llm.count("summary") == 1


async def test_evaluations_run_concurrently(evaluate_body):
    delays = {"Ingrid Sandvik": 0.2, "Marcus Lindqvist": 0.2, "Sofia Berg": 0.2}
    llm = FakeGateway(
        personas=PERSONAS_PAYLOAD,
        evaluation=delayed(delays, evaluation_by_name),
        summary=SUMMARY_PAYLOAD,
    )
    started = time.monotonic()
    events = await _run(_pipeline(evaluate_body, llm))
    elapsed = time.monotonic() - started

    assert isinstance(events[-1], DoneEvent)
    assert llm.count("evaluation") == 3
    # three sequential calls would need 0.6s
    assert elapsed < 0.5


async def test_knowledge_levels_come_from_selections(evaluate_body, fake_llm):
    events = await _run(_pipeline(evaluate_body, fake_llm))
    levels = {p.id: p.knowledge_level for p in events[0].personas}
    assert levels == {"persona-1": "expert", "persona-2": "intermediate", "persona-3": "expert"}

    evaluation_prompts = [call[1] for call in fake_llm.calls if call[0] == "evaluation"]
    ingrid = next(p for p in evaluation_prompts if persona_name(p) == "Ingrid Sandvik")
    assert "KNOWLEDGE LEVEL: EXPERT" in ingrid


async def test_generation_failure_emits_only_error(evaluate_body):
    llm = FakeGateway(personas=UpstreamError("Model request timed out after 300s"))
    pipeline = _pipeline(evaluate_body, llm)
    events = await _run(pipeline)

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert "timed out" in events[0].message
    assert pipeline.phase is Phase.FAILED
    assert llm.count("evaluation") == 0


async def test_single_evaluation_failure_aborts_the_run(evaluate_body):
    def evaluation(system_prompt, user_prompt):
        if persona_name(system_prompt) == "Marcus Lindqvist":
            return UpstreamError("Invalid JSON response from model")
        return evaluation_by_name(system_prompt, user_prompt)

    llm = FakeGateway(personas=PERSONAS_PAYLOAD, evaluation=evaluation, summary=SUMMARY_PAYLOAD)
    pipeline = _pipeline(evaluate_body, llm)
    events = await _run(pipeline)

    assert isinstance(events[-1], ErrorEvent)
    assert "Marcus Lindqvist" in events[-1].message
    assert not any(isinstance(e, (SummaryEvent, DoneEvent)) for e in events)
    assert sum(1 for e in events if isinstance(e, ErrorEvent)) == 1
    assert llm.count("summary") == 0
    assert pipeline.phase is Phase.FAILED


async def test_skip_policy_summarizes_completed_personas(evaluate_body):
    def evaluation(system_prompt, user_prompt):
        if persona_name(system_prompt) == "Marcus Lindqvist":
            return UpstreamError("boom")
        return evaluation_by_name(system_prompt, user_prompt)

    llm = FakeGateway(personas=PERSONAS_PAYLOAD, evaluation=evaluation, summary=SUMMARY_PAYLOAD)
    events = await _run(_pipeline(evaluate_body, llm, failure_policy=FailurePolicy.SKIP))

    evaluated = [e.evaluation.persona_id for e in events if isinstance(e, EvaluationEvent)]
    assert sorted(evaluated) == ["persona-1", "persona-3"]
    assert isinstance(events[-1], DoneEvent)
    summary_prompt = next(call[2] for call in llm.calls if call[0] == "summary")
    assert "Marcus Lindqvist" not in summary_prompt


async def test_skip_policy_fails_when_nothing_completed(evaluate_body):
    llm = FakeGateway(personas=PERSONAS_PAYLOAD, evaluation=UpstreamError("down"), summary=SUMMARY_PAYLOAD)
    events = await _run(_pipeline(evaluate_body, llm, failure_policy="skip"))
    assert isinstance(events[-1], ErrorEvent)
    assert llm.count("summary") == 0


async def test_summary_failure_ends_with_error(evaluate_body):
    llm = FakeGateway(personas=PERSONAS_PAYLOAD, evaluation=evaluation_by_name, summary={"nothing": True})
    pipeline = _pipeline(evaluate_body, llm)
    events = await _run(pipeline)
    assert [e.type.value for e in events][-2:] == ["evaluation", "error"]
    assert pipeline.phase is Phase.FAILED


async def test_unknown_persona_category_uses_first_selected_segment(evaluate_body):
    payload = copy.deepcopy(PERSONAS_PAYLOAD)
    payload["personas"][1]["audienceCategoryId"] = "martians"
    llm = FakeGateway(personas=payload, evaluation=evaluation_by_name, summary=SUMMARY_PAYLOAD)

    events = await _run(_pipeline(evaluate_body, llm))

    evaluated = {e.evaluation.persona_id for e in events if isinstance(e, EvaluationEvent)}
    assert "persona-2" in evaluated
    marcus = next(call[1] for call in llm.calls if call[0] == "evaluation" and persona_name(call[1]) == "Marcus Lindqvist")
    # investors is the first selected segment
    assert INVESTORS.evidence_expectations in marcus
    assert isinstance(events[-1], DoneEvent)


async def test_slide_sample_is_truncated(evaluate_body, fake_llm):
    await _run(_pipeline(evaluate_body, fake_llm, slide_sample_chars=10))
    generation_user = next(call[2] for call in fake_llm.calls if call[0] == "personas")
    assert "SLIDE SAMPLE (for context only):\n[Slide 1]\n" in generation_user
    assert "Our platform" not in generation_user


def test_pipeline_starts_without_phase(evaluate_body, fake_llm):
    pipeline = _pipeline(evaluate_body, fake_llm)
    assert pipeline.phase is None
    assert [s.id for s in pipeline.segments] == ["investors", "c-level"]
