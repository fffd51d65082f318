"""
Quart application serving the evaluation stream and recommendations API.
"""
import logging
from contextlib import aclosing
from typing import Optional

from pydantic import ValidationError
from quart import Quart, jsonify, make_response, request
from quart_cors import cors

from deckpanel.core.audiences import ALL_SEGMENTS, resolve_segments
from deckpanel.core.entities import EvaluateRequest, RecommendationsRequest
from deckpanel.core.errors import UpstreamError
from deckpanel.processing.recommender import synthesize_recommendations
from deckpanel.services.config import Config
from deckpanel.services.llm import CompletionGateway, OllamaClient
from deckpanel.transport.sse import STREAM_HEADERS, encode_event
from deckpanel.workflows.evaluation import PanelEvaluationPipeline

logger = logging.getLogger(__name__)


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(p) for p in first.get("loc", ())) or "body"
    return f"Invalid request: {location}: {first.get('msg', 'invalid value')}"


def create_app(config: Config, llm: Optional[CompletionGateway] = None) -> Quart:
    """
    Build the application. The gateway is created from config unless
    one is injected (tests pass a fake).
    """
    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.MAX_REQUEST_BYTES
    app = cors(app, allow_origin=config.CORS_ORIGIN)

    gateway: CompletionGateway = llm or OllamaClient.from_config(config)

    # ==================== Evaluation ====================

    @app.route("/api/evaluate", methods=["POST"])
    async def api_evaluate():
        """Stream personas, evaluations and the summary as server-sent events."""
        data = await request.get_json(silent=True)
        if data is None:
            return jsonify({"error": "Request body must be a JSON object"}), 400

        try:
            body = EvaluateRequest.model_validate(data)
        except ValidationError as e:
            return jsonify({"error": _validation_message(e)}), 400

        if not resolve_segments(s.category_id for s in body.audience_selections):
            return jsonify({"error": "None of the selected audience categories are known"}), 400

        pipeline = PanelEvaluationPipeline.from_config(body, gateway, config)
        logger.info(
            f"Starting evaluation run {pipeline.run_id}: {len(body.slide_contents)} slides, "
            f"{len(pipeline.segments)} audience categories",
            extra={"run_id": pipeline.run_id},
        )

        async def send_events():
            async with aclosing(pipeline.run()) as events:
                async for event in events:
                    yield encode_event(event)

        response = await make_response(send_events(), 200, STREAM_HEADERS)
        response.timeout = None
        return response

    # ==================== Recommendations ====================

    @app.route("/api/recommendations", methods=["POST"])
    async def api_recommendations():
        """Ranked recommendations for a finished evaluation."""
        data = await request.get_json(silent=True)
        if data is None:
            return jsonify({"error": "Request body must be a JSON object"}), 400

        try:
            body = RecommendationsRequest.model_validate(data)
        except ValidationError as e:
            return jsonify({"error": _validation_message(e)}), 400

        try:
            batch = await synthesize_recommendations(
                llm=gateway,
                request=body,
                enforce_deletion_consistency=config.ENFORCE_DELETION_CONSISTENCY,
            )
        except UpstreamError as e:
            logger.error(f"Recommendation synthesis failed: {e}")
            return jsonify({"error": f"Failed to generate recommendations: {e}"}), 500

        return jsonify(batch.to_wire())

    # ==================== Reference data ====================

    @app.route("/api/audiences")
    async def api_audiences():
        """Audience categories a client can select."""
        return jsonify({"audiences": [segment.to_wire() for segment in ALL_SEGMENTS.values()]})

    @app.route("/api/health")
    async def api_health():
        llm_ok = await gateway.health_check()
        return jsonify({"status": "ok", "llm": llm_ok})

    return app
