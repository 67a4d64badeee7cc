"""Routes for the tournament blueprint."""

from __future__ import annotations

from typing import Any

from flask import current_app, jsonify, request

from pongarena.core.constants import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    MAX_PARTICIPANTS,
    TOURNAMENT_STATUSES,
)
from pongarena.errors import ValidationError

from . import bp
from .forms import CreateTournamentForm, MatchResultForm, formdata_from_json
from .services import TournamentService


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload


def _positive_int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1:
        raise ValidationError(
            "Invalid query parameters",
            details={name: ["Must be a positive integer."]},
        )
    return value


@bp.route("", methods=["POST"])
def create_tournament() -> Any:
    """Create a tournament and generate its bracket."""
    form = CreateTournamentForm(formdata=formdata_from_json(_json_body()))
    if not form.validate():
        raise ValidationError("Invalid tournament payload", details=form.errors)

    summary = TournamentService.create_tournament(
        form.to_service_data(),
        max_participants=current_app.config.get(
            "TOURNAMENT_MAX_PARTICIPANTS", MAX_PARTICIPANTS
        ),
    )
    return jsonify({"data": summary}), 201


@bp.route("", methods=["GET"])
def list_tournaments() -> Any:
    """List tournaments with optional status/owner filters."""
    status = request.args.get("status")
    if status and status not in TOURNAMENT_STATUSES:
        raise ValidationError(
            "Invalid query parameters",
            details={"status": [f"Must be one of {', '.join(TOURNAMENT_STATUSES)}."]},
        )
    page = _positive_int_arg("page", 1)
    limit = min(
        _positive_int_arg("limit", DEFAULT_PAGE_LIMIT),
        current_app.config.get("TOURNAMENT_PAGE_LIMIT_MAX", MAX_PAGE_LIMIT),
    )

    result = TournamentService.list_tournaments(
        status=status,
        owner_id=request.args.get("ownerId"),
        page=page,
        limit=limit,
    )
    return jsonify(result)


@bp.route("/<string:tournament_id>", methods=["GET"])
def view_tournament(tournament_id: str) -> Any:
    """Return a tournament with its participants and bracket."""
    return jsonify({"data": TournamentService.get_tournament(tournament_id)})


@bp.route("/<string:tournament_id>/standings", methods=["GET"])
def tournament_standings(tournament_id: str) -> Any:
    """Return the ranking of a tournament."""
    return jsonify({"data": TournamentService.get_standings(tournament_id)})


@bp.route("/matches/<string:match_id>/result", methods=["POST"])
def submit_match_result(match_id: str) -> Any:
    """Record a match result reported by the game server."""
    form = MatchResultForm(formdata=formdata_from_json(_json_body()))
    if not form.validate():
        raise ValidationError("Invalid parameters or body", details=form.errors)

    outcome = TournamentService.submit_result(
        match_id,
        form.winner_id.data,
        form.score_a.data,
        form.score_b.data,
    )

    # Completion policy: the final's winner closes the tournament.
    if outcome.is_final:
        TournamentService.complete_tournament(
            outcome.tournament_id, outcome.winner_id
        )
        current_app.logger.info(
            f"Tournament {outcome.tournament_id} won by {outcome.winner_id}."
        )

    return jsonify({
        "success": True,
        "data": {
            "matchId": outcome.match_id,
            "winnerId": outcome.winner_id,
            "scoreA": outcome.score_a,
            "scoreB": outcome.score_b,
            "nextMatchId": outcome.next_match_id,
            "nextSlot": outcome.next_slot,
            "tournamentCompleted": outcome.is_final,
        },
    })
