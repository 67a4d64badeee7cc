"""Final standings for a single-elimination bracket."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from pongarena.core.constants import INVITE_PLACEHOLDER, MATCH_FINISHED

from .models import StandingEntry

_SLOT_SCORES = (("playerAId", "scoreA"), ("playerBId", "scoreB"))


def find_champion(matches: Iterable[dict[str, Any]]) -> Optional[str]:
    """Return the winner of the highest-round match, if it has one."""
    final = None
    for match in matches:
        if final is None or match.get("round", 0) > final.get("round", 0):
            final = match
    if final is None or final.get("status") != MATCH_FINISHED:
        return None
    return final.get("winnerId")


def aggregate_bracket_results(
    participants: Iterable[dict[str, Any]], matches: list[dict[str, Any]]
) -> dict[str, dict[str, Any]]:
    """Accumulate total score and furthest round for each participant."""
    stats: dict[str, dict[str, Any]] = {}
    for p in participants:
        if p.get("inviteState") == INVITE_PLACEHOLDER:
            continue
        stats[p["id"]] = {
            "participantId": p["id"],
            "alias": p.get("alias", ""),
            "inviteState": p.get("inviteState", ""),
            "seed": p.get("seed"),
            "place": 0,
            "totalScore": 0,
            "maxRoundReached": 0,
            "isWinner": False,
        }

    for match in matches:
        round_number = match.get("round", 0)
        finished = match.get("status") == MATCH_FINISHED
        for slot_field, score_field in _SLOT_SCORES:
            participant_id = match.get(slot_field)
            if participant_id not in stats:
                continue
            s = stats[participant_id]
            s["maxRoundReached"] = max(s["maxRoundReached"], round_number)
            if finished:
                s["totalScore"] += match.get(score_field) or 0

    champion = find_champion(matches)
    if champion in stats:
        stats[champion]["isWinner"] = True

    return stats


def rank_standings(stats: dict[str, dict[str, Any]]) -> list[StandingEntry]:
    """Sort entries and assign places; equal entries share a place."""
    entries = sorted(
        stats.values(),
        key=lambda s: (
            not s["isWinner"],
            -s["maxRoundReached"],
            -s["totalScore"],
            s["seed"] is None,
            s["seed"] or 0,
            s["alias"],
        ),
    )

    previous = None
    place = 0
    for index, entry in enumerate(entries):
        group = (entry["isWinner"], entry["maxRoundReached"], entry["totalScore"])
        if group != previous:
            place = index + 1
            previous = group
        entry["place"] = place
    return [StandingEntry(**entry) for entry in entries]


def calculate_standings(
    participants: Iterable[dict[str, Any]], matches: Iterable[dict[str, Any]]
) -> list[StandingEntry]:
    """Derive the final ranking of a tournament from its participants and matches.

    The champion comes first.  Everyone else is ordered by the furthest
    round reached, then by total points scored in finished matches.  The
    placeholder participant is never ranked.
    """
    return rank_standings(aggregate_bracket_results(participants, list(matches)))
