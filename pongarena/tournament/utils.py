"""Query and serialisation helpers for tournament data."""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Any, Optional, cast

from firebase_admin import firestore

from pongarena.core.constants import (
    INVITE_PLACEHOLDER,
    MATCHES_COLLECTION,
    PARTICIPANTS_COLLECTION,
)

from .models import Match, Participant, PlayerSlot

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client


def to_iso(value: Any) -> Optional[str]:
    """Format a datetime or Firestore timestamp as ISO-8601."""
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    if hasattr(value, "to_datetime"):
        return value.to_datetime().isoformat()
    return str(value)


def owner_display_name(user_data: Optional[dict[str, Any]]) -> str:
    """Return the best available display name for a user document."""
    if not user_data:
        return "Unknown User"
    return (
        user_data.get("displayName")
        or user_data.get("name")
        or user_data.get("username")
        or "Unknown User"
    )


def _documents(query: Any) -> list[dict[str, Any]]:
    docs = []
    for doc in query.stream():
        data = doc.to_dict()
        if doc.exists and data:
            data["id"] = doc.id
            docs.append(data)
    return docs


def fetch_tournament_participants(
    db: Client, tournament_id: str
) -> list[Participant]:
    """Fetch every participant of a tournament, placeholder and AI included."""
    query = db.collection(PARTICIPANTS_COLLECTION).where(
        filter=firestore.FieldFilter("tournamentId", "==", tournament_id)
    )
    return cast("list[Participant]", sort_participants(_documents(query)))


def fetch_tournament_matches(db: Client, tournament_id: str) -> list[Match]:
    """Fetch every match of a tournament ordered by round, then position."""
    query = db.collection(MATCHES_COLLECTION).where(
        filter=firestore.FieldFilter("tournamentId", "==", tournament_id)
    )
    return cast("list[Match]", sort_matches(_documents(query)))


def sort_participants(participants: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Order by seed (unseeded last), then by order of entry."""
    return sorted(
        participants,
        key=lambda p: (
            p.get("seed") is None,
            p.get("seed") or 0,
            p.get("entryOrder", 0),
            p["id"],
        ),
    )


def sort_matches(matches: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return sorted(
        matches, key=lambda m: (m.get("round", 0), m.get("position", 0), m["id"])
    )


def serialize_participant(participant: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": participant["id"],
        "alias": participant.get("alias"),
        "userId": participant.get("userId"),
        "inviteState": participant.get("inviteState"),
        "seed": participant.get("seed"),
        "joinedAt": to_iso(participant.get("joinedAt")),
    }


def serialize_slot(
    participant_id: Optional[str], participants_by_id: dict[str, dict[str, Any]]
) -> Optional[PlayerSlot]:
    """Resolve a match slot to the participant occupying it."""
    if participant_id is None:
        return None
    participant = participants_by_id.get(participant_id, {})
    return PlayerSlot(
        participantId=participant_id,
        alias=participant.get("alias", ""),
        inviteState=participant.get("inviteState", ""),
    )


def serialize_match(
    match: dict[str, Any], participants_by_id: dict[str, dict[str, Any]]
) -> dict[str, Any]:
    return {
        "id": match["id"],
        "round": match.get("round"),
        "position": match.get("position"),
        "status": match.get("status"),
        "scheduledAt": to_iso(match.get("scheduledAt")),
        "playerA": serialize_slot(match.get("playerAId"), participants_by_id),
        "playerB": serialize_slot(match.get("playerBId"), participants_by_id),
        "winnerId": match.get("winnerId"),
        "scoreA": match.get("scoreA"),
        "scoreB": match.get("scoreB"),
        "feedsIntoMatchId": match.get("feedsIntoMatchId"),
        "feedsIntoSlot": match.get("feedsIntoSlot"),
    }


def serialize_tournament_summary(
    tournament: dict[str, Any], owner_data: Optional[dict[str, Any]]
) -> dict[str, Any]:
    return {
        "id": tournament["id"],
        "name": tournament.get("name"),
        "status": tournament.get("status"),
        "bracketType": tournament.get("bracketType"),
        "startsAt": to_iso(tournament.get("startsAt")),
        "owner": {
            "id": tournament.get("ownerId"),
            "displayName": owner_display_name(owner_data),
        },
        "participantCount": tournament.get("participantCount", 0),
    }


def visible_participants(
    participants: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Drop the placeholder participant from a participant list."""
    return [p for p in participants if p.get("inviteState") != INVITE_PLACEHOLDER]
