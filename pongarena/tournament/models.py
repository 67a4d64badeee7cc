"""Data models for the tournament blueprint."""

from __future__ import annotations

from typing import Any, Optional, TypedDict

from pongarena.core.types import FirestoreDocument


class Tournament(FirestoreDocument, total=False):
    """A tournament document in Firestore."""

    name: str
    status: str
    bracketType: str
    ownerId: str
    ownerRef: Any
    startsAt: Any
    placeholderId: Optional[str]
    participantCount: int
    totalRounds: int
    winnerId: Optional[str]
    winnerParticipantId: Optional[str]


class Participant(FirestoreDocument, total=False):
    """A bracket participant, real or synthetic (placeholder / AI)."""

    tournamentId: str
    alias: str
    userId: Optional[str]
    inviteState: str
    seed: Optional[int]
    entryOrder: int
    joinedAt: Any


class Match(FirestoreDocument, total=False):
    """A bracket match document in Firestore."""

    tournamentId: str
    round: int
    position: int
    playerAId: Optional[str]
    playerBId: Optional[str]
    status: str
    scheduledAt: Any
    winnerId: Optional[str]
    scoreA: Optional[int]
    scoreB: Optional[int]
    feedsIntoMatchId: Optional[str]
    feedsIntoSlot: Optional[str]
    finishedAt: Any


class PlayerSlot(TypedDict):
    """A match slot resolved for API responses."""

    participantId: str
    alias: str
    inviteState: str


class StandingEntry(TypedDict):
    """A row of the final tournament ranking."""

    participantId: str
    alias: str
    inviteState: str
    seed: Optional[int]
    place: int
    totalScore: int
    maxRoundReached: int
    isWinner: bool
