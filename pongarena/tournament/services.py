"""Service layer for tournament business logic."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, cast

from firebase_admin import firestore

from pongarena.core.constants import (
    DEFAULT_PAGE_LIMIT,
    FIRESTORE_BATCH_LIMIT,
    INVITE_AI,
    INVITE_INVITED,
    INVITE_LOCAL,
    INVITE_PLACEHOLDER,
    MATCH_FINISHED,
    MATCH_PENDING,
    MATCHES_COLLECTION,
    MAX_PAGE_LIMIT,
    MAX_PARTICIPANTS,
    MIN_BRACKET_PARTICIPANTS,
    PARTICIPANTS_COLLECTION,
    PLACEHOLDER_ALIAS,
    SINGLE_ELIMINATION,
    SLOT_A,
    SLOT_B,
    SUPPORTED_BRACKET_TYPES,
    TOURNAMENT_COMPLETED,
    TOURNAMENT_DRAFT,
    TOURNAMENTS_COLLECTION,
    USERS_COLLECTION,
)
from pongarena.errors import (
    AlreadyFinishedError,
    ConstructionError,
    CreatorNotFoundError,
    InvalidWinnerError,
    MatchNotFoundError,
    MatchNotReadyError,
    ScoresRequiredError,
    TournamentNotFoundError,
    ValidationError,
)

from .bracket import BracketPlan, build_bracket, unique_alias
from .standings import calculate_standings
from .utils import (
    fetch_tournament_matches,
    fetch_tournament_participants,
    serialize_match,
    serialize_participant,
    serialize_tournament_summary,
    visible_participants,
)

if TYPE_CHECKING:
    from google.cloud.firestore_v1.batch import WriteBatch
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction

    from .models import StandingEntry, Tournament

logger = logging.getLogger(__name__)

SLOT_FIELDS = {SLOT_A: "playerAId", SLOT_B: "playerBId"}


@dataclass
class ResultOutcome:
    """What a successful result submission changed."""

    match_id: str
    tournament_id: str
    winner_id: str
    score_a: int
    score_b: int
    next_match_id: Optional[str] = None
    next_slot: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.next_match_id is None


class TournamentService:
    """Handles business logic and data access for tournaments."""

    @staticmethod
    def _order_by_seed(participants: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Explicit seeds first (ascending), then unseeded in entry order."""
        indexed = list(enumerate(participants))
        indexed.sort(
            key=lambda item: (
                item[1].get("seed") is None,
                item[1].get("seed") or 0,
                item[0],
            )
        )
        return [p for _, p in indexed]

    @staticmethod
    def _check_participants(
        participants: list[dict[str, Any]], max_participants: int
    ) -> None:
        """Reject lists the bracket cannot be built from."""
        if len(participants) > max_participants:
            raise ValidationError(
                f"A tournament accepts at most {max_participants} participants."
            )

        aliases = [p["alias"] for p in participants]
        duplicates = sorted({a for a in aliases if aliases.count(a) > 1})
        if duplicates:
            raise ValidationError(
                "Participant aliases must be unique.",
                details={"participants": [f"Duplicate alias: {a}" for a in duplicates]},
            )

        user_ids = [p["user_id"] for p in participants if p.get("user_id")]
        if len(user_ids) != len(set(user_ids)):
            raise ValidationError("A user can only be entered once per tournament.")

    @staticmethod
    def _apply_plan(
        db: Client,
        batch: WriteBatch,
        tournament_id: str,
        plan: BracketPlan,
        first_entry_order: int,
    ) -> None:
        """Queue the builder's commands on a write batch, allocating ids."""
        participant_ids: dict[str, str] = {}
        for offset, command in enumerate(plan.participants):
            ref = db.collection(PARTICIPANTS_COLLECTION).document()
            participant_ids[command.key] = ref.id
            batch.set(
                ref,
                {
                    "tournamentId": tournament_id,
                    "alias": command.alias,
                    "userId": None,
                    "inviteState": command.invite_state,
                    "seed": None,
                    "entryOrder": first_entry_order + offset,
                    "joinedAt": firestore.SERVER_TIMESTAMP,
                },
            )

        match_refs = {
            m.key: db.collection(MATCHES_COLLECTION).document() for m in plan.matches
        }
        for m in plan.matches:
            batch.set(
                match_refs[m.key],
                {
                    "tournamentId": tournament_id,
                    "round": m.round,
                    "position": m.position,
                    "playerAId": participant_ids.get(m.player_a, m.player_a),
                    "playerBId": participant_ids.get(m.player_b, m.player_b),
                    "status": MATCH_PENDING,
                    "scheduledAt": None,
                    "winnerId": None,
                    "scoreA": None,
                    "scoreB": None,
                    "feedsIntoMatchId": (
                        match_refs[m.feeds_into].id if m.feeds_into else None
                    ),
                    "feedsIntoSlot": m.feeds_into_slot,
                    "createdAt": firestore.SERVER_TIMESTAMP,
                },
            )

    @staticmethod
    def create_tournament(
        data: dict[str, Any],
        db: Client | None = None,
        max_participants: int = MAX_PARTICIPANTS,
    ) -> dict[str, Any]:
        """Create a tournament with its full bracket and return its summary.

        ``data`` holds ``name``, ``owner_id``, ``bracket_type``, ``starts_at``
        and ``participants`` (dicts with ``alias``, ``user_id``,
        ``invite_state`` and ``seed``).  The input order of participants is
        their seed order unless explicit seeds are given.  ``max_participants``
        is the configured cap on the field size.
        """
        if db is None:
            db = firestore.client()

        bracket_type = data.get("bracket_type") or SINGLE_ELIMINATION
        if bracket_type not in SUPPORTED_BRACKET_TYPES:
            raise ValidationError(f"Bracket type {bracket_type} is not supported.")

        owner_id = data["owner_id"]
        owner_ref = db.collection(USERS_COLLECTION).document(owner_id)
        owner_doc = cast(Any, owner_ref.get())
        if not owner_doc.exists:
            raise CreatorNotFoundError()

        participants = TournamentService._order_by_seed(data.get("participants") or [])
        TournamentService._check_participants(participants, max_participants)

        batch = db.batch()
        tournament_ref = db.collection(TOURNAMENTS_COLLECTION).document()
        tournament_id = tournament_ref.id

        seeded_ids = []
        aliases = set()
        for entry_order, p in enumerate(participants):
            ref = db.collection(PARTICIPANTS_COLLECTION).document()
            seeded_ids.append(ref.id)
            aliases.add(p["alias"])
            batch.set(
                ref,
                {
                    "tournamentId": tournament_id,
                    "alias": p["alias"],
                    "userId": p.get("user_id"),
                    "inviteState": p.get("invite_state")
                    or (INVITE_INVITED if p.get("user_id") else INVITE_LOCAL),
                    "seed": p.get("seed"),
                    "entryOrder": entry_order,
                    "joinedAt": firestore.SERVER_TIMESTAMP,
                },
            )

        placeholder_id = None
        plan = BracketPlan()
        if len(seeded_ids) >= MIN_BRACKET_PARTICIPANTS:
            placeholder_ref = db.collection(PARTICIPANTS_COLLECTION).document()
            placeholder_id = placeholder_ref.id
            placeholder_alias = unique_alias(PLACEHOLDER_ALIAS, aliases)
            aliases.add(placeholder_alias)
            batch.set(
                placeholder_ref,
                {
                    "tournamentId": tournament_id,
                    "alias": placeholder_alias,
                    "userId": None,
                    "inviteState": INVITE_PLACEHOLDER,
                    "seed": None,
                    "entryOrder": len(seeded_ids),
                    "joinedAt": firestore.SERVER_TIMESTAMP,
                },
            )
            try:
                plan = build_bracket(seeded_ids, placeholder_id, reserved_aliases=aliases)
            except ConstructionError as e:
                logger.error(
                    f"Bracket construction failed for {len(seeded_ids)} participants: "
                    f"{e.message}"
                )
                raise
            TournamentService._apply_plan(
                db, batch, tournament_id, plan, len(seeded_ids) + 1
            )

        write_count = len(seeded_ids) + len(plan.commands()) + 2
        if write_count > FIRESTORE_BATCH_LIMIT:
            raise ConstructionError(
                f"Bracket needs {write_count} writes, above the batch limit."
            )

        tournament_payload = {
            "name": data["name"],
            "ownerId": owner_id,
            "ownerRef": owner_ref,
            "bracketType": bracket_type,
            "status": TOURNAMENT_DRAFT,
            "startsAt": data.get("starts_at"),
            "placeholderId": placeholder_id,
            "participantCount": len(seeded_ids),
            "totalRounds": plan.total_rounds,
            "winnerId": None,
            "winnerParticipantId": None,
            "createdAt": firestore.SERVER_TIMESTAMP,
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }
        batch.set(tournament_ref, tournament_payload)
        batch.commit()

        logger.info(
            f"Created tournament {tournament_id} with {len(seeded_ids)} participants, "
            f"{len(plan.participants)} AI substitutes and {plan.total_rounds} rounds."
        )
        return serialize_tournament_summary(
            {**tournament_payload, "id": tournament_id}, owner_doc.to_dict()
        )

    @staticmethod
    def list_tournaments(
        status: str | None = None,
        owner_id: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
        db: Client | None = None,
    ) -> dict[str, Any]:
        """List tournaments, newest first, with optional filters and paging."""
        if db is None:
            db = firestore.client()
        limit = min(limit, MAX_PAGE_LIMIT)
        page = max(page, 1)

        query: Any = db.collection(TOURNAMENTS_COLLECTION)
        if status:
            query = query.where(filter=firestore.FieldFilter("status", "==", status))
        if owner_id:
            query = query.where(filter=firestore.FieldFilter("ownerId", "==", owner_id))

        total = query.count().get()[0][0].value
        page_query = (
            query.order_by("createdAt", direction=firestore.Query.DESCENDING)
            .offset((page - 1) * limit)
            .limit(limit)
        )

        owners: dict[str, Any] = {}
        results = []
        for doc in page_query.stream():
            t = doc.to_dict()
            if not doc.exists or not t:
                continue
            t["id"] = doc.id
            t_owner = t.get("ownerId")
            if t_owner not in owners:
                owner_doc = db.collection(USERS_COLLECTION).document(t_owner).get()
                owners[t_owner] = owner_doc.to_dict() if owner_doc.exists else None
            results.append(serialize_tournament_summary(t, owners[t_owner]))

        return {
            "data": results,
            "meta": {"page": page, "limit": limit, "total": total},
        }

    @staticmethod
    def _get_tournament_doc(db: Client, tournament_id: str) -> Tournament:
        doc = cast(Any, db.collection(TOURNAMENTS_COLLECTION).document(tournament_id).get())
        data = doc.to_dict() if doc.exists else None
        if not data:
            raise TournamentNotFoundError()
        data["id"] = doc.id
        return cast("Tournament", data)

    @staticmethod
    def get_tournament(tournament_id: str, db: Client | None = None) -> dict[str, Any]:
        """Return a tournament with its ordered participants and bracket."""
        if db is None:
            db = firestore.client()
        tournament = TournamentService._get_tournament_doc(db, tournament_id)

        owner_doc = (
            db.collection(USERS_COLLECTION).document(tournament.get("ownerId")).get()
        )
        participants = fetch_tournament_participants(db, tournament_id)
        matches = fetch_tournament_matches(db, tournament_id)
        participants_by_id = {p["id"]: p for p in participants}

        detail = serialize_tournament_summary(
            tournament, owner_doc.to_dict() if owner_doc.exists else None
        )
        detail.update({
            "totalRounds": tournament.get("totalRounds", 0),
            "placeholderId": tournament.get("placeholderId"),
            "winnerParticipantId": tournament.get("winnerParticipantId"),
            "participants": [
                serialize_participant(p) for p in visible_participants(participants)
            ],
            "matches": [serialize_match(m, participants_by_id) for m in matches],
        })
        return detail

    @staticmethod
    def get_standings(
        tournament_id: str, db: Client | None = None
    ) -> list[StandingEntry]:
        """Compute the current ranking of a tournament."""
        if db is None:
            db = firestore.client()
        TournamentService._get_tournament_doc(db, tournament_id)
        participants = fetch_tournament_participants(db, tournament_id)
        matches = fetch_tournament_matches(db, tournament_id)
        return calculate_standings(participants, matches)

    @staticmethod
    def _record_result(
        transaction: Transaction,
        db: Client,
        match_ref: DocumentReference,
        winner_id: str,
        score_a: int | None,
        score_b: int | None,
    ) -> ResultOutcome:
        """Validate a result, finish the match and advance the winner.

        All reads happen before the writes, as Firestore transactions require.
        """
        snapshot = cast(Any, match_ref.get(transaction=transaction))
        match = snapshot.to_dict() if snapshot.exists else None
        if not match:
            raise MatchNotFoundError()

        if match.get("status") == MATCH_FINISHED:
            raise AlreadyFinishedError()

        tournament_id = match.get("tournamentId")
        t_snapshot = cast(
            Any,
            db.collection(TOURNAMENTS_COLLECTION)
            .document(tournament_id)
            .get(transaction=transaction),
        )
        t_data = (t_snapshot.to_dict() if t_snapshot.exists else None) or {}
        placeholder_id = t_data.get("placeholderId")

        slots = (match.get("playerAId"), match.get("playerBId"))
        if not winner_id or winner_id not in slots or winner_id == placeholder_id:
            raise InvalidWinnerError()
        if None in slots or placeholder_id in slots:
            raise MatchNotReadyError()

        if score_a is None or score_b is None:
            raise ScoresRequiredError()
        if score_a < 0 or score_b < 0:
            raise ValidationError("Scores cannot be negative.")

        next_match_id = match.get("feedsIntoMatchId")
        next_slot = match.get("feedsIntoSlot")
        next_ref = None
        if next_match_id:
            if next_slot not in SLOT_FIELDS:
                raise ConstructionError(
                    f"Match {match_ref.id} feeds an unknown slot {next_slot!r}."
                )
            next_ref = db.collection(MATCHES_COLLECTION).document(next_match_id)
            next_snapshot = cast(Any, next_ref.get(transaction=transaction))
            next_match = next_snapshot.to_dict() if next_snapshot.exists else None
            if not next_match:
                raise ConstructionError(
                    f"Match {match_ref.id} feeds missing match {next_match_id}."
                )
            if next_match.get(SLOT_FIELDS[next_slot]) != placeholder_id:
                raise ConstructionError(
                    f"Slot {next_slot} of match {next_match_id} is already decided."
                )

        transaction.update(
            match_ref,
            {
                "status": MATCH_FINISHED,
                "winnerId": winner_id,
                "scoreA": score_a,
                "scoreB": score_b,
                "finishedAt": firestore.SERVER_TIMESTAMP,
            },
        )
        # Only the fed slot is written; the sibling feeder owns the other one.
        if next_ref is not None:
            transaction.update(next_ref, {SLOT_FIELDS[next_slot]: winner_id})

        return ResultOutcome(
            match_id=match_ref.id,
            tournament_id=tournament_id,
            winner_id=winner_id,
            score_a=score_a,
            score_b=score_b,
            next_match_id=next_match_id,
            next_slot=next_slot if next_match_id else None,
        )

    @staticmethod
    def submit_result(
        match_id: str,
        winner_id: str,
        score_a: int | None = None,
        score_b: int | None = None,
        db: Client | None = None,
    ) -> ResultOutcome:
        """Record the final score of a match and propagate its winner."""
        if db is None:
            db = firestore.client()
        match_ref = db.collection(MATCHES_COLLECTION).document(match_id)

        @firestore.transactional
        def record_in_transaction(transaction: Transaction) -> ResultOutcome:
            return TournamentService._record_result(
                transaction, db, match_ref, winner_id, score_a, score_b
            )

        outcome = record_in_transaction(db.transaction())
        logger.info(
            f"Match {match_id} finished {score_a}-{score_b}, winner {winner_id}"
            + (
                f", advanced to slot {outcome.next_slot} of {outcome.next_match_id}."
                if not outcome.is_final
                else ", final of the tournament."
            )
        )
        return outcome

    @staticmethod
    def complete_tournament(
        tournament_id: str, winner_participant_id: str, db: Client | None = None
    ) -> None:
        """Mark a tournament completed and record its champion."""
        if db is None:
            db = firestore.client()
        ref = db.collection(TOURNAMENTS_COLLECTION).document(tournament_id)
        TournamentService._get_tournament_doc(db, tournament_id)

        winner_doc = cast(
            Any,
            db.collection(PARTICIPANTS_COLLECTION).document(winner_participant_id).get(),
        )
        winner_data = (winner_doc.to_dict() if winner_doc.exists else None) or {}
        if winner_data.get("inviteState") == INVITE_AI:
            logger.info(f"Tournament {tournament_id} was won by an AI substitute.")

        ref.update({
            "status": TOURNAMENT_COMPLETED,
            "winnerParticipantId": winner_participant_id,
            "winnerId": winner_data.get("userId"),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        })
        logger.info(f"Tournament {tournament_id} completed.")
