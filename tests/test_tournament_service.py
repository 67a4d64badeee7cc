"""Tests for the tournament service against an in-memory Firestore."""

from __future__ import annotations

import datetime
import unittest
from typing import Any
from unittest.mock import patch

from pongarena.core.constants import (
    INVITE_AI,
    INVITE_INVITED,
    INVITE_LOCAL,
    INVITE_PLACEHOLDER,
    MATCH_FINISHED,
    MATCH_PENDING,
    SLOT_A,
    SLOT_B,
    TOURNAMENT_COMPLETED,
    TOURNAMENT_DRAFT,
)
from pongarena.errors import (
    AlreadyFinishedError,
    CreatorNotFoundError,
    InvalidWinnerError,
    MatchNotFoundError,
    MatchNotReadyError,
    ScoresRequiredError,
    TournamentNotFoundError,
    ValidationError,
)
from pongarena.tournament.services import TournamentService
from pongarena.tournament.utils import (
    fetch_tournament_matches,
    fetch_tournament_participants,
)
from tests.mock_utils import make_firestore_module, make_mock_db


def _entries(*aliases: str) -> list[dict[str, Any]]:
    return [{"alias": alias} for alias in aliases]


class TournamentServiceTestCase(unittest.TestCase):
    """Test case for TournamentService."""

    def setUp(self) -> None:
        """Set up an in-memory Firestore with one registered owner."""
        self.db = make_mock_db()
        self.mock_firestore = make_firestore_module(self.db)
        for target in (
            "pongarena.tournament.services.firestore",
            "pongarena.tournament.utils.firestore",
        ):
            patcher = patch(target, self.mock_firestore)
            patcher.start()
            self.addCleanup(patcher.stop)

        self.db.collection("users").document("owner1").set(
            {"displayName": "Olive", "username": "olive"}
        )
        self.db.collection("users").document("owner2").set({"username": "otto"})

    def _create(self, participants: list[dict[str, Any]], **overrides: Any) -> dict:
        data = {
            "name": "Friday Cup",
            "owner_id": "owner1",
            "bracket_type": "SINGLE_ELIMINATION",
            "starts_at": None,
            "participants": participants,
        }
        data.update(overrides)
        return TournamentService.create_tournament(data)

    def _ids_by_alias(self, tournament_id: str) -> dict[str, str]:
        return {
            p["alias"]: p["id"]
            for p in fetch_tournament_participants(self.db, tournament_id)
        }

    def _match_at(self, tournament_id: str, round_number: int, position: int) -> dict:
        for match in fetch_tournament_matches(self.db, tournament_id):
            if match["round"] == round_number and match["position"] == position:
                return match
        raise AssertionError(f"No match at round {round_number} position {position}")

    def _match_doc(self, match_id: str) -> dict:
        return self.db.collection("matches").document(match_id).get().to_dict()

    def test_create_four_player_bracket(self) -> None:
        """Test creating a tournament with a full power-of-two field."""
        summary = self._create(_entries("A", "B", "C", "D"))

        self.assertEqual(summary["name"], "Friday Cup")
        self.assertEqual(summary["status"], TOURNAMENT_DRAFT)
        self.assertEqual(summary["participantCount"], 4)
        self.assertEqual(summary["owner"], {"id": "owner1", "displayName": "Olive"})

        tid = summary["id"]
        ids = self._ids_by_alias(tid)
        matches = fetch_tournament_matches(self.db, tid)
        self.assertEqual(len(matches), 3)

        r1 = [m for m in matches if m["round"] == 1]
        self.assertEqual(
            [(m["playerAId"], m["playerBId"]) for m in r1],
            [(ids["A"], ids["D"]), (ids["B"], ids["C"])],
        )

        tournament = self.db.collection("tournaments").document(tid).get().to_dict()
        final = self._match_at(tid, 2, 0)
        self.assertEqual(final["playerAId"], tournament["placeholderId"])
        self.assertEqual(final["playerBId"], tournament["placeholderId"])
        self.assertEqual(final["status"], MATCH_PENDING)
        self.assertIsNone(final["feedsIntoMatchId"])
        self.assertEqual(tournament["totalRounds"], 2)
        self.assertEqual(
            [(m["feedsIntoMatchId"], m["feedsIntoSlot"]) for m in r1],
            [(final["id"], SLOT_A), (final["id"], SLOT_B)],
        )

    def test_create_substitutes_ai_for_byes(self) -> None:
        """Test that a five-player field gets three AI opponents for the top seeds."""
        summary = self._create(_entries("A", "B", "C", "D", "E"))
        tid = summary["id"]

        participants = fetch_tournament_participants(self.db, tid)
        ai = [p for p in participants if p["inviteState"] == INVITE_AI]
        placeholder = [p for p in participants if p["inviteState"] == INVITE_PLACEHOLDER]
        self.assertEqual(sorted(p["alias"] for p in ai), ["AI #1", "AI #2", "AI #3"])
        self.assertEqual(len(placeholder), 1)
        self.assertEqual(placeholder[0]["alias"], "TBD")
        entry_orders = {p["alias"]: p["entryOrder"] for p in participants}
        self.assertEqual(
            [entry_orders[a] for a in ("A", "B", "C", "D", "E", "TBD")],
            [0, 1, 2, 3, 4, 5],
        )
        self.assertTrue(all(entry_orders[p["alias"]] > 5 for p in ai))

        ids = self._ids_by_alias(tid)
        ai_ids = {p["id"] for p in ai}
        matches = fetch_tournament_matches(self.db, tid)
        r1 = [m for m in matches if m["round"] == 1]
        self.assertEqual(len(r1), 4)
        faced_ai = set()
        for m in r1:
            slots = {m["playerAId"], m["playerBId"]}
            self.assertNotIn(placeholder[0]["id"], slots)
            if slots & ai_ids:
                faced_ai |= slots - ai_ids
        self.assertEqual(faced_ai, {ids["A"], ids["B"], ids["C"]})
        self.assertEqual(len(matches), 7)

    def test_create_with_one_participant(self) -> None:
        """Test that a lone entrant produces a tournament without a bracket."""
        summary = self._create(_entries("A"))
        tid = summary["id"]

        self.assertEqual(summary["participantCount"], 1)
        self.assertEqual(fetch_tournament_matches(self.db, tid), [])
        detail = TournamentService.get_tournament(tid)
        self.assertIsNone(detail["placeholderId"])
        self.assertEqual(detail["totalRounds"], 0)
        self.assertEqual([p["alias"] for p in detail["participants"]], ["A"])

    def test_create_defaults_invite_state(self) -> None:
        """Test that linked entrants are INVITED and the rest LOCAL."""
        summary = self._create(
            [{"alias": "A", "user_id": "u1"}, {"alias": "B"}]
        )
        states = {
            p["alias"]: p["inviteState"]
            for p in fetch_tournament_participants(self.db, summary["id"])
        }
        self.assertEqual(states["A"], INVITE_INVITED)
        self.assertEqual(states["B"], INVITE_LOCAL)

    def test_create_with_unknown_owner(self) -> None:
        """Test that the owner must be a registered user."""
        with self.assertRaises(CreatorNotFoundError):
            self._create(_entries("A", "B"), owner_id="ghost")
        self.assertEqual(list(self.db.collection("tournaments").stream()), [])

    def test_create_rejects_duplicate_alias(self) -> None:
        """Test that aliases are unique within a tournament."""
        with self.assertRaises(ValidationError) as ctx:
            self._create(_entries("A", "B", "A"))
        self.assertIn("participants", ctx.exception.details)

    def test_create_rejects_double_elimination(self) -> None:
        """Test that only single elimination brackets are generated."""
        with self.assertRaises(ValidationError):
            self._create(_entries("A", "B"), bracket_type="DOUBLE_ELIMINATION")

    def test_create_rejects_too_many_participants(self) -> None:
        """Test the participant cap."""
        with self.assertRaises(ValidationError):
            self._create(_entries(*[f"P{i}" for i in range(65)]))

    def test_create_uses_configured_participant_cap(self) -> None:
        """Test that the cap passed in by the caller replaces the default."""
        data = {
            "name": "Small Cup",
            "owner_id": "owner1",
            "participants": _entries("A", "B", "C"),
        }
        with self.assertRaises(ValidationError):
            TournamentService.create_tournament(data, max_participants=2)

        data["participants"] = _entries(*[f"P{i}" for i in range(70)])
        summary = TournamentService.create_tournament(data, max_participants=100)
        self.assertEqual(summary["participantCount"], 70)
        self.assertEqual(
            len(fetch_tournament_matches(self.db, summary["id"])), 127
        )

    def test_create_rejects_shared_linked_account(self) -> None:
        """Test that one user account cannot be entered twice."""
        with self.assertRaises(ValidationError):
            self._create(
                [
                    {"alias": "A", "user_id": "u1"},
                    {"alias": "B", "user_id": "u1"},
                ]
            )
        self.assertFalse(
            any(doc.exists for doc in self.db.collection("participants").stream())
        )

    def test_explicit_seeds_override_entry_order(self) -> None:
        """Test that explicit seeds decide the pairing and the listing order."""
        summary = self._create(
            [
                {"alias": "A", "seed": 2},
                {"alias": "B", "seed": 1},
                {"alias": "C"},
                {"alias": "D"},
            ]
        )
        tid = summary["id"]
        ids = self._ids_by_alias(tid)

        r1 = [m for m in fetch_tournament_matches(self.db, tid) if m["round"] == 1]
        self.assertEqual(
            [(m["playerAId"], m["playerBId"]) for m in r1],
            [(ids["B"], ids["D"]), (ids["A"], ids["C"])],
        )

        detail = TournamentService.get_tournament(tid)
        self.assertEqual(
            [p["alias"] for p in detail["participants"]], ["B", "A", "C", "D"]
        )

    def test_get_tournament_hides_placeholder(self) -> None:
        """Test the detail view lists real and AI entrants but not the placeholder."""
        summary = self._create(_entries("A", "B", "C"))
        detail = TournamentService.get_tournament(summary["id"])

        aliases = [p["alias"] for p in detail["participants"]]
        self.assertEqual(aliases, ["A", "B", "C", "AI #1"])
        self.assertEqual(len(detail["matches"]), 3)
        self.assertEqual(
            [(m["round"], m["position"]) for m in detail["matches"]],
            [(1, 0), (1, 1), (2, 0)],
        )
        final = detail["matches"][2]
        self.assertEqual(final["playerA"]["alias"], "TBD")
        self.assertEqual(final["playerA"]["inviteState"], INVITE_PLACEHOLDER)
        self.assertEqual(detail["owner"]["displayName"], "Olive")

    def test_get_unknown_tournament(self) -> None:
        """Test that an unknown id raises TournamentNotFoundError."""
        with self.assertRaises(TournamentNotFoundError):
            TournamentService.get_tournament("missing")
        with self.assertRaises(TournamentNotFoundError):
            TournamentService.get_standings("missing")

    def test_submit_result_advances_winner(self) -> None:
        """Test that the winner fills only its slot of the next match."""
        tid = self._create(_entries("A", "B", "C", "D"))["id"]
        ids = self._ids_by_alias(tid)
        tournament = self.db.collection("tournaments").document(tid).get().to_dict()
        placeholder_id = tournament["placeholderId"]
        first = self._match_at(tid, 1, 0)
        second = self._match_at(tid, 1, 1)
        final = self._match_at(tid, 2, 0)

        outcome = TournamentService.submit_result(first["id"], ids["A"], 11, 5)

        self.assertEqual(outcome.next_match_id, final["id"])
        self.assertEqual(outcome.next_slot, SLOT_A)
        self.assertEqual(outcome.tournament_id, tid)
        self.assertFalse(outcome.is_final)

        finished = self._match_doc(first["id"])
        self.assertEqual(finished["status"], MATCH_FINISHED)
        self.assertEqual(finished["winnerId"], ids["A"])
        self.assertEqual((finished["scoreA"], finished["scoreB"]), (11, 5))

        final_doc = self._match_doc(final["id"])
        self.assertEqual(final_doc["playerAId"], ids["A"])
        self.assertEqual(final_doc["playerBId"], placeholder_id)

        outcome = TournamentService.submit_result(second["id"], ids["C"], 9, 11)
        self.assertEqual(outcome.next_slot, SLOT_B)
        final_doc = self._match_doc(final["id"])
        self.assertEqual(
            (final_doc["playerAId"], final_doc["playerBId"]), (ids["A"], ids["C"])
        )

        outcome = TournamentService.submit_result(final["id"], ids["C"], 7, 11)
        self.assertTrue(outcome.is_final)
        self.assertIsNone(outcome.next_slot)

    def test_submit_result_against_ai(self) -> None:
        """Test that a match against an AI substitute is played normally."""
        tid = self._create(_entries("A", "B", "C"))["id"]
        ids = self._ids_by_alias(tid)
        first = self._match_at(tid, 1, 0)
        self.assertEqual(first["playerAId"], ids["A"])
        self.assertEqual(first["playerBId"], ids["AI #1"])

        outcome = TournamentService.submit_result(first["id"], ids["AI #1"], 3, 11)
        final = self._match_doc(outcome.next_match_id)
        self.assertEqual(final["playerAId"], ids["AI #1"])

    def test_submit_result_invalid_winner(self) -> None:
        """Test that a winner outside the match is rejected without writes."""
        tid = self._create(_entries("A", "B", "C", "D"))["id"]
        ids = self._ids_by_alias(tid)
        first = self._match_at(tid, 1, 0)

        with self.assertRaises(InvalidWinnerError):
            TournamentService.submit_result(first["id"], ids["B"], 11, 5)
        with self.assertRaises(InvalidWinnerError):
            TournamentService.submit_result(first["id"], "nobody", 11, 5)

        self.assertEqual(self._match_doc(first["id"])["status"], MATCH_PENDING)

    def test_submit_result_placeholder_winner(self) -> None:
        """Test that the placeholder can never be declared the winner."""
        tid = self._create(_entries("A", "B", "C", "D"))["id"]
        final = self._match_at(tid, 2, 0)

        with self.assertRaises(InvalidWinnerError):
            TournamentService.submit_result(final["id"], final["playerAId"], 11, 5)
        final_doc = self._match_doc(final["id"])
        self.assertEqual(final_doc["status"], MATCH_PENDING)
        self.assertIsNone(final_doc["winnerId"])

    def test_submit_result_match_not_ready(self) -> None:
        """Test that a match still waiting on a feeder cannot be finished."""
        tid = self._create(_entries("A", "B", "C", "D"))["id"]
        ids = self._ids_by_alias(tid)
        first = self._match_at(tid, 1, 0)
        final = self._match_at(tid, 2, 0)
        TournamentService.submit_result(first["id"], ids["A"], 11, 5)

        with self.assertRaises(MatchNotReadyError):
            TournamentService.submit_result(final["id"], ids["A"], 11, 5)

    def test_submit_result_requires_scores(self) -> None:
        """Test that both scores are needed to finish a match."""
        tid = self._create(_entries("A", "B"))["id"]
        ids = self._ids_by_alias(tid)
        final = self._match_at(tid, 1, 0)

        with self.assertRaises(ScoresRequiredError):
            TournamentService.submit_result(final["id"], ids["A"], 11, None)
        with self.assertRaises(ValidationError):
            TournamentService.submit_result(final["id"], ids["A"], 11, -1)
        self.assertEqual(self._match_doc(final["id"])["status"], MATCH_PENDING)

    def test_submit_result_already_finished(self) -> None:
        """Test that a second result for the same match is a conflict."""
        tid = self._create(_entries("A", "B", "C", "D"))["id"]
        ids = self._ids_by_alias(tid)
        first = self._match_at(tid, 1, 0)
        TournamentService.submit_result(first["id"], ids["A"], 11, 5)

        with self.assertRaises(AlreadyFinishedError):
            TournamentService.submit_result(first["id"], ids["D"], 5, 11)
        self.assertEqual(self._match_doc(first["id"])["winnerId"], ids["A"])

    def test_submit_result_unknown_match(self) -> None:
        """Test that an unknown match id raises MatchNotFoundError."""
        with self.assertRaises(MatchNotFoundError):
            TournamentService.submit_result("missing", "someone", 11, 5)

    def test_complete_tournament_records_champion(self) -> None:
        """Test completing a tournament with a linked champion."""
        tid = self._create(
            [{"alias": "A", "user_id": "u1"}, {"alias": "B"}]
        )["id"]
        ids = self._ids_by_alias(tid)
        final = self._match_at(tid, 1, 0)
        outcome = TournamentService.submit_result(final["id"], ids["A"], 11, 2)
        self.assertTrue(outcome.is_final)

        TournamentService.complete_tournament(tid, outcome.winner_id)

        tournament = self.db.collection("tournaments").document(tid).get().to_dict()
        self.assertEqual(tournament["status"], TOURNAMENT_COMPLETED)
        self.assertEqual(tournament["winnerParticipantId"], ids["A"])
        self.assertEqual(tournament["winnerId"], "u1")

    def test_standings_after_final(self) -> None:
        """Test the standings of a finished four-player bracket."""
        tid = self._create(_entries("A", "B", "C", "D"))["id"]
        ids = self._ids_by_alias(tid)
        TournamentService.submit_result(self._match_at(tid, 1, 0)["id"], ids["A"], 11, 9)
        TournamentService.submit_result(self._match_at(tid, 1, 1)["id"], ids["C"], 5, 11)
        TournamentService.submit_result(self._match_at(tid, 2, 0)["id"], ids["A"], 11, 7)

        standings = TournamentService.get_standings(tid)
        self.assertEqual(
            [s["alias"] for s in standings], ["A", "C", "D", "B"]
        )
        self.assertEqual([s["totalScore"] for s in standings], [22, 18, 9, 5])
        self.assertTrue(standings[0]["isWinner"])
        self.assertNotIn("TBD", [s["alias"] for s in standings])

    def test_list_tournaments_filters_and_pages(self) -> None:
        """Test listing with status and owner filters and paging."""
        first = self._create(_entries("A", "B"), name="First Cup")["id"]
        self._create(_entries("A", "B"), name="Second Cup")
        self._create(_entries("A", "B"), name="Third Cup", owner_id="owner2")

        everything = TournamentService.list_tournaments()
        self.assertEqual(everything["meta"], {"page": 1, "limit": 20, "total": 3})
        self.assertEqual(len(everything["data"]), 3)

        mine = TournamentService.list_tournaments(owner_id="owner2")
        self.assertEqual([t["name"] for t in mine["data"]], ["Third Cup"])
        self.assertEqual(mine["data"][0]["owner"]["displayName"], "otto")

        paged = TournamentService.list_tournaments(page=2, limit=2)
        self.assertEqual(len(paged["data"]), 1)
        self.assertEqual(paged["meta"]["total"], 3)

        ids = self._ids_by_alias(first)
        final = self._match_at(first, 1, 0)
        TournamentService.submit_result(final["id"], ids["A"], 11, 3)
        TournamentService.complete_tournament(first, ids["A"])

        completed = TournamentService.list_tournaments(status=TOURNAMENT_COMPLETED)
        self.assertEqual([t["id"] for t in completed["data"]], [first])
        drafts = TournamentService.list_tournaments(status=TOURNAMENT_DRAFT)
        self.assertEqual(drafts["meta"]["total"], 2)

    def test_list_tournaments_caps_limit(self) -> None:
        """Test that the page size never exceeds the maximum."""
        result = TournamentService.list_tournaments(limit=500)
        self.assertEqual(result["meta"]["limit"], 50)
        self.assertEqual(result["data"], [])
        self.assertEqual(result["meta"]["total"], 0)

    def test_list_tournaments_newest_first(self) -> None:
        """Test that pages follow createdAt, newest first, and total counts all."""
        for day in (3, 1, 4, 2):
            self.db.collection("tournaments").document(f"t{day}").set(
                {
                    "name": f"Cup {day}",
                    "ownerId": "owner1",
                    "status": TOURNAMENT_DRAFT,
                    "createdAt": datetime.datetime(2024, 5, day),
                }
            )

        first_page = TournamentService.list_tournaments(page=1, limit=3)
        self.assertEqual(
            [t["id"] for t in first_page["data"]], ["t4", "t3", "t2"]
        )
        self.assertEqual(first_page["meta"], {"page": 1, "limit": 3, "total": 4})

        second_page = TournamentService.list_tournaments(page=2, limit=3)
        self.assertEqual([t["id"] for t in second_page["data"]], ["t1"])
        self.assertEqual(second_page["meta"]["total"], 4)


if __name__ == "__main__":
    unittest.main()
