"""
Single-elimination bracket construction.

Rules:
- The input order of participants is the seed order (first = seed 1).
- The field is padded with byes up to the next power of two.  Standard
  bracket seeding places the byes opposite the top seeds, so seed 1 meets
  the first bye.
- A bye never advances anyone automatically.  Each one becomes a freshly
  created AI participant, so every round-1 slot is a real game.
- Rounds 2+ are created up front with both slots pointing at the
  tournament's placeholder participant.  Every non-final match knows which
  match and slot its winner feeds.

Nothing here touches Firestore.  The builder returns a ``BracketPlan`` of
construction commands that the service layer applies in one batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from pongarena.core.constants import (
    AI_ALIAS_TEMPLATE,
    INVITE_AI,
    MIN_BRACKET_PARTICIPANTS,
    SLOT_A,
    SLOT_B,
)
from pongarena.errors import ConstructionError


@dataclass
class CreateParticipant:
    """Command: create a synthetic participant for a bye."""

    key: str
    alias: str
    invite_state: str = INVITE_AI


@dataclass
class CreateMatch:
    """Command: create a PENDING match.

    ``player_a``/``player_b`` hold either an existing participant id or the
    key of a ``CreateParticipant`` command from the same plan.
    """

    key: str
    round: int
    position: int
    player_a: str
    player_b: str
    feeds_into: Optional[str] = None
    feeds_into_slot: Optional[str] = None


@dataclass
class BracketPlan:
    """Ordered construction commands for one bracket."""

    size: int = 0
    participants: list[CreateParticipant] = field(default_factory=list)
    matches: list[CreateMatch] = field(default_factory=list)

    @property
    def total_rounds(self) -> int:
        return max((m.round for m in self.matches), default=0)

    @property
    def participant_keys(self) -> set[str]:
        return {p.key for p in self.participants}

    def rounds(self) -> dict[int, list[CreateMatch]]:
        """Group match commands by round, ordered by position."""
        grouped: dict[int, list[CreateMatch]] = {}
        for match in self.matches:
            grouped.setdefault(match.round, []).append(match)
        for matches in grouped.values():
            matches.sort(key=lambda m: m.position)
        return dict(sorted(grouped.items()))

    def commands(self) -> list[CreateParticipant | CreateMatch]:
        """All commands, participants first so matches can reference them."""
        return [*self.participants, *self.matches]


def next_power_of_two(n: int) -> int:
    """Return the smallest power of two that is >= n."""
    if n < 1:
        raise ValueError("n must be a positive integer.")
    size = 1
    while size < n:
        size *= 2
    return size


def seed_positions(size: int) -> list[int]:
    """Return 0-based seed indexes in standard bracket order.

    Consecutive pairs are first-round opponents, e.g. for 8:
    ``[0, 7, 3, 4, 1, 6, 2, 5]`` (1v8, 4v5, 2v7, 3v6).
    """
    if size != next_power_of_two(size):
        raise ValueError(f"Bracket size {size} is not a power of two.")
    seeds = [0]
    current = 1
    while current < size:
        seeds = [s for seed in seeds for s in (seed, current * 2 - 1 - seed)]
        current *= 2
    return seeds


def pad_with_byes(participants: list[str]) -> list[Optional[str]]:
    """Pad to a power of two with ``None`` byes and reorder by seed position."""
    if not participants:
        return []
    size = next_power_of_two(len(participants))
    padded: list[Optional[str]] = list(participants) + [None] * (
        size - len(participants)
    )
    return [padded[index] for index in seed_positions(size)]


def unique_alias(base: str, taken: Iterable[str]) -> str:
    """Return ``base``, suffixed with a counter if it is already taken."""
    taken = set(taken)
    if base not in taken:
        return base
    counter = 2
    while f"{base} ({counter})" in taken:
        counter += 1
    return f"{base} ({counter})"


def match_key(round_number: int, position: int) -> str:
    return f"r{round_number}m{position}"


def build_bracket(
    participant_ids: list[str],
    placeholder_id: str,
    reserved_aliases: Iterable[str] = (),
) -> BracketPlan:
    """Build every round of a seeded single-elimination bracket.

    Args:
        participant_ids: Real participant ids in seed order.
        placeholder_id: Id of the tournament's placeholder participant.
        reserved_aliases: Aliases already used in the tournament, so the
            generated AI aliases stay unique.

    Returns:
        An empty plan for fewer than two participants, otherwise the AI
        participants and matches for every round.
    """
    if len(participant_ids) < MIN_BRACKET_PARTICIPANTS:
        return BracketPlan()
    if len(set(participant_ids)) != len(participant_ids):
        raise ConstructionError("A participant cannot be seeded twice.")
    if placeholder_id in participant_ids:
        raise ConstructionError("The placeholder cannot be seeded.")

    padded = pad_with_byes(list(participant_ids))
    plan = BracketPlan(size=len(padded))
    taken_aliases = set(reserved_aliases)

    def add_ai_participant() -> str:
        number = len(plan.participants) + 1
        alias = unique_alias(AI_ALIAS_TEMPLATE.format(number=number), taken_aliases)
        taken_aliases.add(alias)
        command = CreateParticipant(key=f"ai-{number}", alias=alias)
        plan.participants.append(command)
        return command.key

    # Round 1: real games, byes turned into AI opponents
    for position in range(plan.size // 2):
        player_a = padded[2 * position]
        player_b = padded[2 * position + 1]
        if player_a is None and player_b is None:
            raise ConstructionError(
                f"Round 1 match {position} would have two byes "
                f"({len(participant_ids)} participants, size {plan.size})."
            )
        if player_a is None:
            player_a = add_ai_participant()
        elif player_b is None:
            player_b = add_ai_participant()
        plan.matches.append(
            CreateMatch(
                key=match_key(1, position),
                round=1,
                position=position,
                player_a=player_a,
                player_b=player_b,
            )
        )

    # Later rounds: halve down to and including the single final match
    matches_in_round = plan.size // 2
    round_number = 1
    while matches_in_round > 1:
        matches_in_round //= 2
        round_number += 1
        for position in range(matches_in_round):
            plan.matches.append(
                CreateMatch(
                    key=match_key(round_number, position),
                    round=round_number,
                    position=position,
                    player_a=placeholder_id,
                    player_b=placeholder_id,
                )
            )

    final_round = plan.total_rounds
    for match in plan.matches:
        if match.round < final_round:
            match.feeds_into = match_key(match.round + 1, match.position // 2)
            match.feeds_into_slot = SLOT_A if match.position % 2 == 0 else SLOT_B

    check_bracket_structure(plan)
    return plan


def check_bracket_structure(plan: BracketPlan) -> None:
    """Raise ConstructionError unless each round halves down to one final."""
    rounds = plan.rounds()
    if not rounds:
        return
    if list(rounds) != list(range(1, len(rounds) + 1)):
        raise ConstructionError(f"Rounds are not contiguous: {list(rounds)}.")
    if len(rounds[1]) * 2 != plan.size:
        raise ConstructionError(
            f"Round 1 has {len(rounds[1])} matches for a bracket of {plan.size}."
        )
    for round_number in range(2, len(rounds) + 1):
        expected = len(rounds[round_number - 1]) // 2
        if len(rounds[round_number]) != expected:
            raise ConstructionError(
                f"Round {round_number} has {len(rounds[round_number])} matches, "
                f"expected {expected}."
            )
    if len(rounds[len(rounds)]) != 1:
        raise ConstructionError("The final round must contain exactly one match.")
