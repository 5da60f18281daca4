"""Tests for game flow and the round state machine."""
import re

import pytest

from conftest import stacked_deck
from teenpatti.admin.settlement import settle
from teenpatti.errors import (
    AlreadyCompleted,
    AlreadyJoined,
    FundsError,
    GameFull,
    GameInProgress,
    GameNotActive,
    InsufficientChips,
    InvalidAction,
    InvalidRange,
    MustCallOrRaise,
    NotEnoughPlayers,
    NotYourTurn,
    PlayerNotFound,
    ValidationError,
)
from teenpatti.game.game import Game, GameStatus, generate_game_id
from teenpatti.game.hand_eval import HandRank


def make_game(players: int = 2, chips: int = 1000, **kwargs) -> Game:
    """Create a waiting game with seated players u1..uN."""
    game = Game(game_id="TPTEST", created_by="u1", min_bet=10, max_bet=100, **kwargs)
    for i in range(1, players + 1):
        game.join(f"u{i}", f"player_{i}", chips)
    return game


def started_game(*hands: str, chips: int = 1000) -> Game:
    """Create and start a game dealing the given hands in seat order."""
    game = make_game(len(hands), chips=chips)
    game.start(deck=stacked_deck(*hands))
    return game


class TestGameId:

    def test_format(self):
        assert re.fullmatch(r"TP\d{13}[A-Z0-9]{5}", generate_game_id())

    def test_unique(self):
        assert generate_game_id() != generate_game_id()


class TestGameSetup:
    """Test game creation and seating."""

    def test_create_game(self):
        """Test a new game waits for players."""
        game = Game(game_id="g1", created_by="u1", min_bet=10, max_bet=100)

        assert game.status == GameStatus.WAITING
        assert game.players == []
        assert game.pot.get_total() == 0
        assert game.max_players == 6

    def test_bad_limits(self):
        with pytest.raises(ValidationError):
            Game(game_id="g1", created_by="u1", min_bet=10, max_bet=5)
        with pytest.raises(ValidationError):
            Game(game_id="g1", created_by="u1", min_bet=10, max_bet=100, max_players=7)

    def test_join_assigns_seats(self, game):
        """Test players take consecutive seats."""
        assert [p.position for p in game.players] == [0, 1]
        assert [h.action for h in game.history] == ["join", "join"]

    def test_join_twice(self, game):
        with pytest.raises(AlreadyJoined):
            game.join("u1", "alice", 1000)

    def test_join_full(self):
        game = make_game(2, max_players=2)
        with pytest.raises(GameFull):
            game.join("u3", "carol", 1000)

    def test_join_without_chips(self, game):
        with pytest.raises(InsufficientChips):
            game.join("u3", "carol", 5)
        assert len(game.players) == 2

    def test_join_after_start(self, game):
        game.start()
        with pytest.raises(GameInProgress):
            game.join("u3", "carol", 1000)

    def test_leave_while_waiting_reindexes(self):
        """Test leaving before the deal frees the seat."""
        game = make_game(3)
        game.leave("u1")

        assert [p.user_id for p in game.players] == ["u2", "u3"]
        assert [p.position for p in game.players] == [0, 1]
        assert game.status == GameStatus.WAITING

    def test_last_player_leaving_cancels(self):
        game = make_game(1)
        outcome = game.leave("u1")

        assert outcome.cancelled
        assert game.status == GameStatus.CANCELLED

    def test_creator_leaving_passes_host(self):
        """Test the next seated player may start once the creator leaves."""
        game = make_game(3)
        outcome = game.leave("u1")

        assert game.created_by == "u2"
        assert "now hosts" in outcome.note
        game.start()
        assert game.status == GameStatus.ACTIVE

    def test_guest_leaving_keeps_host(self):
        game = make_game(3)
        game.leave("u2")
        assert game.created_by == "u1"

    def test_leave_unknown(self, game):
        with pytest.raises(PlayerNotFound):
            game.leave("nobody")


class TestGameStart:
    """Test dealing a round."""

    def test_start_deals_three_each(self, game):
        game.start()

        assert game.status == GameStatus.ACTIVE
        assert all(len(p.hand) == 3 for p in game.players)
        assert all(p.hand_rank is not None for p in game.players)
        assert game.deck.remaining == 46
        assert game.current_player.user_id == "u1"
        assert game.started_at is not None
        assert game.history[-1].action == "start"

    def test_start_checks_current_balances(self, game):
        """Test a balance that dropped since joining blocks the deal."""
        with pytest.raises(InsufficientChips):
            game.start(balances={"u1": 1000, "u2": 5})

        assert game.status == GameStatus.WAITING
        assert game.players[1].chips == 1000

    def test_start_refreshes_chips(self, game):
        game.start(balances={"u1": 500, "u2": 700})
        assert [p.chips for p in game.players] == [500, 700]

    def test_start_with_dealer_index(self):
        game = Game(game_id="g1", created_by="u1", min_bet=10, max_bet=100, dealer_index=3)
        game.join("u1", "alice", 1000)
        game.join("u2", "bob", 1000)
        game.start()
        assert game.current_player.user_id == "u2"

    def test_start_with_one_player(self):
        game = make_game(1)
        with pytest.raises(NotEnoughPlayers):
            game.start()
        assert game.status == GameStatus.WAITING

    def test_start_twice(self, game):
        game.start()
        with pytest.raises(GameInProgress):
            game.start()

    def test_start_with_short_stack(self, game):
        game.players[1].chips = 5
        with pytest.raises(InsufficientChips):
            game.start()
        assert game.status == GameStatus.WAITING
        assert all(p.hand == [] for p in game.players)

    def test_deal_is_deterministic(self):
        """Test a fixed deck order always gives the same hands and scores."""
        first = started_game("Ah As Ad", "2h 3d 4c")
        second = started_game("Ah As Ad", "2h 3d 4c")

        assert [p.hand for p in first.players] == [p.hand for p in second.players]
        assert [p.hand_value for p in first.players] == [p.hand_value for p in second.players]
        assert first.players[0].hand_rank == HandRank.TRAIL
        assert first.players[1].hand_rank == HandRank.SEQUENCE


class TestActions:
    """Test player actions."""

    def test_blind_call_fold_scenario(self):
        """Test blind, call and fold leave the caller with the pot."""
        game = started_game("2h 7d 9c", "Ks Kd 3c")

        game.act("u1", "blind")
        assert game.pot.get_total() == 10
        assert game.current_bet == 10

        outcome = game.act("u2", "call")
        assert outcome.amount == 10
        assert outcome.balance_deltas == {"u2": -10}
        assert game.pot.get_total() == 20

        outcome = game.act("u1", "fold")
        assert outcome.round_ended
        assert outcome.settlement.winner_ids == ["u2"]
        assert outcome.settlement.pot == 20
        assert game.status == GameStatus.COMPLETED
        assert game.winner == "u2"

        result = settle(game, commission_rate=0.03)
        assert result.commission == 0
        assert result.winnings == 20
        assert result.payouts == {"u2": 20}

    def test_not_your_turn(self, game):
        game.start()
        before = game.to_dict()

        with pytest.raises(NotYourTurn):
            game.act("u2", "call")

        assert game.to_dict() == before

    def test_act_before_start(self, game):
        with pytest.raises(GameNotActive):
            game.act("u1", "check")

    def test_act_unknown_player(self, game):
        game.start()
        with pytest.raises(PlayerNotFound):
            game.act("nobody", "check")

    def test_unknown_action(self, game):
        game.start()
        with pytest.raises(InvalidAction):
            game.act("u1", "all_in")

    @pytest.mark.parametrize("amount", [5, 150])
    def test_raise_out_of_range_leaves_state(self, game, amount):
        """Test a bad raise changes nothing."""
        game.start()
        before = game.to_dict()

        with pytest.raises(InvalidRange):
            game.act("u1", "raise", amount)

        assert game.to_dict() == before

    def test_raise(self, game):
        game.start()
        game.act("u1", "raise", 30)

        assert game.current_bet == 30
        assert game.pot.get_total() == 30
        assert game.players[0].chips == 970
        assert game.current_player.user_id == "u2"

    def test_call_with_too_few_chips(self):
        """Test a short call is refused without moving chips or the turn."""
        game = make_game(0)
        game.join("u1", "alice", 1000)
        game.join("u2", "bob", 15)
        game.start()

        game.act("u1", "blind")
        game.act("u2", "blind")
        game.act("u1", "raise", 10)
        assert game.players[1].chips == 5

        before = game.to_dict()
        with pytest.raises(FundsError) as exc:
            game.act("u2", "call")

        assert str(exc.value) == "insufficient chips to call: need 10, have 5"
        assert game.to_dict() == before
        assert game.current_player.user_id == "u2"

    def test_check_when_behind(self, game):
        game.start()
        game.act("u1", "blind")
        with pytest.raises(MustCallOrRaise):
            game.act("u2", "check")

    def test_check_when_level(self, game):
        game.start()
        outcome = game.act("u1", "check")
        assert outcome.amount == 0
        assert game.current_player.user_id == "u2"

    def test_two_folds_of_three(self):
        """Test the last player standing wins without acting."""
        game = started_game("2h 7d 9c", "3s 8d Jc", "4h 5c 9s")

        game.act("u1", "fold")
        assert game.status == GameStatus.ACTIVE
        assert game.current_player.user_id == "u2"

        outcome = game.act("u2", "fold")

        assert outcome.round_ended
        assert game.status == GameStatus.COMPLETED
        assert game.winners == ["u3"]

    def test_turn_skips_folded(self):
        game = started_game("2h 7d 9c", "3s 8d Jc", "4h 5c 9s")
        game.act("u1", "check")
        game.act("u2", "fold")
        game.act("u3", "check")
        assert game.current_player.user_id == "u1"

    def test_history_after_each_action(self, game):
        game.start()
        game.act("u1", "blind")
        entry = game.history[-1]

        assert entry.action == "blind"
        assert entry.user_id == "u1"
        assert entry.amount == 10


class TestShowdown:
    """Test show and resolve."""

    def test_show_heads_up_resolves(self):
        """Test show with two players left compares their hands."""
        game = started_game("2h 7d 9c", "Ks Kd 3c")
        game.act("u1", "blind")

        outcome = game.act("u2", "show")

        assert outcome.round_ended
        assert game.status == GameStatus.COMPLETED
        assert game.winners == ["u2"]
        assert game.winning_hand_rank == HandRank.PAIR
        assert outcome.settlement.reason == "showdown"

    def test_show_with_three_only_reveals(self):
        game = started_game("2h 7d 9c", "Ks Kd 3c", "4h 5c 9s")
        outcome = game.act("u1", "show")

        assert not outcome.round_ended
        assert not game.players[0].is_blind
        assert game.current_player.user_id == "u2"

    def test_resolve_compares_contenders(self):
        game = started_game("2h 7d 9c", "Ks Kd 3c", "Qh Kh Ah")
        game.act("u1", "blind")
        game.act("u2", "call")

        request = game.resolve()

        assert request.winner_ids == ["u3"]
        assert request.pot == 20
        assert game.history[-1].action == "win"

    def test_resolve_tie_splits(self):
        game = started_game("Ah Kd 9c", "As Kc 9d")
        game.act("u1", "blind")
        game.act("u2", "call")

        request = game.resolve()

        assert request.winner_ids == ["u1", "u2"]
        assert game.history[-1].action == "split"

    def test_resolve_twice(self):
        """Test a second resolve is refused and pays nothing."""
        game = started_game("2h 7d 9c", "Ks Kd 3c")
        game.resolve()

        with pytest.raises(AlreadyCompleted):
            game.resolve()

    def test_resolve_waiting(self, game):
        with pytest.raises(GameNotActive):
            game.resolve()

    def test_resolve_named_winner_must_be_in(self):
        game = started_game("2h 7d 9c", "Ks Kd 3c", "4h 5c 9s")
        game.act("u1", "fold")
        with pytest.raises(ValidationError):
            game.resolve(["u1"])


class TestLeaveDuringRound:
    """Test leaving an active game."""

    def test_leave_folds_and_awards_pot(self, game):
        game.start()
        game.act("u1", "blind")

        outcome = game.leave("u2")

        assert outcome.action == "fold"
        assert "left the game" in outcome.note
        assert game.status == GameStatus.COMPLETED
        assert game.winners == ["u1"]
        assert outcome.settlement.pot == 10

    def test_leave_with_empty_pot_cancels(self, game):
        game.start()
        outcome = game.leave("u1")

        assert outcome.cancelled
        assert game.status == GameStatus.CANCELLED

    def test_leave_on_turn_advances(self):
        game = started_game("2h 7d 9c", "3s 8d Jc", "4h 5c 9s")
        game.leave("u1")

        assert game.status == GameStatus.ACTIVE
        assert game.current_player.user_id == "u2"
        assert len(game.players) == 3

    def test_leave_completed(self, game):
        game.start()
        game.resolve()
        with pytest.raises(GameNotActive):
            game.leave("u1")


class TestInvariants:
    """Test invariants hold through a round."""

    def test_pot_matches_bets_throughout(self):
        game = started_game("2h 7d 9c", "3s 8d Jc", "4h 5c 9s")
        moves = [
            ("u1", "blind", 0),
            ("u2", "call", 0),
            ("u3", "raise", 20),
            ("u1", "call", 0),
            ("u2", "fold", 0),
            ("u3", "check", 0),
        ]
        highest = 0
        for user_id, action, amount in moves:
            game.act(user_id, action, amount)
            game.check_invariants()
            assert game.pot.get_total() == sum(p.total_bet for p in game.players)
            assert game.current_bet >= highest
            highest = game.current_bet

        assert game.current_player.can_act


class TestViews:
    """Test redacted views and serialization."""

    def test_view_hides_other_hands(self):
        game = started_game("2h 7d 9c", "Ks Kd 3c")
        view = game.view_for("u1")

        mine, theirs = view["players"]
        assert mine["cards"][0] == {"suit": "hearts", "rank": "2"}
        assert theirs["cards"] == [{"hidden": True}] * 3
        assert "hand_rank" not in theirs
        assert view["valid_actions"]

    def test_view_shows_shown_hand(self):
        game = started_game("2h 7d 9c", "Ks Kd 3c", "4h 5c 9s")
        game.act("u1", "show")

        theirs = game.view_for("u2")["players"][0]
        assert theirs["cards"][0] == {"suit": "hearts", "rank": "2"}

    def test_view_reveals_winner_after_completion(self):
        game = started_game("2h 7d 9c", "Ks Kd 3c")
        game.resolve()

        winner = game.view_for("u1")["players"][1]
        assert winner["hand_rank"] == "pair"

    def test_spectator_sees_nothing(self):
        game = started_game("2h 7d 9c", "Ks Kd 3c")
        view = game.view_for(None)
        assert all(c == {"hidden": True} for p in view["players"] for c in p["cards"])
        assert view["valid_actions"] == []

    def test_round_trip(self):
        """Test serialization keeps deck order, bets and history."""
        game = started_game("2h 7d 9c", "Ks Kd 3c")
        game.act("u1", "blind")

        restored = Game.from_dict(game.to_dict())

        assert restored.to_dict() == game.to_dict()
        assert restored.deck.cards == game.deck.cards
        assert restored.players[1].hand == game.players[1].hand
        assert restored.current_player.user_id == "u2"
        restored.check_invariants()
