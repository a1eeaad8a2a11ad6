"""Unit tests for the ModelRegistry."""

from __future__ import annotations

import pytest

from modelmarket.config_schema import ZERO_ADDRESS
from modelmarket.world.errors import (
    ConfigMissingError,
    InsufficientFundsError,
    InvalidConfigError,
    InvalidRecipientError,
    OutOfRangeError,
    PayoutFailedError,
    UnauthorizedError,
    UnknownAssetError,
)
from modelmarket.world.registry import ModelRegistry
from modelmarket.world.types import LedgerEvent, ModelMetrics
from tests.testing_utils import RejectingSink, ether


@pytest.fixture
def minted(registry: ModelRegistry) -> int:
    """Model 0, owned by addr1."""
    return registry.mint("addr1", "ipfs://testURI")


class TestMint:
    """Tests for minting new models."""

    def test_mint_assigns_owner_and_uri(self, registry: ModelRegistry) -> None:
        """Minting records the owner and the metadata URI."""
        asset_id = registry.mint("addr1", "ipfs://testURI")

        assert asset_id == 0
        assert registry.owner_of(asset_id) == "addr1"
        assert registry.token_uri(asset_id) == "ipfs://testURI"

    def test_ids_are_sequential(self, registry: ModelRegistry) -> None:
        """Ids start at 0 and increase by one per mint."""
        ids = [registry.mint("addr1", f"ipfs://{i}") for i in range(3)]

        assert ids == [0, 1, 2]
        assert registry.total_supply() == 3

    def test_anyone_can_mint_to_anyone(self, registry: ModelRegistry) -> None:
        asset_id = registry.mint("addr2", "")
        assert registry.owner_of(asset_id) == "addr2"
        assert registry.token_uri(asset_id) == ""

    def test_mint_to_null_identity_rejected(self, registry: ModelRegistry) -> None:
        """The zero address and the empty id both count as null."""
        with pytest.raises(InvalidRecipientError):
            registry.mint(ZERO_ADDRESS, "ipfs://x")
        with pytest.raises(InvalidRecipientError):
            registry.mint("", "ipfs://x")
        assert registry.total_supply() == 0

    def test_balance_of_and_assets_of(self, registry: ModelRegistry) -> None:
        registry.mint("addr1", "a")
        registry.mint("addr2", "b")
        registry.mint("addr1", "c")

        assert registry.balance_of("addr1") == 2
        assert registry.assets_of("addr1") == [0, 2]
        assert registry.balance_of("nobody") == 0


class TestUnknownAsset:
    """Reads and writes on never-minted ids."""

    def test_reads_raise(self, registry: ModelRegistry) -> None:
        for read in (registry.owner_of, registry.token_uri, registry.get_model_metrics,
                     registry.profit_configs, registry.get_approved):
            with pytest.raises(UnknownAssetError):
                read(99)

    def test_transfer_raises(self, registry: ModelRegistry) -> None:
        with pytest.raises(UnknownAssetError):
            registry.transfer(99, "addr2", invoker_id="addr1")

    def test_exists(self, registry: ModelRegistry, minted: int) -> None:
        assert registry.exists(minted)
        assert not registry.exists(minted + 1)


class TestTransferAndApproval:
    """Tests for ownership transfer and operator approval."""

    def test_owner_transfers(self, registry: ModelRegistry, minted: int) -> None:
        registry.transfer(minted, "addr2", invoker_id="addr1")
        assert registry.owner_of(minted) == "addr2"

    def test_stranger_cannot_transfer(self, registry: ModelRegistry, minted: int) -> None:
        with pytest.raises(UnauthorizedError):
            registry.transfer(minted, "addr2", invoker_id="addr2")
        assert registry.owner_of(minted) == "addr1"

    def test_transfer_to_null_rejected(self, registry: ModelRegistry, minted: int) -> None:
        with pytest.raises(InvalidRecipientError):
            registry.transfer(minted, ZERO_ADDRESS, invoker_id="addr1")

    def test_approved_operator_transfers_once(self, registry: ModelRegistry, minted: int) -> None:
        """A per-model approval is cleared by the transfer it enables."""
        registry.approve(minted, "operator", invoker_id="addr1")
        assert registry.get_approved(minted) == "operator"

        registry.transfer(minted, "addr2", invoker_id="operator")

        assert registry.owner_of(minted) == "addr2"
        assert registry.get_approved(minted) is None
        with pytest.raises(UnauthorizedError):
            registry.transfer(minted, "operator", invoker_id="operator")

    def test_only_owner_approves(self, registry: ModelRegistry, minted: int) -> None:
        with pytest.raises(UnauthorizedError):
            registry.approve(minted, "addr2", invoker_id="addr2")

    def test_approve_null_clears(self, registry: ModelRegistry, minted: int) -> None:
        registry.approve(minted, "operator", invoker_id="addr1")
        registry.approve(minted, ZERO_ADDRESS, invoker_id="addr1")
        assert registry.get_approved(minted) is None

    def test_approval_for_all(self, registry: ModelRegistry, minted: int) -> None:
        """An operator approved for all may move any of the owner's models."""
        second = registry.mint("addr1", "ipfs://second")
        registry.set_approval_for_all("operator", True, invoker_id="addr1")

        assert registry.is_approved_for_all("addr1", "operator")
        registry.transfer(minted, "addr2", invoker_id="operator")
        registry.transfer(second, "addr2", invoker_id="operator")
        assert registry.balance_of("addr2") == 2

    def test_revoke_approval_for_all(self, registry: ModelRegistry, minted: int) -> None:
        registry.set_approval_for_all("operator", True, invoker_id="addr1")
        registry.set_approval_for_all("operator", False, invoker_id="addr1")

        assert not registry.is_approved_for_all("addr1", "operator")
        with pytest.raises(UnauthorizedError):
            registry.transfer(minted, "addr2", invoker_id="operator")

    def test_approval_for_all_rejects_self_and_null(self, registry: ModelRegistry) -> None:
        with pytest.raises(InvalidRecipientError):
            registry.set_approval_for_all("addr1", True, invoker_id="addr1")
        with pytest.raises(InvalidRecipientError):
            registry.set_approval_for_all(ZERO_ADDRESS, True, invoker_id="addr1")


class TestMetrics:
    """Tests for performance metrics."""

    def test_update_metrics(self, registry: ModelRegistry, minted: int) -> None:
        """Owner sets reward rate, completion rate and contribution score."""
        registry.update_metrics(minted, 0.8, 90, 0.6, invoker_id="addr1")

        metrics = registry.get_model_metrics(minted)
        assert metrics.reward_rate == 0.8
        assert metrics.completion_rate == 90
        assert metrics.contribution_score == 0.6

    def test_defaults_to_zero(self, registry: ModelRegistry, minted: int) -> None:
        assert registry.get_model_metrics(minted) == ModelMetrics(0, 0, 0)

    def test_update_replaces_whole_record(self, registry: ModelRegistry, minted: int) -> None:
        registry.update_metrics(minted, 0.8, 90, 0.6, invoker_id="addr1")
        registry.update_metrics(minted, 1, 10, 0, invoker_id="addr1")

        assert registry.get_model_metrics(minted).to_dict() == {
            "reward_rate": 1, "completion_rate": 10, "contribution_score": 0,
        }

    def test_only_owner_updates(self, registry: ModelRegistry, minted: int) -> None:
        with pytest.raises(UnauthorizedError):
            registry.update_metrics(minted, 0.8, 90, 0.6, invoker_id="addr2")
        assert registry.get_model_metrics(minted) == ModelMetrics()

    def test_completion_rate_bounds(self, registry: ModelRegistry, minted: int) -> None:
        """Completion rate is a whole percentage in 0..100."""
        registry.update_metrics(minted, 0, 100, 0, invoker_id="addr1")
        registry.update_metrics(minted, 0, 0, 0, invoker_id="addr1")
        for bad in (101, -1, 50.5):
            with pytest.raises(OutOfRangeError):
                registry.update_metrics(minted, 0, bad, 0, invoker_id="addr1")

    def test_negative_or_non_finite_scores_rejected(self, registry: ModelRegistry, minted: int) -> None:
        for bad in (-0.1, float("nan"), float("inf"), "0.8"):
            with pytest.raises(OutOfRangeError):
                registry.update_metrics(minted, bad, 50, 0, invoker_id="addr1")
            with pytest.raises(OutOfRangeError):
                registry.update_metrics(minted, 0, 50, bad, invoker_id="addr1")

    def test_metrics_survive_transfer(self, registry: ModelRegistry, minted: int) -> None:
        registry.update_metrics(minted, 0.8, 90, 0.6, invoker_id="addr1")
        registry.transfer(minted, "addr2", invoker_id="addr1")

        assert registry.get_model_metrics(minted).completion_rate == 90
        registry.update_metrics(minted, 0.5, 50, 0.5, invoker_id="addr2")


class TestProfitConfig:
    """Tests for profit split configuration."""

    def test_set_profit_config(self, registry: ModelRegistry, minted: int) -> None:
        config = registry.set_profit_config(minted, ["addr1", "addr2"], [60, 40], invoker_id="addr1")

        assert registry.profit_configs(minted) == config
        assert config.to_dict() == {"beneficiaries": ["addr1", "addr2"], "shares": [60, 40]}

    def test_none_until_set(self, registry: ModelRegistry, minted: int) -> None:
        assert registry.profit_configs(minted) is None

    def test_only_owner_sets(self, registry: ModelRegistry, minted: int) -> None:
        with pytest.raises(UnauthorizedError):
            registry.set_profit_config(minted, ["addr2"], [100], invoker_id="addr2")

    def test_invalid_configs_rejected(self, registry: ModelRegistry, minted: int) -> None:
        """Bad lists raise InvalidConfigError and keep the previous config."""
        registry.set_profit_config(minted, ["addr1"], [100], invoker_id="addr1")
        invalid = [
            ([], []),
            (["addr1", "addr2"], [100]),
            (["addr1", "addr2"], [60, 30]),
            (["addr1", "addr2"], [110, -10]),
            (["addr1", "addr2"], [100, 0]),
            (["addr1", ZERO_ADDRESS], [50, 50]),
            (["addr1"], [100.0]),
        ]

        for beneficiaries, shares in invalid:
            with pytest.raises(InvalidConfigError):
                registry.set_profit_config(minted, beneficiaries, shares, invoker_id="addr1")

        assert registry.profit_configs(minted).shares == (100,)

    def test_returned_config_is_a_copy(self, registry: ModelRegistry, minted: int) -> None:
        beneficiaries = ["addr1", "addr2"]
        registry.set_profit_config(minted, beneficiaries, [60, 40], invoker_id="addr1")
        beneficiaries.append("mallory")

        assert registry.profit_configs(minted).beneficiaries == ("addr1", "addr2")


class TestDistributeProfits:
    """Tests for profit distribution through the funds ledger."""

    def test_sixty_forty_split(self, registry: ModelRegistry, minted: int) -> None:
        """1.0 split 60/40 pays exactly 0.6 and 0.4 from the payer."""
        registry.set_profit_config(minted, ["addr1", "addr2"], [60, 40], invoker_id="addr1")
        ledger = registry.ledger

        payouts = registry.distribute_profits(minted, ether("1.0"), invoker_id="owner")

        assert payouts == [
            {"beneficiary": "addr1", "amount": ether("0.6")},
            {"beneficiary": "addr2", "amount": ether("0.4")},
        ]
        assert ledger.get_balance("addr1") == ether("10.6")
        assert ledger.get_balance("addr2") == ether("10.4")
        assert ledger.get_balance("owner") == ether("9.0")

    def test_anyone_can_distribute(self, registry: ModelRegistry, minted: int) -> None:
        registry.set_profit_config(minted, ["addr1"], [100], invoker_id="addr1")
        registry.distribute_profits(minted, ether("1.0"), invoker_id="addr2")

        assert registry.ledger.get_balance("addr2") == ether("9.0")

    def test_config_missing(self, registry: ModelRegistry, minted: int) -> None:
        with pytest.raises(ConfigMissingError):
            registry.distribute_profits(minted, ether("1.0"), invoker_id="owner")

    def test_unfunded_payer(self, registry: ModelRegistry, minted: int) -> None:
        """A payer that cannot cover the amount surfaces as PayoutFailedError."""
        registry.set_profit_config(minted, ["addr1", "addr2"], [60, 40], invoker_id="addr1")

        with pytest.raises(PayoutFailedError) as exc_info:
            registry.distribute_profits(minted, ether("1.0"), invoker_id="broke")

        assert isinstance(exc_info.value.__cause__, InsufficientFundsError)
        assert registry.ledger.get_balance("addr1") == ether("10.0")

    def test_rejecting_beneficiary_rolls_back(self, registry: ModelRegistry, minted: int) -> None:
        """No partial payout survives a rejected leg."""
        registry.set_profit_config(minted, ["addr1", "addr2"], [60, 40], invoker_id="addr1")
        registry.ledger.register_sink("addr2", RejectingSink())

        with pytest.raises(PayoutFailedError):
            registry.distribute_profits(minted, ether("1.0"), invoker_id="owner")

        assert registry.ledger.get_balance("addr1") == ether("10.0")
        assert registry.ledger.get_balance("owner") == ether("10.0")

    def test_invalid_amount(self, registry: ModelRegistry, minted: int) -> None:
        registry.set_profit_config(minted, ["addr1"], [100], invoker_id="addr1")
        with pytest.raises(OutOfRangeError):
            registry.distribute_profits(minted, -1, invoker_id="owner")

    def test_zero_amount_is_noop(self, registry: ModelRegistry, minted: int) -> None:
        registry.set_profit_config(minted, ["addr1"], [100], invoker_id="addr1")
        payouts = registry.distribute_profits(minted, 0, invoker_id="nobody")

        assert payouts == [{"beneficiary": "addr1", "amount": 0}]


class TestEvents:
    """Tests for the on_event notifications."""

    def test_events_emitted(self, funded_ledger) -> None:
        events: list[LedgerEvent] = []
        registry = ModelRegistry(funded_ledger, on_event=events.append)

        asset_id = registry.mint("addr1", "ipfs://x")
        registry.transfer(asset_id, "addr2", invoker_id="addr1")

        assert [e.event_type for e in events] == ["model_minted", "model_transferred"]
        assert events[1].data == {"asset_id": 0, "from_owner": "addr1", "to_owner": "addr2"}

    def test_failed_operation_emits_nothing(self, funded_ledger) -> None:
        events: list[LedgerEvent] = []
        registry = ModelRegistry(funded_ledger, on_event=events.append)

        with pytest.raises(InvalidRecipientError):
            registry.mint(ZERO_ADDRESS, "ipfs://x")
        assert events == []


class TestSnapshot:
    """Tests for snapshot/restore."""

    def test_restore_undoes_everything(self, registry: ModelRegistry, minted: int) -> None:
        saved = registry.snapshot()

        registry.transfer(minted, "addr2", invoker_id="addr1")
        registry.update_metrics(minted, 1, 1, 1, invoker_id="addr2")
        registry.set_approval_for_all("operator", True, invoker_id="addr2")
        registry.mint("addr2", "ipfs://new")

        registry.restore(saved)

        assert registry.owner_of(minted) == "addr1"
        assert registry.get_model_metrics(minted) == ModelMetrics()
        assert not registry.is_approved_for_all("addr2", "operator")
        assert registry.total_supply() == 1
        assert registry.mint("addr1", "ipfs://again") == 1


class TestArgumentTypes:
    """Wrongly typed arguments raise LedgerErrors, never TypeError."""

    def test_non_int_ids_are_unknown(self, registry: ModelRegistry, minted: int) -> None:
        for bad in ([minted], "0", None, True, 0.0):
            with pytest.raises(UnknownAssetError):
                registry.owner_of(bad)
            assert not registry.exists(bad)

    def test_non_str_recipient_rejected(self, registry: ModelRegistry, minted: int) -> None:
        with pytest.raises(InvalidRecipientError):
            registry.mint(["addr1"], "ipfs://x")
        with pytest.raises(InvalidRecipientError):
            registry.transfer(minted, {"to": "addr2"}, invoker_id="addr1")
        with pytest.raises(InvalidRecipientError):
            registry.approve(minted, ["operator"], invoker_id="addr1")
        with pytest.raises(InvalidRecipientError):
            registry.set_approval_for_all(["operator"], True, invoker_id="addr1")
        assert registry.total_supply() == 1

    def test_non_str_lookups_are_false(self, registry: ModelRegistry) -> None:
        assert registry.is_approved_for_all(["addr1"], "operator") is False
        assert registry.is_approved_for_all("addr1", ["operator"]) is False

    def test_profit_config_requires_lists(self, registry: ModelRegistry, minted: int) -> None:
        for beneficiaries, shares in ((None, [100]), (["addr1"], None), ("addr1", [100]), (["addr1"], 100)):
            with pytest.raises(InvalidConfigError):
                registry.set_profit_config(minted, beneficiaries, shares, invoker_id="addr1")
        assert registry.profit_configs(minted) is None
