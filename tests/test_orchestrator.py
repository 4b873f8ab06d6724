import json

import httpx
import pytest
from unittest.mock import MagicMock

from proxy_deploy.client import HttpChainClient
from proxy_deploy.errors import (
    ClientError,
    ConfigurationError,
    CyclicDependencyError,
    DeploymentFailedError,
    UnresolvedDependencyError,
)
from proxy_deploy.models import (
    AddressSlot,
    DeploymentReceipt,
    LiteralSlot,
    ModuleSpec,
    ResumeState,
    TimestampSlot,
)
from proxy_deploy.orchestrator import Orchestrator, RunState, resolve_plan

PRICE_FEED = "0x694AA1769357215DE4FAC081bf1f309aDC325306"


def make_client(addresses, now=1000000):
    """Chain client double that hands out `addresses` in call order."""
    client = MagicMock()
    client.now.return_value = now
    client.current_account.return_value = "0xdeployer"
    client.create_upgradeable_module.side_effect = [
        a if isinstance(a, Exception) else (a, DeploymentReceipt(transaction_hash=f"tx-{a}"))
        for a in addresses
    ]
    return client


def created_factories(client):
    return [c.args[0] for c in client.create_upgradeable_module.call_args_list]


TOKEN = ModuleSpec(name="Token", init_args=[LiteralSlot(value=2_000_000_000 * 10**18)])
VESTING = ModuleSpec(name="Vesting", depends_on={"Token"}, init_args=[AddressSlot(module="Token")])
CROWDSALE = ModuleSpec(
    name="Crowdsale",
    depends_on={"Token", "Vesting"},
    init_args=[
        AddressSlot(module="Token"),
        AddressSlot(module="Vesting"),
        LiteralSlot(value=PRICE_FEED),
    ],
)

# ---------------------------------------------------------------------------
# Plan resolution
# ---------------------------------------------------------------------------

def test_resolve_plan_orders_dependencies_first():
    plan = resolve_plan([CROWDSALE, VESTING, TOKEN])
    names = plan.names
    assert names == ["Token", "Vesting", "Crowdsale"]
    for index, spec in enumerate(plan.modules):
        for dep in spec.dependencies:
            assert names.index(dep) < index

def test_resolve_plan_keeps_input_order_for_independent_modules():
    airdrop = ModuleSpec(name="Airdrop")
    plan = resolve_plan([TOKEN, airdrop, VESTING])
    assert plan.names == ["Token", "Airdrop", "Vesting"]

def test_address_slot_is_an_implicit_dependency():
    vesting = ModuleSpec(name="Vesting", init_args=[AddressSlot(module="Token")])
    assert vesting.dependencies == {"Token"}
    assert resolve_plan([vesting, TOKEN]).names == ["Token", "Vesting"]

def test_resolve_plan_cycle():
    a = ModuleSpec(name="A", depends_on={"B"})
    b = ModuleSpec(name="B", depends_on={"A"})
    with pytest.raises(CyclicDependencyError) as info:
        resolve_plan([TOKEN, a, b])
    assert sorted(info.value.modules) == ["A", "B"]

def test_resolve_plan_self_dependency_is_a_cycle():
    with pytest.raises(CyclicDependencyError):
        resolve_plan([ModuleSpec(name="A", init_args=[AddressSlot(module="A")])])

def test_resolve_plan_missing_dependency():
    with pytest.raises(UnresolvedDependencyError, match="Vesting.*Token") as info:
        resolve_plan([VESTING])
    assert info.value.dependency == "Token"
    assert isinstance(info.value, ConfigurationError)

def test_resolve_plan_duplicate_name():
    with pytest.raises(ConfigurationError, match="Duplicate"):
        resolve_plan([TOKEN, TOKEN])

def test_resolve_plan_with_resume_drops_known_modules():
    resume = ResumeState(addresses={"Token": "A", "Vesting": "B"})
    plan = resolve_plan([TOKEN, VESTING, CROWDSALE], resume)
    assert plan.names == ["Crowdsale"]
    assert plan.external == {"Token", "Vesting"}

def test_cyclic_plan_never_touches_the_client():
    client = make_client([])
    orchestrator = Orchestrator(client)
    a = ModuleSpec(name="A", depends_on={"B"})
    b = ModuleSpec(name="B", depends_on={"A"})

    with pytest.raises(CyclicDependencyError):
        orchestrator.run([a, b])

    assert orchestrator.state is RunState.FAILED
    client.create_upgradeable_module.assert_not_called()
    client.now.assert_not_called()

# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def test_execute_threads_addresses_into_crowdsale():
    client = make_client(["A", "B", "C"])
    orchestrator = Orchestrator(client)

    deployed = orchestrator.execute(orchestrator.resolve_plan([TOKEN, VESTING, CROWDSALE]))

    assert [d.address for d in deployed] == ["A", "B", "C"]
    client.create_upgradeable_module.assert_called_with(
        "Crowdsale", ["A", "B", PRICE_FEED], "initialize", "uups"
    )
    assert orchestrator.state is RunState.COMPLETED

def test_execute_four_modules_terminal_depends_on_all():
    specs = [
        ModuleSpec(name="M1"),
        ModuleSpec(name="M2"),
        ModuleSpec(name="M3"),
        ModuleSpec(
            name="M4",
            depends_on={"M1", "M2", "M3"},
            init_args=[
                AddressSlot(module="M3"),
                AddressSlot(module="M1"),
                AddressSlot(module="M2"),
            ],
        ),
    ]
    client = make_client(["0x1", "0x2", "0x3", "0x4"])
    orchestrator = Orchestrator(client)

    deployed = orchestrator.run(specs)

    assert len(deployed) == 4
    assert deployed[-1].name == "M4"
    assert list(deployed[-1].init_args) == ["0x3", "0x1", "0x2"]
    assert deployed[-1].receipt.transaction_hash == "tx-0x4"

def test_execute_resolves_sale_window_at_creation_time():
    crowdsale = ModuleSpec(
        name="Crowdsale",
        init_args=[
            TimestampSlot(offset=[{"unit": "minutes", "value": 4}]),
            TimestampSlot(offset=[{"unit": "minutes", "value": 4}, {"unit": "days", "value": 90}]),
        ],
    )
    client = make_client(["S"], now=1000000)
    orchestrator = Orchestrator(client)
    plan = orchestrator.resolve_plan([crowdsale])

    # Planning must not read the clock.
    client.now.assert_not_called()

    deployed = orchestrator.execute(plan)
    assert list(deployed[0].init_args) == [1000240, 8776240]
    assert deployed[0].deployed_at == 1000000

def test_execute_uses_factory_initializer_and_kind():
    spec = ModuleSpec(
        name="Sale", factory="JilaiCrowdSale", initializer="init", proxy_kind="transparent"
    )
    client = make_client(["X"])
    Orchestrator(client).run([spec])
    client.create_upgradeable_module.assert_called_once_with(
        "JilaiCrowdSale", [], "init", "transparent"
    )

# ---------------------------------------------------------------------------
# Partial failure and resume
# ---------------------------------------------------------------------------

def test_failure_at_position_k_keeps_k_minus_one_records():
    client = make_client(["A", "B", ClientError("nonce too low")])
    orchestrator = Orchestrator(client)

    with pytest.raises(DeploymentFailedError, match="Crowdsale") as info:
        orchestrator.run([TOKEN, VESTING, CROWDSALE])

    error = info.value
    assert error.module == "Crowdsale"
    assert error.position == 3
    assert isinstance(error.cause, ClientError)
    assert isinstance(error.__cause__, ClientError)
    assert [m.name for m in error.deployed] == ["Token", "Vesting"]
    assert set(orchestrator.results) == {"Token", "Vesting"}
    assert orchestrator.state is RunState.FAILED
    assert client.create_upgradeable_module.call_count == 3

def test_failed_orchestrator_refuses_to_run_again():
    client = make_client([ClientError("boom")])
    orchestrator = Orchestrator(client)
    with pytest.raises(DeploymentFailedError):
        orchestrator.run([TOKEN])
    with pytest.raises(RuntimeError):
        orchestrator.run([TOKEN])

def test_resume_skips_modules_already_on_chain():
    first = make_client(["A", "B", ClientError("timeout")])
    with pytest.raises(DeploymentFailedError) as info:
        Orchestrator(first).run([TOKEN, VESTING, CROWDSALE])

    resume = info.value.resume_state()
    assert resume.addresses == {"Token": "A", "Vesting": "B"}

    second = make_client(["C"])
    deployed = Orchestrator(second).run([TOKEN, VESTING, CROWDSALE], resume)

    assert created_factories(second) == ["Crowdsale"]
    assert [d.name for d in deployed] == ["Crowdsale"]
    second.create_upgradeable_module.assert_called_once_with(
        "Crowdsale", ["A", "B", PRICE_FEED], "initialize", "uups"
    )

def test_resume_state_accumulates_across_failures():
    resume = ResumeState(addresses={"Token": "A"})
    client = make_client(["B", ClientError("reverted")])
    with pytest.raises(DeploymentFailedError) as info:
        Orchestrator(client).run([TOKEN, VESTING, CROWDSALE], resume)
    assert info.value.resume_state().addresses == {"Token": "A", "Vesting": "B"}

def test_execute_requires_addresses_for_external_modules():
    plan = resolve_plan([VESTING], ResumeState(addresses={"Token": "A"}))
    client = make_client([])
    with pytest.raises(ConfigurationError, match="Token"):
        Orchestrator(client).execute(plan)
    client.create_upgradeable_module.assert_not_called()

def test_clock_failure_halts_before_creation():
    client = make_client(["A"])
    client.now.side_effect = ClientError("rpc down")
    with pytest.raises(DeploymentFailedError) as info:
        Orchestrator(client).run([TOKEN])
    assert info.value.deployed == []
    client.create_upgradeable_module.assert_not_called()

def test_unexpected_client_exception_still_fails_the_run():
    client = make_client(["A", RuntimeError("boom")])
    orchestrator = Orchestrator(client)

    with pytest.raises(DeploymentFailedError, match="Vesting") as info:
        orchestrator.run([TOKEN, VESTING, CROWDSALE])

    assert info.value.position == 2
    assert isinstance(info.value.__cause__, RuntimeError)
    assert [m.name for m in info.value.deployed] == ["Token"]
    assert info.value.resume_state().addresses == {"Token": "A"}
    assert orchestrator.state is RunState.FAILED

def test_malformed_gateway_receipt_fails_the_run_with_context():
    def handler(request):
        body = json.loads(request.content)
        if body["method"] == "eth_accounts":
            result = ["0xdeployer"]
        elif body["method"] == "eth_getBlockByNumber":
            result = {"timestamp": "0xf4240"}
        else:
            result = {"address": "0xabc", "transactionHash": "0xtx", "blockNumber": "pending"}
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    client = HttpChainClient("http://gateway.test/rpc", transport=httpx.MockTransport(handler))
    orchestrator = Orchestrator(client)

    with pytest.raises(DeploymentFailedError, match="0xabc") as info:
        orchestrator.run([TOKEN])

    assert isinstance(info.value.cause, ClientError)
    assert orchestrator.state is RunState.FAILED

def test_infinite_duration_is_rejected_before_any_creation():
    sale = ModuleSpec(
        name="Sale",
        init_args=[TimestampSlot(offset=[{"unit": "years", "value": 1e308}])],
    )
    client = make_client(["A"])
    orchestrator = Orchestrator(client)

    with pytest.raises(ConfigurationError, match="out of range"):
        orchestrator.run([TOKEN, sale])

    assert orchestrator.state is RunState.FAILED
    client.create_upgradeable_module.assert_not_called()
