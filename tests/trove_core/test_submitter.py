from types import SimpleNamespace

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from backend.core.trove_core.accounts import prepare_instruction
from backend.core.trove_core.config import TroveConfig
from backend.core.trove_core.errors import (
    EncodingError,
    InsufficientLiquidity,
    ProgramRejection,
    RatioViolation,
    StaleProofRejection,
    classify_rejection,
)
from backend.core.trove_core.operations import Stake
from backend.core.trove_core.submitter import TransactionSubmitter, parse_error_code

COMPUTE_BUDGET = Pubkey.from_string("ComputeBudget111111111111111111111111111111")


def _anchor_logs(code: str, message: str = "rejected."):
    return [
        "Program HQbV7SKnWuWPHEci5eejsnJG7qwYuQkGzJHJ6nhLZhxk invoke [1]",
        f"Program log: AnchorError occurred. Error Code: {code}. Error Number: 6000. Error Message: {message}",
        "Program HQbV7SKnWuWPHEci5eejsnJG7qwYuQkGzJHJ6nhLZhxk failed: custom program error: 0x1770",
    ]


class DummyChain:
    def __init__(self, sims=()):
        self.sims = list(sims)
        self.sent = []
        self.confirmed = []

    async def get_latest_blockhash(self):
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    async def simulate_transaction(self, tx, sig_verify=False):
        err, logs = self.sims.pop(0) if self.sims else (None, ["ok"])
        return SimpleNamespace(value=SimpleNamespace(err=err, logs=logs))

    async def send_raw_transaction(self, raw, opts=None):
        self.sent.append(raw)
        return SimpleNamespace(value=Signature.default())

    async def confirm_transaction(self, sig):
        self.confirmed.append(sig)


@pytest.fixture
def payer():
    return Keypair.from_seed(bytes(range(32)))


def test_parse_error_code():
    code, msg = parse_error_code(_anchor_logs("InvalidList", "Invalid list."))
    assert code == "InvalidList"
    assert msg == "Invalid list."
    assert parse_error_code(["Program log: hello"]) == (None, None)


def test_classification():
    assert isinstance(classify_rejection("InvalidList"), StaleProofRejection)
    assert isinstance(classify_rejection("InvalidCollateralRatio"), RatioViolation)
    unknown = classify_rejection("Mystery", "boom", ["l1"])
    assert type(unknown) is ProgramRejection
    assert unknown.logs == ["l1"]


def test_compute_unit_limit_prepended(ctx, payer):
    prepared = prepare_instruction(Stake(amount=1), ctx, payer.pubkey())
    assert len(TransactionSubmitter(DummyChain(), payer).instructions(prepared)) == 1
    ixs = TransactionSubmitter(DummyChain(), payer, compute_unit_limit=400_000).instructions(prepared)
    assert ixs[0].program_id == COMPUTE_BUDGET
    assert ixs[1].data == prepared.data


@pytest.mark.asyncio
async def test_submit_simulates_sends_confirms(ctx, payer):
    chain = DummyChain()
    sub = TransactionSubmitter(chain, payer)
    sig = await sub.submit(prepare_instruction(Stake(amount=1), ctx, payer.pubkey()))
    assert sig == str(Signature.default())
    assert len(chain.sent) == 1
    assert chain.confirmed == [Signature.default()]


@pytest.mark.asyncio
async def test_stale_proof_rebuilds_once(ctx, payer):
    chain = DummyChain(sims=[({"InstructionError": [0, {"Custom": 6000}]}, _anchor_logs("InvalidList"))])
    builds = []

    async def build():
        builds.append(1)
        return prepare_instruction(Stake(amount=len(builds)), ctx, payer.pubkey())

    await TransactionSubmitter(chain, payer).submit_with_refresh(build)
    assert len(builds) == 2
    assert len(chain.sent) == 1


@pytest.mark.asyncio
async def test_stale_twice_surfaces(ctx, payer):
    stale = ({"err": 1}, _anchor_logs("InvalidList"))
    chain = DummyChain(sims=[stale, stale])

    async def build():
        return prepare_instruction(Stake(amount=1), ctx, payer.pubkey())

    with pytest.raises(StaleProofRejection):
        await TransactionSubmitter(chain, payer).submit_with_refresh(build)
    assert chain.sent == []


@pytest.mark.asyncio
async def test_business_rule_not_retried(ctx, payer):
    chain = DummyChain(sims=[({"err": 1}, _anchor_logs("NotEnoughLiquidityForRedeem", "Not enough."))])
    builds = []

    async def build():
        builds.append(1)
        return prepare_instruction(Stake(amount=1), ctx, payer.pubkey())

    with pytest.raises(InsufficientLiquidity) as exc:
        await TransactionSubmitter(chain, payer).submit_with_refresh(build)
    assert exc.value.message == "Not enough."
    assert len(builds) == 1
    assert chain.sent == []


@pytest.mark.asyncio
async def test_encoding_error_propagates(payer):
    chain = DummyChain()

    async def build():
        Stake(amount=-5).encode()

    with pytest.raises(EncodingError):
        await TransactionSubmitter(chain, payer).submit_with_refresh(build)
    assert chain.sent == []


def test_from_config_applies_compute_unit_limit(ctx, payer):
    sub = TransactionSubmitter.from_config(TroveConfig(compute_unit_limit=300_000), DummyChain(), payer)
    ixs = sub.instructions(prepare_instruction(Stake(amount=1), ctx, payer.pubkey()))
    assert sub.compute_unit_limit == 300_000
    assert ixs[0].program_id == COMPUTE_BUDGET
