#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Debt Engine Step by Step

This is a pedagogical demonstration of how the collateralized debt engine
works. Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - Collaborators, deposits and mints, rejected operations
  4-6:  Redemption   - Earmarking, lazy settlement, claiming from the transmuter
  7-8:  Health       - Price drops, liquidation, the keeper scan
  9:    Scalability  - A thousand positions, each settled on its own touch

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import logging
import sys
import time

from debtledger import (
    # Engine and configuration
    DebtEngine, EngineConfig,
    # Collaborators
    DebtToken, FeeVault, PositionRegistry, ShareVault, Transmuter,
    # Errors
    Undercollateralized,
    # Keeper
    find_liquidatable, scan_positions,
)


WAD = 10 ** 18


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    minimum_collateralization: int = 15 * 10 ** 17     # 150%
    lower_bound: int = 11 * 10 ** 17                    # 110%
    liquidator_fee_bps: int = 300
    time_to_transmute: int = 10

    wallet_funding: int = 1_000_000 * WAD
    alice_collateral: int = 3_000 * WAD
    alice_debt: int = 1_000 * WAD
    dave_collateral: int = 1_500 * WAD
    price_drop_bps: int = 3_000

    load_test_positions: int = 1_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def fmt(amount: int) -> str:
    """Render an 18-decimal amount."""
    return f"{amount / WAD:,.4f}"


def show_position(engine: DebtEngine, account_id: int, label: str):
    collateral, debt, earmarked = engine.get_cdp(account_id)
    print(f"{label:<8} collateral={fmt(collateral):>14}  debt={fmt(debt):>12}  earmarked={fmt(earmarked):>12}")


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_setup():
    """Wire the engine to its collaborators."""
    step_header(1, "The Engine and Its Collaborators",
        "The engine owns the accounting; tokens, ids and redemptions live outside it.")

    print("""
    The engine consumes five collaborators:

    1. VAULT      - Share vault; its shares are the collateral
    2. DEBT TOKEN - Synthetic token the engine mints against collateral
    3. TRANSMUTER - Redemption authority; schedules redemption demand
    4. REGISTRY   - Maps position ids to owners
    5. FEE VAULT  - Tops up liquidator fees for underwater positions
    """)

    wait_for_enter()

    vault = ShareVault("MYT")
    for wallet in ("alice", "bob", "carol", "dave"):
        vault.deposit(wallet, CONFIG.wallet_funding)
    debt_token = DebtToken("alUSD")
    transmuter = Transmuter(vault, debt_token, time_to_transmute=CONFIG.time_to_transmute)
    fee_vault = FeeVault()
    fee_vault.deposit(100 * WAD)

    config = EngineConfig(
        minimum_collateralization=CONFIG.minimum_collateralization,
        collateralization_lower_bound=CONFIG.lower_bound,
        global_minimum_collateralization=CONFIG.minimum_collateralization,
        liquidator_fee=CONFIG.liquidator_fee_bps,
    )
    print(">>> engine = DebtEngine(config, vault, debt_token, transmuter, registry, fee_vault)")
    engine = DebtEngine(config, vault, debt_token, transmuter, PositionRegistry(), fee_reserve=fee_vault)

    section_header("Initial State")
    print(f"Block:             {engine.block_number}")
    print(f"Total debt:        {fmt(engine.ledger.total_debt)}")
    print(f"Share price:       {vault.convert_to_assets(WAD) / WAD:.4f}")
    print(f"Min collateral:    {config.minimum_collateralization / WAD:.0%}")
    print(f"Liquidatable at:   {config.collateralization_lower_bound / WAD:.0%}")

    return engine, vault, debt_token, transmuter


def step_02_deposit_and_mint(engine: DebtEngine):
    """Open a position and borrow against it."""
    step_header(2, "Deposit and Mint",
        "Minting locks collateral at the minimum collateralization.")

    print(f'>>> alice = engine.deposit("alice", {fmt(CONFIG.alice_collateral)}, "alice")')
    alice = engine.deposit("alice", CONFIG.alice_collateral, "alice")
    print(f'>>> engine.mint("alice", alice, {fmt(CONFIG.alice_debt)}, "bob")')
    engine.mint("alice", alice, CONFIG.alice_debt, "bob")

    section_header("Position")
    show_position(engine, alice, "alice")
    account = engine.get_account(alice)
    print(f"Locked collateral:  {fmt(account.raw_locked)}")
    print(f"Still borrowable:   {fmt(engine.get_max_borrowable(alice))}")
    print(f"bob's alUSD:        {fmt(engine.debt_token.balance_of('bob'))}")

    section_header("Key Insight")
    print("""
    Debt 1000 at 150% locks 1500 of alice's 3000 collateral. The other
    1500 stays free: she may withdraw it or borrow another 1000 against it.
    """)
    return alice


def step_03_rejected_mint(engine: DebtEngine, alice: int):
    """An operation that fails changes nothing."""
    step_header(3, "Rejected Operations",
        "Every entry point is all-or-nothing.")

    events_before = len(engine.event_log)
    ledger_before = engine.ledger
    print('>>> engine.mint("alice", alice, 5000, "alice")')
    try:
        engine.mint("alice", alice, 5_000 * WAD, "alice")
    except Undercollateralized as exc:
        print(f"Rejected: {exc}")

    section_header("State After Rejection")
    print(f"Ledger unchanged:  {engine.ledger == ledger_before}")
    print(f"Events unchanged:  {len(engine.event_log) == events_before}")
    show_position(engine, alice, "alice")


# ============================================================================
# PHASE 2: REDEMPTION
# ============================================================================

def step_04_earmark(engine: DebtEngine, transmuter: Transmuter, alice: int):
    """Redemption demand becomes earmarked debt."""
    step_header(4, "Earmarking",
        "Demand vesting in the transmuter is earmarked against all debt at once.")

    print(">>> request = transmuter.create_redemption('bob', 1000)")
    request = transmuter.create_redemption("bob", CONFIG.alice_debt)
    print(f"Vests linearly over {CONFIG.time_to_transmute} blocks starting next block.")

    for _ in range(4):
        engine.advance_block()
        demand = transmuter.query_graph(1, engine.block_number)
        print(f"\nblock {engine.block_number}: demand due so far {fmt(demand)}")
        show_position(engine, alice, "alice")

    section_header("Key Insight")
    print("""
    Nobody iterated over positions. The demand is folded into one earmark weight;
    alice's earmarked share is derived from it whenever she is read.
    """)
    return request


def step_05_lazy_sync(engine: DebtEngine, alice: int):
    """Stored state lags until the position is touched."""
    step_header(5, "Lazy Settlement",
        "A position catches up in O(1) on its next touch.")

    stored = engine.get_account(alice)
    print(f"Stored earmarked (last touch at block {stored.last_touched_block}): {fmt(stored.earmarked)}")
    _, _, quoted = engine.get_cdp(alice)
    print(f"Quoted earmarked (what a sync would produce):    {fmt(quoted)}")

    print("\n>>> engine.poke(alice)")
    synced = engine.poke(alice)
    print(f"Stored earmarked after poke:                      {fmt(synced.earmarked)}")
    print(f"Second poke identical:                            {engine.poke(alice) == synced}")


def step_06_claim(engine: DebtEngine, vault: ShareVault, transmuter: Transmuter, request: int, alice: int):
    """Claiming redeems the vested debt for collateral."""
    step_header(6, "Claiming a Redemption",
        "The transmuter redeems vested debt; collateral leaves every position pro rata.")

    engine.advance_block(CONFIG.time_to_transmute)
    before = vault.balance_of("bob")
    print(">>> transmuter.claim_redemption('bob', request)")
    payout, returned = transmuter.claim_redemption("bob", request)

    section_header("Result")
    print(f"bob received:     {fmt(payout)} shares ({fmt(vault.balance_of('bob') - before)} net)")
    print(f"alUSD returned:   {fmt(returned)}")
    print(f"Total debt:       {fmt(engine.ledger.total_debt)}")
    show_position(engine, alice, "alice")


# ============================================================================
# PHASE 3: HEALTH
# ============================================================================

def step_07_liquidation(engine: DebtEngine, vault: ShareVault):
    """Price drops make positions liquidatable."""
    step_header(7, "Liquidation",
        "Below the lower bound, a position is partially liquidated back to 150%.")

    dave = engine.deposit("dave", CONFIG.dave_collateral, "dave")
    engine.mint("dave", dave, 1_000 * WAD, "dave")
    carol = engine.deposit("carol", 50_000 * WAD, "carol")
    engine.advance_block()
    show_position(engine, dave, "dave")

    print(f"\n>>> vault.realize_loss(...)   # share price -{CONFIG.price_drop_bps / 100:.0f}%")
    vault.realize_loss(vault.total_assets * CONFIG.price_drop_bps // 10_000)
    show_position(engine, dave, "dave")

    print('\n>>> engine.liquidate("keeper", dave)')
    result = engine.liquidate("keeper", dave)
    print(f"Seized:          {fmt(result.amount_liquidated)} shares")
    print(f"Liquidator fee:  {fmt(result.fee_in_yield)} shares")
    show_position(engine, dave, "dave")
    value = engine.total_value(dave)
    _, debt, _ = engine.get_cdp(dave)
    print(f"New ratio:       {value / debt:.4f}")
    return dave, carol


def step_08_keeper(engine: DebtEngine, ids):
    """Vectorized health scan."""
    step_header(8, "Keeper Scan",
        "A keeper ranks positions by collateralization without mutating anything.")

    report = scan_positions(engine, ids)
    for i in report.worst_first():
        ratio = report.ratio[i]
        flag = "LIQUIDATABLE" if report.liquidatable[i] else ""
        print(f"position {int(report.account_ids[i]):>3}: ratio {ratio:>8.4f} {flag}")
    print(f"\nLiquidatable now: {find_liquidatable(engine, ids)}")


# ============================================================================
# PHASE 4: SCALABILITY
# ============================================================================

def step_09_load_test():
    """Global events touch no position; each settles on its own touch."""
    step_header(9, "Scale",
        "Earmark and redeem never iterate over positions.")

    vault = ShareVault("MYT")
    debt_token = DebtToken("alUSD")
    transmuter = Transmuter(vault, debt_token, time_to_transmute=1)
    engine = DebtEngine(
        EngineConfig(CONFIG.minimum_collateralization, CONFIG.lower_bound, CONFIG.minimum_collateralization),
        vault, debt_token, transmuter, PositionRegistry(),
    )

    n = CONFIG.load_test_positions
    ids = []
    start = time.perf_counter()
    for i in range(n):
        owner = f"user_{i}"
        vault.deposit(owner, 300 * WAD)
        account_id = engine.deposit(owner, 300 * WAD, owner)
        engine.mint(owner, account_id, 100 * WAD, owner)
        ids.append(account_id)
    print(f"Opened {n:,} positions in {time.perf_counter() - start:.2f}s")

    debt_token.transfer("user_0", "redeemer", 100 * WAD)
    request = transmuter.create_redemption("redeemer", 100 * WAD)
    engine.advance_block(2)

    start = time.perf_counter()
    transmuter.claim_redemption("redeemer", request)
    print(f"Earmark + redeem across {n:,} positions: {(time.perf_counter() - start) * 1000:.2f}ms")

    start = time.perf_counter()
    for account_id in ids:
        engine.poke(account_id)
    elapsed = time.perf_counter() - start
    print(f"Settling all of them: {elapsed:.2f}s ({elapsed / n * 1e6:.1f}us each)")
    print(f"Total debt now: {fmt(engine.ledger.total_debt)} (was {fmt(n * 100 * WAD)})")


# ============================================================================
# MAIN
# ============================================================================

def main():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 70)
    print("       DEBT ENGINE TUTORIAL")
    print("=" * 70)

    engine, vault, debt_token, transmuter = step_01_setup()
    wait_for_enter()

    alice = step_02_deposit_and_mint(engine)
    wait_for_enter()

    step_03_rejected_mint(engine, alice)
    wait_for_enter()

    request = step_04_earmark(engine, transmuter, alice)
    wait_for_enter()

    step_05_lazy_sync(engine, alice)
    wait_for_enter()

    step_06_claim(engine, vault, transmuter, request, alice)
    wait_for_enter()

    dave, carol = step_07_liquidation(engine, vault)
    wait_for_enter()

    step_08_keeper(engine, [alice, dave, carol])
    wait_for_enter()

    step_09_load_test()

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:

    FOUNDATION
      - Minting locks collateral at the minimum collateralization
      - Entry points are all-or-nothing

    REDEMPTION
      - Demand is earmarked protocol-wide by advancing one weight
      - Positions settle lazily, in O(1), on their next touch

    HEALTH
      - Liquidation restores the minimum collateralization
      - The keeper scan ranks positions without mutating state

    Next steps:
      - See debtledger/decay.py for the fixed-point weight math
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
