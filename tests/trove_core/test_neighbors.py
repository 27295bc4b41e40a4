from backend.core.trove_core.neighbors import (
    INFINITE_RATIO,
    compute_health_ratio,
    find_insert_index,
    find_neighbors,
    hypothetical_position,
    neighbor_accounts,
)
from backend.core.trove_core.pdas import derive_liquidity_threshold
from backend.core.trove_core.sorter import sort_key, sort_positions


def test_health_ratio():
    assert compute_health_ratio(3, 2, 1_000_000) == 150_000_000
    assert compute_health_ratio(10, 0, 5) == INFINITE_RATIO


def test_empty_list(make_position):
    proof = find_neighbors(make_position(1, 150_000_000), [])
    assert proof.prev is None and proof.next is None
    assert proof.insert_index == 0
    assert neighbor_accounts(proof) == []


def test_new_target_before_single_existing(make_position):
    existing = make_position(1, 200_000_000)
    proof = find_neighbors(make_position(2, 150_000_000), [existing])
    assert proof.prev is None
    assert proof.next == existing
    assert neighbor_accounts(proof) == [existing.threshold_record]
    assert neighbor_accounts(proof, skip_at_head=True) == []


def test_middle_and_tail(make_position):
    ordered = sort_positions([make_position(i, r) for i, r in ((1, 120), (2, 140), (3, 160))])
    mid = find_neighbors(make_position(9, 150), ordered)
    assert (mid.prev.owner, mid.next.owner) == (ordered[1].owner, ordered[2].owner)
    assert neighbor_accounts(mid) == [ordered[1].threshold_record, ordered[2].threshold_record]
    tail = find_neighbors(make_position(9, 999), ordered)
    assert tail.prev == ordered[-1] and tail.next is None
    assert tail.insert_index == 3


def test_tie_break_applies_to_target(make_position):
    ordered = sort_positions([make_position(1, 150, debt=100), make_position(2, 150, debt=10)])
    bigger = find_neighbors(make_position(9, 150, debt=50), ordered)
    assert bigger.prev.owner == ordered[0].owner
    assert bigger.next.owner == ordered[1].owner
    # equal key goes after existing equals
    same = find_neighbors(make_position(9, 150, debt=100), ordered)
    assert same.insert_index == 1


def test_adjacency_property(make_position):
    ordered = sort_positions(
        [make_position(i, r, debt=d) for i, (r, d) in enumerate([(5, 1), (1, 3), (3, 3), (3, 1), (9, 9)], start=1)]
    )
    for ratio in range(0, 11):
        for debt in (1, 2, 3):
            target = make_position(99, ratio, debt=debt)
            proof = find_neighbors(target, ordered)
            i = proof.insert_index
            if proof.prev is not None:
                assert sort_key(proof.prev) <= sort_key(target)
                assert ordered[i - 1] == proof.prev
            if proof.next is not None:
                assert sort_key(proof.next) > sort_key(target)
                assert ordered[i] == proof.next


def test_same_owner_entry_ignored(make_position):
    a = make_position(1, 120)
    own = make_position(2, 140)
    c = make_position(3, 160)
    ordered = [a, own, c]
    moved = make_position(2, 130)
    proof = find_neighbors(moved, ordered)
    assert proof.prev == a
    assert proof.next == c
    higher = find_neighbors(make_position(2, 150), ordered)
    assert higher.prev == a and higher.next == c
    assert find_insert_index(make_position(2, 150), ordered) == 2


def test_input_not_mutated(make_position):
    ordered = [make_position(1, 100), make_position(2, 200)]
    before = list(ordered)
    find_neighbors(make_position(3, 150), ordered)
    assert ordered == before


def test_hypothetical_position(key):
    pos = hypothetical_position(key(5), collateral_amount=3, debt_amount=2, price=1_000_000, denom="SOL")
    assert pos.health_ratio == 150_000_000
    assert pos.threshold_record == derive_liquidity_threshold(key(5))
    assert pos.is_live
