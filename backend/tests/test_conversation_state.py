from creditshop.services.conversation_state import AdminTarget, ConversationState, ExpiringStore, PendingApproval


def test_entries_expire_after_ttl(clock):
    store = ExpiringStore(ttl_seconds=60, clock=clock)
    store.set("C1", "value")

    clock.advance(59)
    assert store.get("C1") == "value"

    clock.advance(1)
    assert store.get("C1") is None
    assert len(store) == 0


def test_set_refreshes_expiry(clock):
    store = ExpiringStore(ttl_seconds=10, clock=clock)
    store.set("k", 1)
    clock.advance(8)
    store.set("k", 2)
    clock.advance(8)
    assert store.get("k") == 2


def test_pop_returns_live_value_once(clock):
    store = ExpiringStore(ttl_seconds=10, clock=clock)
    store.set("k", "v")
    assert store.pop("k") == "v"
    assert store.pop("k") is None

    store.set("k", "v")
    clock.advance(11)
    assert store.pop("k") is None


def test_sweep_counts_both_stores(clock):
    state = ConversationState(approval_ttl_min=5, target_ttl_min=60, clock=clock)
    state.pending_approvals.set("Cadmins", PendingApproval(slip_id=1, admin_line_id="Uadmin"))
    state.admin_targets.set("Cadmins", AdminTarget(account_id=3, display_name="Somchai"))

    clock.advance(5 * 60)
    assert state.sweep() == 1
    assert state.admin_targets.get("Cadmins") == AdminTarget(account_id=3, display_name="Somchai")

    clock.advance(55 * 60)
    assert state.sweep() == 1
    assert len(state.admin_targets) == 0
