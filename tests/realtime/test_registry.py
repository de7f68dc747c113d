"""Tests for SessionRegistry."""

import threading

from src.realtime.registry import SessionRegistry


class TestSessions:
    """Tests for session tracking."""

    def test_add_and_remove(self, make_connection):
        """Sessions appear after add and vanish after remove."""
        registry = SessionRegistry()
        conn = make_connection("a")

        registry.add_session(conn)
        assert registry.all_sessions() == {conn}
        assert registry.session_count == 1

        registry.remove_session(conn)
        assert registry.all_sessions() == frozenset()

    def test_remove_unknown_is_noop(self, make_connection):
        """Removing an unregistered connection does nothing."""
        SessionRegistry().remove_session(make_connection("ghost"))


class TestSubscriptions:
    """Tests for meeting subscriptions."""

    def test_subscribers_of_unknown_meeting_is_empty(self):
        """Nobody subscribed means an empty set, not an error."""
        assert SessionRegistry().subscribers_of("m1") == frozenset()

    def test_subscribe_and_unsubscribe(self, make_connection):
        """Subscribers are tracked per meeting."""
        registry = SessionRegistry()
        a, b = make_connection("a"), make_connection("b")
        registry.add_session(a)
        registry.add_session(b)

        registry.subscribe(a, "m1")
        registry.subscribe(b, "m1")
        registry.subscribe(a, "m2")
        assert registry.subscribers_of("m1") == {a, b}
        assert registry.subscriptions_of(a) == {"m1", "m2"}

        registry.unsubscribe(a, "m1")
        assert registry.subscribers_of("m1") == {b}
        assert registry.subscriptions_of(a) == {"m2"}

    def test_remove_session_purges_subscriptions(self, make_connection):
        """Closing a connection removes it from every meeting."""
        registry = SessionRegistry()
        conn = make_connection("a")
        registry.add_session(conn)
        registry.subscribe(conn, "m1")
        registry.subscribe(conn, "m2")

        registry.remove_session(conn)

        assert registry.subscribers_of("m1") == frozenset()
        assert registry.subscribers_of("m2") == frozenset()
        assert registry.subscriptions_of(conn) == frozenset()

    def test_snapshot_is_stable_during_mutation(self, make_connection):
        """Iterating a returned set while others disconnect doesn't fail."""
        registry = SessionRegistry()
        conns = [make_connection(str(i)) for i in range(5)]
        for conn in conns:
            registry.add_session(conn)
            registry.subscribe(conn, "m1")

        snapshot = registry.subscribers_of("m1")
        for conn in snapshot:
            registry.remove_session(conn)

        assert len(snapshot) == 5
        assert registry.subscribers_of("m1") == frozenset()

    def test_concurrent_connect_and_subscribe(self, make_connection):
        """Many threads can register and subscribe at once."""
        registry = SessionRegistry()

        def worker(n: int) -> None:
            for i in range(50):
                conn = make_connection(f"{n}-{i}")
                registry.add_session(conn)
                registry.subscribe(conn, f"m{i % 3}")
                if i % 2:
                    registry.remove_session(conn)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert registry.session_count == 8 * 25
        total = sum(len(registry.subscribers_of(f"m{i}")) for i in range(3))
        assert total == 8 * 25

    def test_single_shard_behaves_the_same(self, make_connection):
        """Many meetings sharing one lock stripe stay separate."""
        registry = SessionRegistry(shards=1)
        a, b = make_connection("a"), make_connection("b")
        registry.add_session(a)
        registry.add_session(b)
        registry.subscribe(a, "m1")
        registry.subscribe(b, "m2")

        assert registry.subscribers_of("m1") == frozenset({a})
        assert registry.subscribers_of("m2") == frozenset({b})

        registry.remove_session(a)
        assert registry.subscribers_of("m1") == frozenset()
        assert registry.subscribers_of("m2") == frozenset({b})
