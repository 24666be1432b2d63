from chikamap.services.rate_limit import SlidingWindowRateLimiter, client_ip


def test_sliding_window_blocks_then_recovers():
    now = [1000.0]
    limiter = SlidingWindowRateLimiter(3, window_seconds=60, clock=lambda: now[0])
    decisions = [limiter.check("1.2.3.4") for _ in range(4)]
    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]
    assert decisions[-1].reset_seconds == 60

    assert limiter.check("5.6.7.8").allowed

    now[0] += 61
    assert limiter.check("1.2.3.4").allowed


def test_client_ip_prefers_forwarded_header():
    assert client_ip({"x-forwarded-for": "9.9.9.9, 10.0.0.1"}) == "9.9.9.9"
    assert client_ip({"x-real-ip": "8.8.8.8"}) == "8.8.8.8"
    assert client_ip({}, "127.0.0.1") == "127.0.0.1"
    assert client_ip({}) == "unknown"
