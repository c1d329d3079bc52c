from cougarcs.infra.ratelimit import RateLimiter


def _limiter(clock, window_ms: int = 60_000, max_requests: int = 10) -> RateLimiter:
	return RateLimiter(window_ms=window_ms, max_requests=max_requests, clock=clock)


def test_first_ten_pass_and_eleventh_is_refused(clock):
	rl = _limiter(clock)
	decisions = [rl.hit("a") for _ in range(11)]
	assert all(d.allowed for d in decisions[:10])
	assert not decisions[10].allowed
	assert [d.remaining for d in decisions[:3]] == [9, 8, 7]
	assert decisions[10].remaining == 0


def test_window_restarts_after_expiry(clock):
	rl = _limiter(clock)
	for _ in range(11):
		rl.hit("a")
	clock.advance(59.9)
	assert not rl.hit("a").allowed
	clock.advance(0.1)
	d = rl.hit("a")
	assert d.allowed
	assert d.remaining == 9


def test_reset_after_counts_down_from_first_hit(clock):
	rl = _limiter(clock)
	rl.hit("a")
	clock.advance(15)
	d = rl.hit("a")
	assert d.reset_after == 45
	assert d.retry_after_seconds == 45


def test_keys_are_independent(clock):
	rl = _limiter(clock, max_requests=1)
	assert rl.hit("a").allowed
	assert not rl.hit("a").allowed
	assert rl.hit("b").allowed


def test_reset_forgets_a_key(clock):
	rl = _limiter(clock, max_requests=1)
	rl.hit("a")
	rl.hit("b")
	rl.reset("a")
	assert rl.hit("a").allowed
	assert not rl.hit("b").allowed
	rl.reset_all()
	assert len(rl) == 0


def test_expired_windows_are_purged_past_capacity(clock):
	rl = RateLimiter(window_ms=1000, max_requests=5, clock=clock, capacity=128)
	for i in range(129):
		rl.hit(f"client-{i}")
	clock.advance(2)
	rl.hit("fresh")
	assert len(rl) == 1


def test_limits_are_clamped_to_at_least_one(clock):
	rl = RateLimiter(window_ms=0, max_requests=0, clock=clock)
	assert rl.max_requests == 1
	assert rl.window_seconds == 0.001
