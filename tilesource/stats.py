from time import monotonic


class time_block:

    """Record the duration of the with block, in millis, under key"""

    def __init__(self, timing_state, key):
        self.timing_state = timing_state
        self.key = key

    def __enter__(self):
        self.start = monotonic()

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_millis = (monotonic() - self.start) * 1000
        self.timing_state[self.key] = duration_millis


class FetchStatsHandler:

    def __init__(self, stats):
        self.stats = stats

    def fetched(self, layer_name, n_features, timing):
        with self.stats.pipeline() as pipe:
            pipe.timing('fetch.time.%s' % layer_name, timing['fetch'])
            pipe.gauge('fetch.features.%s' % layer_name, n_features)
            pipe.incr('fetch.requests', 1)

    def fetch_error(self, layer_name):
        self.stats.incr('fetch.errors.%s' % layer_name, 1)


class FakeStatsd:

    """Stand in for a statsd client when no statsd host is configured"""

    def __init__(self, *args, **kwargs):
        pass

    def incr(self, *args, **kwargs):
        pass

    def decr(self, *args, **kwargs):
        pass

    def gauge(self, *args, **kwargs):
        pass

    def set(self, *args, **kwargs):
        pass

    def timing(self, *args, **kwargs):
        pass

    def pipeline(self):
        return self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass


def make_statsd_client_from_cfg(cfg):
    if cfg.statsd_host:
        import statsd
        stats = statsd.StatsClient(cfg.statsd_host, cfg.statsd_port,
                                   prefix=cfg.statsd_prefix)
    else:
        stats = FakeStatsd()
    return stats
