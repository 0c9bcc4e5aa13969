from stepagg.remote import RemoteEngine, StaticEndpoints


class FakeEngine:
    def __init__(self, zone, mint, maxt):
        self.zone = zone
        self._mint = mint
        self._maxt = maxt

    def max_t(self):
        return self._maxt

    def min_t(self):
        return self._mint

    def label_sets(self):
        return [{"zone": self.zone}]

    def new_range_query(self, opts, plan, start, end, interval):
        return (self.zone, str(plan))


def test_engines_are_returned_in_order():
    east = FakeEngine("east-1", 30, 120)
    west = FakeEngine("west-1", 60, 150)
    endpoints = StaticEndpoints([east, west])
    assert endpoints.engines() == [east, west]
    assert [e.label_sets() for e in endpoints.engines()] == [
        [{"zone": "east-1"}],
        [{"zone": "west-1"}],
    ]


def test_engines_list_is_not_shared_with_caller():
    engines = [FakeEngine("east-1", 0, 1)]
    endpoints = StaticEndpoints(engines)
    engines.append(FakeEngine("west-1", 0, 1))
    returned = endpoints.engines()
    returned.clear()
    assert [e.zone for e in endpoints.engines()] == ["east-1"]


def test_empty_endpoints():
    assert StaticEndpoints([]).engines() == []


def test_endpoint_engines_satisfy_protocol():
    endpoints = StaticEndpoints([FakeEngine("east-1", 30, 120)])
    engines = endpoints.engines()
    assert [isinstance(e, RemoteEngine) for e in engines] == [True]
    assert [(e.min_t(), e.max_t()) for e in engines] == [(30, 120)]
    assert not isinstance(object(), RemoteEngine)