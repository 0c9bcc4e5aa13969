from stepagg.explain import (
    AnalyzeOutputNode,
    ExplainOutputNode,
    SampleStats,
    analyze_query,
    explain_vector,
)


class FakeOp:
    def __init__(self, name, children=(), stats=None, subquery=False):
        self.name = name
        self._children = list(children)
        self._stats = stats
        self._subquery = subquery

    def __str__(self):
        return self.name

    def explain(self):
        return self._children

    def samples(self):
        return self._stats

    def sub_query(self):
        return self._subquery


class PlainOp:
    def __str__(self):
        return "[plain]"

    def explain(self):
        return []


def test_explain_vector_builds_named_tree():
    leaf = FakeOp("[vectorSelector]")
    root = FakeOp("[coalesce]", [FakeOp("[concurrent(buff=2)]", [leaf])])
    assert explain_vector(root) == ExplainOutputNode(
        "[coalesce]",
        [ExplainOutputNode("[concurrent(buff=2)]", [ExplainOutputNode("[vectorSelector]", [])])],
    )


def test_leaf_analysis_reports_its_own_samples():
    stats = SampleStats(total_samples=1061, peak_samples=21, total_samples_per_step=[1, 2])
    node = analyze_query(FakeOp("leaf", stats=stats))
    assert node.total_samples() == stats.total_samples
    assert node.peak_samples() == stats.peak_samples
    assert node.total_samples_per_step() == stats.total_samples_per_step


def test_parent_adds_children_and_takes_largest_peak():
    child_stats = SampleStats(5, 7, [3, 4])
    parent_stats = SampleStats(10, 4, [1, 2])
    node = analyze_query(FakeOp("p", [FakeOp("c", stats=child_stats)], stats=parent_stats))
    assert node.total_samples() == 15
    assert node.peak_samples() == child_stats.peak_samples
    assert node.total_samples_per_step() == [4, 6]
    assert parent_stats.total_samples_per_step == [1, 2]


def test_subquery_does_not_add_children_totals():
    child_stats = SampleStats(5, 1, [3])
    parent_stats = SampleStats(10, 2, [1])
    node = analyze_query(
        FakeOp("sub", [FakeOp("c", stats=child_stats)], stats=parent_stats, subquery=True)
    )
    assert node.total_samples() == parent_stats.total_samples
    assert node.peak_samples() == parent_stats.peak_samples


def test_analysis_is_computed_once():
    stats = SampleStats(3, 1, [3])
    node = analyze_query(FakeOp("leaf", stats=stats))
    first = node.total_samples()
    stats.total_samples = 100
    assert node.total_samples() == first == 3


def test_analyze_skips_unobservable_children():
    root = FakeOp("root", [PlainOp(), FakeOp("obs", stats=SampleStats())], stats=SampleStats())
    node = analyze_query(root)
    assert len(node.children) == 1
    assert str(node.children[0].operator_telemetry) == "obs"


def test_node_without_samples_has_zero_totals():
    node = AnalyzeOutputNode(operator_telemetry=FakeOp("empty"))
    assert node.total_samples() == 0
    assert node.peak_samples() == 0
    assert node.total_samples_per_step() == []