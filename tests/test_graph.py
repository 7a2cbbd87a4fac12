import pytest

from geolocus.errors import CyclicDependency
from geolocus.graph import ConstructionGraph
from geolocus.numerics import midpoint


def _point(graph, x, y, name=None):
    return graph.add_element("free_point", (), construction="point", name=name, value=(x, y))


def _counting(calls, key, func):
    def evaluator(vals, prev):
        calls.append(key)
        return func(*vals)

    return evaluator


def _diamond():
    graph = ConstructionGraph()
    calls = []
    a = _point(graph, 0.0, 0.0, "A")
    b = graph.add_element(
        "derived_point", (a,), _counting(calls, "B", lambda p: (p[0] + 1, p[1])), construction="shift"
    )
    c = graph.add_element(
        "derived_point", (a,), _counting(calls, "C", lambda p: (p[0], p[1] + 1)), construction="shift"
    )
    d = graph.add_element("derived_point", (b, c), _counting(calls, "D", midpoint), construction="midpoint")
    calls.clear()
    return graph, calls, (a, b, c, d)


def test_diamond_update_visits_each_descendant_once():
    graph, calls, (a, b, c, d) = _diamond()
    graph.get(a).value = (2.0, 2.0)

    order = graph.update([a])

    assert order == [a, b, c, d]
    assert sorted(calls) == ["B", "C", "D"]
    assert graph.get(d).value == pytest.approx((2.5, 2.5))


def test_update_with_several_roots_still_visits_once():
    graph, calls, (a, b, c, d) = _diamond()
    order = graph.update([b, c, a])
    assert order == [a, b, c, d]
    assert calls.count("D") == 1


def test_free_root_keeps_its_value():
    graph, _, (a, _, _, _) = _diamond()
    graph.get(a).value = (5.0, -1.0)
    graph.update([a])
    assert graph.get(a).value == (5.0, -1.0)


def test_cycle_is_rejected_and_graph_unchanged():
    graph, _, (a, b, c, d) = _diamond()
    before = {el.id: list(el.children) for el in graph}

    with pytest.raises(CyclicDependency):
        graph.add_edge(d, a)
    with pytest.raises(CyclicDependency):
        graph.add_edge(b, b)

    assert {el.id: list(el.children) for el in graph} == before


def test_add_edge_between_independent_elements():
    graph, calls, (a, b, c, d) = _diamond()
    e = _point(graph, 1.0, 1.0)
    graph.add_edge(e, d)
    assert graph.update([e]) == [e, d]


def test_remove_cascades_to_descendants():
    graph, _, (a, b, c, d) = _diamond()

    removed = graph.remove_element(b)

    assert removed == [b, d]
    assert not graph.is_alive(b)
    assert not graph.is_alive(d)
    assert graph.get(a).children == [c]
    assert len(graph) == 2


def test_unknown_id_raises_key_error():
    graph = ConstructionGraph()
    with pytest.raises(KeyError, match="unknown element id 7"):
        graph.get(7)
    with pytest.raises(KeyError):
        graph.add_element("derived_point", (3,), lambda vals, prev: prev)


def test_ancestors_are_topological():
    graph, _, (a, b, c, d) = _diamond()
    ancestors = graph.ancestors(d)
    assert set(ancestors) == {a, b, c}
    assert ancestors.index(a) < ancestors.index(b)
    assert ancestors.index(a) < ancestors.index(c)


def test_find_by_name():
    graph, _, (a, _, _, _) = _diamond()
    assert graph.find("A").id == a
    with pytest.raises(KeyError):
        graph.find("Z")


def _shift_right(vals, prev):
    x, y = vals[0]
    return (x + 1, y)


def test_ancestors_of_a_deep_chain():
    graph = ConstructionGraph()
    root = _point(graph, 0.0, 0.0, "A")
    chain = [root]
    for _ in range(3000):
        chain.append(
            graph.add_element(
                "derived_point", (chain[-1],), _shift_right, construction="shift"
            )
        )

    assert graph.ancestors(chain[-1]) == chain[:-1]
    assert graph.get(chain[-1]).value == (3000.0, 0.0)
    assert len(graph.update([root])) == 3001
